"""Command-line interface for sbuild-lint."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
import uuid
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sbuild_lint import __version__
from sbuild_lint.config import (
    ConfigLoadError,
    ConfigValidationError,
    LintOptions,
    load_config,
)
from sbuild_lint.constants import SHELLCHECK_SEVERITIES
from sbuild_lint.domain.errors import RecipeIOError
from sbuild_lint.main import ExitCode
from sbuild_lint.observability import LoggingConfig, setup_structured_logging, shutdown_logging
from sbuild_lint.scheduler import run_lint
from sbuild_lint.ui.render import CLIRenderer, create_renderer
from sbuild_lint.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from sbuild_lint.domain.models import RunReport


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = ExitCode.LINT_FAILED

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for a lint run."""

    parser = argparse.ArgumentParser(
        prog="sbuild-lint",
        description=(
            "Validate, lint and canonicalize SBUILD package recipes.\n\n"
            "Examples:\n"
            "  sbuild-lint recipe.SBUILD              Check one recipe\n"
            "  sbuild-lint -p -i recipes/*.SBUILD     Probe versions and rewrite in place\n"
            "  sbuild-lint --json --keep-order *.SBUILD\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("files", nargs="+", metavar="FILE", help="Recipe files to check.")
    parser.add_argument(
        "--pkgver",
        "-p",
        action="store_true",
        default=None,
        help="Run each recipe's pkgver script and update 'version' from its output.",
    )
    parser.add_argument(
        "--no-shellcheck",
        dest="syntax_check",
        action="store_false",
        default=None,
        help="Skip the shellcheck pass over script fields.",
    )
    parser.add_argument(
        "--shellcheck-severity",
        choices=SHELLCHECK_SEVERITIES,
        default=None,
        help="Minimum shellcheck severity to report.",
    )
    parser.add_argument(
        "--parallel",
        "-P",
        dest="parallelism",
        type=int,
        default=None,
        metavar="N",
        help="Number of recipes processed concurrently (default: 4).",
    )
    parser.add_argument(
        "--timeout",
        dest="probe_timeout_seconds",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Wall-clock limit for each pkgver script (default: 30).",
    )
    parser.add_argument(
        "--strict",
        dest="strict_unknown_fields",
        action="store_true",
        default=None,
        help="Treat unknown fields as parse errors.",
    )
    parser.add_argument(
        "--inplace",
        "-i",
        action="store_true",
        default=None,
        help="Rewrite successful recipes with their canonical form.",
    )
    parser.add_argument(
        "--write-validated",
        action="store_true",
        default=None,
        help="Write canonical output to <file>.validated instead of rewriting.",
    )
    parser.add_argument(
        "--write-pkgver",
        dest="write_pkgver_file",
        action="store_true",
        default=None,
        help="Write the discovered version to <file>.pkgver.",
    )
    parser.add_argument(
        "--success",
        dest="success_list",
        default=None,
        metavar="PATH",
        help="Write paths of successful recipes to PATH, one per line.",
    )
    parser.add_argument(
        "--fail",
        dest="failure_list",
        default=None,
        metavar="PATH",
        help="Write paths of failed recipes to PATH, one per line.",
    )
    parser.add_argument(
        "--json", action="store_true", default=False, help="Print the run report as JSON."
    )
    parser.add_argument(
        "--keep-order",
        action="store_true",
        default=False,
        help="Report recipes in input order instead of completion order.",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to a TOML config (default: ./sbuild-lint.toml if present).",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=None,
        help="Log level for diagnostics written to stderr.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show a status line for every recipe.",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, run the lint and return the process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)

    try:
        return _cmd_lint(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code


# ---------------------------------------------------------------------------
# Command handler
# ---------------------------------------------------------------------------


def _cmd_lint(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    options = _build_options(args, config)

    observability = config.get("observability", {})
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=uuid.uuid4().hex[:12],
            log_dir=observability.get("log_dir"),
            level=observability.get("log_level", "WARNING"),
            log_format=observability.get("log_format", "text"),
        )
    )
    try:
        report = asyncio.run(_lint_with_signals(list(args.files), options))
    except RecipeIOError as exc:
        raise CLIError(str(exc), exit_code=ExitCode.INTERNAL_ERROR) from exc
    finally:
        shutdown_logging(handle)

    if args.keep_order:
        report = report.sorted_by_input()

    if args.json:
        _emit_json(report.to_dict())
    else:
        _get_renderer(args).report(report)

    return _exit_code_for(report)


async def _lint_with_signals(paths: list[str], options: LintOptions) -> RunReport:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, token.cancel)
            installed.append(signum)
    try:
        return await run_lint(paths, options, cancel_token=token)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def _exit_code_for(report: RunReport) -> int:
    if report.cancelled:
        return ExitCode.INTERRUPTED
    if report.has_failures:
        return ExitCode.LINT_FAILED
    return ExitCode.SUCCESS


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {
        "lint.pkgver": args.pkgver,
        "lint.syntax_check": args.syntax_check,
        "lint.parallelism": args.parallelism,
        "lint.probe_timeout_seconds": args.probe_timeout_seconds,
        "lint.strict_unknown_fields": args.strict_unknown_fields,
        "lint.inplace": args.inplace,
        "lint.write_validated": args.write_validated,
        "lint.write_pkgver_file": args.write_pkgver_file,
        "shellcheck.severity": args.shellcheck_severity,
        "observability.log_level": args.log_level,
    }
    try:
        return load_config(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc


def _build_options(args: argparse.Namespace, config: Mapping[str, Any]) -> LintOptions:
    try:
        return LintOptions.from_config(
            config,
            success_list=_optional_path(args.success_list),
            failure_list=_optional_path(args.failure_list),
        )
    except ValueError as exc:
        raise CLIError(f"invalid options: {exc}", exit_code=ExitCode.CONFIG_ERROR) from exc


def _optional_path(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        raise CLIError("path arguments must not be empty", exit_code=ExitCode.CONFIG_ERROR)
    return str(Path(cleaned).expanduser())


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = [
    "CLIError",
    "build_parser",
    "run_cli",
]
