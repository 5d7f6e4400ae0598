"""
sbuild-lint — external shell syntax checker adapter

File: src/sbuild_lint/validation/syntax_checker.py

Purpose
- Submit a recipe's shell fragments to ``shellcheck`` and map its findings
  back onto recipe lines.

Functional requirements
- Fragments are concatenated into one synthetic script; each fragment runs in
  its own subshell so one fragment's control flow does not leak into another.
- A missing checker binary degrades to a single warning instead of failing.
- A crashing, hanging or unreadable checker yields one error for this recipe
  only.
- The synthetic script lives in a private temp file removed on every path.
"""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from sbuild_lint.constants import (
    DEFAULT_SHELL,
    DEFAULT_SHELLCHECK_EXECUTABLE,
    DEFAULT_SYNTAX_CHECK_TIMEOUT_SECONDS,
    SCRIPT_HEADER_TEMPLATE,
    SHELLCHECK_SEVERITIES,
)
from sbuild_lint.domain.errors import ToolingDegraded
from sbuild_lint.domain.models import Diagnostic, Severity
from sbuild_lint.recipe.schema import load_schema
from sbuild_lint.utils.fs import scratch_script
from sbuild_lint.utils.process import CommandSpec

if TYPE_CHECKING:
    from sbuild_lint.domain.models import Recipe
    from sbuild_lint.recipe.schema import Schema
    from sbuild_lint.utils.process import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

RULE_ID: Final[str] = "syntax-check"
_CLEAN_EXIT_CODES: Final[frozenset[int]] = frozenset({0, 1})


@dataclass(frozen=True, slots=True)
class SyntheticScript:
    """Concatenated fragments plus a map from script lines to recipe lines."""

    text: str
    shell: str
    line_map: Mapping[int, tuple[str, int]] = field(default_factory=dict)

    def locate(self, script_line: int) -> tuple[str | None, int | None]:
        found = self.line_map.get(script_line)
        if found is None:
            return None, None
        return found


def build_synthetic_script(recipe: Recipe, schema: Schema | None = None) -> SyntheticScript | None:
    """Return the synthetic script for ``recipe`` or ``None`` if it has no fragments."""

    active = schema or load_schema()
    shell = (recipe.value("shell") or DEFAULT_SHELL).strip() or DEFAULT_SHELL
    lines: list[str] = [SCRIPT_HEADER_TEMPLATE.format(shell=shell).rstrip("\n")]
    line_map: dict[int, tuple[str, int]] = {}

    for spec in active.scripts:
        for declaration in recipe.declarations(spec.name):
            if declaration.is_list or not declaration.scalar.strip():
                continue
            lines.append(f"# {spec.name}")
            lines.append("(")
            for offset, body_line in enumerate(declaration.scalar.split("\n")):
                lines.append(body_line)
                line_map[len(lines)] = (spec.name, declaration.value_line + offset)
            lines.append(")")

    if not line_map:
        return None
    return SyntheticScript(text="\n".join(lines) + "\n", shell=shell, line_map=line_map)


class SyntaxChecker:
    """Adapter around ``shellcheck --format=json1``."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        executable: str = DEFAULT_SHELLCHECK_EXECUTABLE,
        severity: str = "warning",
        timeout_seconds: float = DEFAULT_SYNTAX_CHECK_TIMEOUT_SECONDS,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        if severity not in SHELLCHECK_SEVERITIES:
            raise ValueError(f"unsupported shellcheck severity {severity!r}")
        self._runner = runner
        self._executable = executable
        self._severity = severity
        self._timeout_seconds = timeout_seconds
        self._which = which

    async def check(self, recipe: Recipe, schema: Schema | None = None) -> list[Diagnostic]:
        if recipe.value("disable_shellcheck") == "true":
            logger.debug("syntax checking disabled by recipe %s", recipe.source)
            return []

        script = build_synthetic_script(recipe, schema)
        if script is None:
            return []

        resolved = self._which(self._executable)
        if resolved is None:
            degraded = ToolingDegraded(self._executable, "executable not found")
            logger.warning("syntax checking skipped: %s", degraded)
            return [Diagnostic.warning(RULE_ID, f"syntax checking skipped: {degraded}")]

        async with scratch_script(script.text, prefix="sbuild-check-") as script_path:
            result = await self._runner.run(
                CommandSpec(
                    argv=(
                        resolved,
                        "--format=json1",
                        f"--severity={self._severity}",
                        str(script_path),
                    ),
                    timeout_seconds=self._timeout_seconds,
                )
            )
        return self._interpret(result, script)

    def _interpret(self, result: CommandResult, script: SyntheticScript) -> list[Diagnostic]:
        if result.timed_out:
            return [_checker_failure(f"timed out after {self._timeout_seconds:g}s")]
        if result.spawn_failed:
            return [_checker_failure(f"could not start: {result.error}")]
        if result.exit_code not in _CLEAN_EXIT_CODES:
            detail = _first_line(result.stderr) or "no output"
            return [_checker_failure(f"exited with status {result.exit_code}: {detail}")]

        try:
            payload = json.loads(result.stdout or '{"comments": []}')
        except json.JSONDecodeError as exc:
            return [_checker_failure(f"unreadable output: {exc.msg}")]
        comments = payload.get("comments") if isinstance(payload, dict) else None
        if not isinstance(comments, list):
            return [_checker_failure("unreadable output: missing 'comments' list")]

        findings: dict[tuple[int, int, int, str], Diagnostic] = {}
        for comment in comments:
            if not isinstance(comment, dict):
                continue
            script_line = _as_int(comment.get("line"))
            column = _as_int(comment.get("column"))
            code = _as_int(comment.get("code"))
            message = str(comment.get("message", "")).strip()
            field_name, recipe_line = script.locate(script_line)
            text = f"SC{code}: {message}"
            if field_name is not None:
                text = f"{text} (in {field_name})"
            diagnostic = Diagnostic(
                severity=_severity_for(str(comment.get("level", ""))),
                rule=RULE_ID,
                message=text,
                field=field_name,
                line=recipe_line,
            )
            findings.setdefault((recipe_line or 0, column, code, message), diagnostic)

        return [findings[key] for key in sorted(findings)]


def _severity_for(level: str) -> Severity:
    return Severity.ERROR if level == "error" else Severity.WARNING


def _checker_failure(reason: str) -> Diagnostic:
    return Diagnostic.error(RULE_ID, f"syntax checker failed: {reason}")


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    return 0


__all__ = ["RULE_ID", "SyntaxChecker", "SyntheticScript", "build_synthetic_script"]
