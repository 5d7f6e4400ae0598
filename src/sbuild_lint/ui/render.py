"""Output rendering for the sbuild-lint CLI.

File: src/sbuild_lint/ui/render.py

Purpose
- Render a ``RunReport`` as ``path:line: severity [rule] message`` lines and a
  one-line summary.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final

from sbuild_lint.domain.models import JobState, Severity

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sbuild_lint.domain.models import Diagnostic, JobOutcome, RunReport

_RESET: Final[str] = "\033[0m"
_SEVERITY_COLORS: Final[dict[Severity, str]] = {
    Severity.ERROR: "\033[31m",
    Severity.WARNING: "\033[33m",
}
_STATE_LABELS: Final[dict[JobState, str]] = {
    JobState.SUCCEEDED: "ok",
    JobState.FAILED: "failed",
    JobState.TIMED_OUT: "timed out",
    JobState.IO_ERROR: "i/o error",
}


def _color_allowed(no_color_flag: bool) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces deterministic plain-text output; severities are colored only on
    a terminal that allows it.
    """

    def __init__(self, *, no_color: bool = False, verbose: bool = False) -> None:
        self.verbose = verbose
        self._color = _color_allowed(no_color)

    def diagnostic(self, path: str, item: Diagnostic) -> None:
        line = item.render(path)
        if self._color:
            color = _SEVERITY_COLORS[item.severity]
            line = line.replace(f" {item.severity} ", f" {color}{item.severity}{_RESET} ", 1)
        print(line)

    def outcome(self, item: JobOutcome) -> None:
        for diagnostic in item.diagnostics:
            self.diagnostic(item.path, diagnostic)
        if self.verbose or not item.succeeded:
            print(f"{item.path}: {_STATE_LABELS.get(item.state, str(item.state))}")
        if item.version_updated and item.discovered_version is not None:
            print(f"{item.path}: version {item.declared_version} -> {item.discovered_version}")

    def report(self, report: RunReport) -> None:
        for item in report.outcomes:
            self.outcome(item)
        self.summary(report)

    def summary(self, report: RunReport) -> None:
        succeeded = len(report.succeeded_paths)
        failed = len(report.failed_paths)
        total = succeeded + failed
        line = f"checked {total} recipe(s): {succeeded} succeeded, {failed} failed"
        if report.cancelled:
            line = f"{line}, cancelled with {len(report.pending)} pending"
        print(line)
        if report.cancelled and self.verbose:
            self.items(report.pending)

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            print(f"  {prefix}{entry}")


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
