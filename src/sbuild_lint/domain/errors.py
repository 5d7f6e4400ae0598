"""
sbuild-lint — error taxonomy

File: src/sbuild_lint/domain/errors.py

Purpose
- Typed exceptions raised by the recipe pipeline phases.

Functional requirements
- Every error is scoped to a single job; the scheduler converts them into
  ``JobOutcome`` values and never lets one job abort its siblings.
- ``ParseError`` always carries the 1-based source line it refers to.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sbuild_lint.domain.models import Diagnostic


class SbuildLintError(Exception):
    """Base class for recipe engine failures."""


class ParseError(SbuildLintError):
    """Recipe text could not be parsed into fields."""

    def __init__(self, line: int, reason: str, *, source: str | None = None) -> None:
        self.line = line
        self.reason = reason
        self.source = source
        prefix = f"{source}:{line}" if source else f"line {line}"
        super().__init__(f"{prefix}: {reason}")


class ValidationError(SbuildLintError):
    """Static validation produced error-severity diagnostics."""

    def __init__(self, diagnostics: Sequence[Diagnostic]) -> None:
        self.diagnostics = tuple(diagnostics)
        count = sum(1 for item in self.diagnostics if item.is_error)
        super().__init__(f"recipe has {count} validation error(s)")


class ToolingDegraded(SbuildLintError):
    """An optional external tool is unavailable; the affected phase is skipped."""

    def __init__(self, tool: str, reason: str) -> None:
        self.tool = tool
        self.reason = reason
        super().__init__(f"{tool}: {reason}")


class ProbeFailure(SbuildLintError):
    """The ``pkgver`` fragment ran but did not yield a usable version."""

    def __init__(self, reason: str, *, exit_code: int | None = None, stderr: str = "") -> None:
        self.reason = reason
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(reason)


class ProbeTimeout(SbuildLintError):
    """The ``pkgver`` fragment exceeded its wall-clock budget and was killed."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"pkgver check timed out after {timeout_seconds:g}s")


class RecipeIOError(SbuildLintError):
    """Reading or writing a recipe file failed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


__all__ = [
    "ParseError",
    "ProbeFailure",
    "ProbeTimeout",
    "RecipeIOError",
    "SbuildLintError",
    "ToolingDegraded",
    "ValidationError",
]
