"""Frozen run options consumed by the recipe scheduler."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from sbuild_lint.constants import (
    DEFAULT_PARALLELISM,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_SHELLCHECK_EXECUTABLE,
    DEFAULT_SYNTAX_CHECK_TIMEOUT_SECONDS,
    SHELLCHECK_SEVERITIES,
)


@dataclass(frozen=True, slots=True)
class LintOptions:
    """Effective options for one ``run_lint`` invocation."""

    pkgver: bool = False
    syntax_check: bool = True
    parallelism: int = DEFAULT_PARALLELISM
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS
    strict_unknown_fields: bool = False
    inplace: bool = False
    probe_failure_fatal: bool = True
    write_pkgver_file: bool = False
    write_validated: bool = False
    shellcheck_executable: str = DEFAULT_SHELLCHECK_EXECUTABLE
    shellcheck_severity: str = "warning"
    syntax_check_timeout_seconds: float = DEFAULT_SYNTAX_CHECK_TIMEOUT_SECONDS
    success_list: str | None = None
    failure_list: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.parallelism, bool) or self.parallelism < 1:
            raise ValueError("parallelism must be >= 1")
        if self.probe_timeout_seconds <= 0:
            raise ValueError("probe_timeout_seconds must be > 0")
        if self.syntax_check_timeout_seconds <= 0:
            raise ValueError("syntax_check_timeout_seconds must be > 0")
        if self.shellcheck_severity not in SHELLCHECK_SEVERITIES:
            expected = ", ".join(SHELLCHECK_SEVERITIES)
            raise ValueError(f"shellcheck_severity must be one of: {expected}")

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **overrides: Any) -> LintOptions:
        """Build options from a validated config mapping (``[lint]`` + ``[shellcheck]``)."""

        lint = dict(config.get("lint", {}))
        shellcheck = config.get("shellcheck", {})
        if "executable" in shellcheck:
            lint["shellcheck_executable"] = shellcheck["executable"]
        if "severity" in shellcheck:
            lint["shellcheck_severity"] = shellcheck["severity"]
        if "timeout_seconds" in shellcheck:
            lint["syntax_check_timeout_seconds"] = shellcheck["timeout_seconds"]

        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in lint.items() if key in known}
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


__all__ = ["LintOptions"]
