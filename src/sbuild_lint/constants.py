"""Stable constants shared across the recipe engine."""

from __future__ import annotations

from typing import Final

# Recipe text conventions.
SBUILD_SHEBANG: Final[str] = "#!/SBUILD"
DEFAULT_SHELL: Final[str] = "sh"
SCRIPT_HEADER_TEMPLATE: Final[str] = "#!/usr/bin/env {shell}\n"

# Sidecar suffixes written next to a recipe.
PKGVER_SUFFIX: Final[str] = ".pkgver"
VALIDATED_SUFFIX: Final[str] = ".validated"

# Scheduler and subprocess defaults.
DEFAULT_PARALLELISM: Final[int] = 4
DEFAULT_PROBE_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_SYNTAX_CHECK_TIMEOUT_SECONDS: Final[float] = 30.0
KILL_GRACE_SECONDS: Final[float] = 2.0

# External syntax checker.
DEFAULT_SHELLCHECK_EXECUTABLE: Final[str] = "shellcheck"
SHELLCHECK_SEVERITIES: Final[tuple[str, ...]] = ("error", "warning", "info", "style")

# Environment variable names exported to version probes.
PROBE_ENV_KEYS: Final[tuple[str, ...]] = (
    "pkg",
    "pkg_id",
    "pkg_type",
    "pkgver",
    "sbuild_pkg",
    "sbuild_pkgver",
)

CONFIG_SCHEMA_VERSION: Final[int] = 1

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_PARALLELISM",
    "DEFAULT_PROBE_TIMEOUT_SECONDS",
    "DEFAULT_SHELL",
    "DEFAULT_SHELLCHECK_EXECUTABLE",
    "DEFAULT_SYNTAX_CHECK_TIMEOUT_SECONDS",
    "KILL_GRACE_SECONDS",
    "PKGVER_SUFFIX",
    "PROBE_ENV_KEYS",
    "SBUILD_SHEBANG",
    "SCRIPT_HEADER_TEMPLATE",
    "SHELLCHECK_SEVERITIES",
    "VALIDATED_SUFFIX",
]
