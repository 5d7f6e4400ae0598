"""
sbuild-lint config package public API.

File: src/sbuild_lint/config/__init__.py

Purpose
- Export config loading/validation entrypoints, public error types and the
  frozen ``LintOptions`` consumed by the scheduler.
"""

from sbuild_lint.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    load_config,
    normalize_paths,
)
from sbuild_lint.config.options import LintOptions
from sbuild_lint.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    SbuildLintConfig,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LintOptions",
    "SbuildLintConfig",
    "assert_valid_config",
    "default_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
