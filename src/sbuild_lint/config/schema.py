"""
sbuild-lint — configuration schema and validation.

File: src/sbuild_lint/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Unknown keys are rejected so typos in ``sbuild-lint.toml`` never pass silently.
- Deterministic deep-merge used by the loader for every precedence layer.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, NotRequired, TypedDict

from sbuild_lint.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_PARALLELISM,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_SHELLCHECK_EXECUTABLE,
    DEFAULT_SYNTAX_CHECK_TIMEOUT_SECONDS,
    SHELLCHECK_SEVERITIES,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")

# Config paths that are normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("observability", "log_dir"),)


class MetaConfig(TypedDict):
    schema_version: int


class LintConfig(TypedDict):
    pkgver: bool
    syntax_check: bool
    parallelism: int
    probe_timeout_seconds: float
    strict_unknown_fields: bool
    inplace: bool
    probe_failure_fatal: bool
    write_pkgver_file: bool
    write_validated: bool


class ShellcheckConfig(TypedDict):
    executable: str
    severity: str
    timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: str
    log_format: str
    log_dir: NotRequired[str]


class SbuildLintConfig(TypedDict):
    meta: MetaConfig
    lint: LintConfig
    shellcheck: ShellcheckConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[SbuildLintConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "lint": {
        "pkgver": False,
        "syntax_check": True,
        "parallelism": DEFAULT_PARALLELISM,
        "probe_timeout_seconds": DEFAULT_PROBE_TIMEOUT_SECONDS,
        "strict_unknown_fields": False,
        "inplace": False,
        "probe_failure_fatal": True,
        "write_pkgver_file": False,
        "write_validated": False,
    },
    "shellcheck": {
        "executable": DEFAULT_SHELLCHECK_EXECUTABLE,
        "severity": "warning",
        "timeout_seconds": DEFAULT_SYNTAX_CHECK_TIMEOUT_SECONDS,
    },
    "observability": {
        "log_level": "WARNING",
        "log_format": "text",
    },
}

_LINT_BOOLEAN_KEYS: Final[tuple[str, ...]] = (
    "pkgver",
    "syntax_check",
    "strict_unknown_fields",
    "inplace",
    "probe_failure_fatal",
    "write_pkgver_file",
    "write_validated",
)


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> SbuildLintConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade sbuild-lint.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade sbuild-lint"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    sections: dict[str, Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]]] = {
        "meta": _validate_meta,
        "lint": _validate_lint,
        "shellcheck": _validate_shellcheck,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(payload, set(sections), "", issues)

    out: dict[str, Any] = {}
    for key, validator in sections.items():
        raw = payload.get(key)
        if raw is None:
            continue
        section_obj = _as_object(raw, key, issues)
        if section_obj is None:
            continue
        out[key] = validator(section_obj, key, issues)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(payload["schema_version"], _join(path, "schema_version"), issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_lint(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {*_LINT_BOOLEAN_KEYS, "parallelism", "probe_timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in _LINT_BOOLEAN_KEYS:
        if key in payload:
            parsed_bool = _as_bool(payload[key], _join(path, key), issues)
            if parsed_bool is not None:
                out[key] = parsed_bool

    if "parallelism" in payload:
        parsed_parallelism = _as_int(
            payload["parallelism"], _join(path, "parallelism"), issues, minimum=1
        )
        if parsed_parallelism is not None:
            out["parallelism"] = parsed_parallelism

    if "probe_timeout_seconds" in payload:
        parsed_timeout = _as_positive_float(
            payload["probe_timeout_seconds"], _join(path, "probe_timeout_seconds"), issues
        )
        if parsed_timeout is not None:
            out["probe_timeout_seconds"] = parsed_timeout

    if out.get("inplace") and out.get("write_validated"):
        issues.add(_join(path, "write_validated"), "cannot be combined with inplace")
    return out


def _validate_shellcheck(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"executable", "severity", "timeout_seconds"}, path, issues)

    out: dict[str, Any] = {}
    if "executable" in payload:
        parsed_executable = _as_str(payload["executable"], _join(path, "executable"), issues)
        if parsed_executable is not None:
            out["executable"] = parsed_executable

    if "severity" in payload:
        parsed_severity = _as_enum(
            payload["severity"],
            _join(path, "severity"),
            issues,
            allowed_values=SHELLCHECK_SEVERITIES,
        )
        if parsed_severity is not None:
            out["severity"] = parsed_severity

    if "timeout_seconds" in payload:
        parsed_timeout = _as_positive_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"log_level", "log_format", "log_dir"}, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        level = raw_level.upper() if isinstance(raw_level, str) else raw_level
        parsed_log_level = _as_enum(
            level, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level

    if "log_format" in payload:
        parsed_log_format = _as_enum(
            payload["log_format"], _join(path, "log_format"), issues, allowed_values=LOG_FORMATS
        )
        if parsed_log_format is not None:
            out["log_format"] = parsed_log_format

    if "log_dir" in payload:
        parsed_log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_log_dir is not None:
            out["log_dir"] = parsed_log_dir
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_positive_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if parsed <= 0:
        issues.add(path, "must be > 0")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        item = value[key]
        out[key] = _deep_copy_mapping(item) if isinstance(item, Mapping) else copy.deepcopy(item)
    return out


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "LintConfig",
    "ObservabilityConfig",
    "SbuildLintConfig",
    "ShellcheckConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
