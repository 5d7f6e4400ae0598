"""Recipe, diagnostic and job outcome models with canonical serialization."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Final

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_UNKNOWN_LINE: Final[int] = 0


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class FieldForm(StrEnum):
    SCALAR = "scalar"
    LIST = "list"
    HEREDOC = "heredoc"


class JobState(StrEnum):
    QUEUED = "queued"
    PARSING = "parsing"
    STATIC_VALIDATING = "static_validating"
    SYNTAX_CHECKING = "syntax_checking"
    VERSION_PROBING = "version_probing"
    CANONICALIZING = "canonicalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    IO_ERROR = "io_error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES: Final[frozenset[JobState]] = frozenset(
    {JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT, JobState.IO_ERROR}
)


class FailureKind(StrEnum):
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    PROBE_FAILURE = "probe_failure"
    PROBE_TIMEOUT = "probe_timeout"
    IO_ERROR = "io_error"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One finding about a recipe, anchored to a field and line when known."""

    severity: Severity
    rule: str
    message: str
    field: str | None = None
    line: int | None = None
    end_line: int | None = None

    @classmethod
    def error(
        cls,
        rule: str,
        message: str,
        *,
        field: str | None = None,
        line: int | None = None,
        end_line: int | None = None,
    ) -> Diagnostic:
        return cls(Severity.ERROR, rule, message, field, line, end_line)

    @classmethod
    def warning(
        cls,
        rule: str,
        message: str,
        *,
        field: str | None = None,
        line: int | None = None,
        end_line: int | None = None,
    ) -> Diagnostic:
        return cls(Severity.WARNING, rule, message, field, line, end_line)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def sort_key(self) -> tuple[int, int, str, str, str]:
        return (
            self.line if self.line is not None else _UNKNOWN_LINE,
            0 if self.is_error else 1,
            self.rule,
            self.field or "",
            self.message,
        )

    def render(self, path: str) -> str:
        location = f"{path}:{self.line}" if self.line is not None else path
        return f"{location}: {self.severity} [{self.rule}] {self.message}"

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "severity": str(self.severity),
            "rule": self.rule,
            "message": self.message,
            "field": self.field,
            "line": self.line,
            "end_line": self.end_line,
        }


@dataclass(frozen=True, slots=True)
class Field:
    """A single ``key=value`` declaration as written in the recipe."""

    key: str
    values: tuple[str, ...]
    form: FieldForm
    line: int
    end_line: int
    value_line: int
    known: bool = True
    comments: tuple[str, ...] = ()

    @property
    def is_list(self) -> bool:
        return self.form is FieldForm.LIST

    @property
    def scalar(self) -> str:
        return self.values[0] if self.values else ""


@dataclass(slots=True)
class Recipe:
    """Ordered, comment-preserving view of a parsed SBUILD recipe.

    ``fields`` keeps raw declarations in source order, including repeated keys
    and keys the schema does not know about.
    """

    source: str
    text: str
    fields: list[Field] = field(default_factory=list)
    shebang: str | None = None
    trailing_comments: tuple[str, ...] = ()

    def keys(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for item in self.fields:
            seen.setdefault(item.key, None)
        return tuple(seen)

    def has(self, key: str) -> bool:
        return any(item.key == key for item in self.fields)

    def declarations(self, key: str) -> tuple[Field, ...]:
        return tuple(item for item in self.fields if item.key == key)

    def first(self, key: str) -> Field | None:
        for item in self.fields:
            if item.key == key:
                return item
        return None

    def values(self, key: str) -> tuple[str, ...]:
        collected: list[str] = []
        for item in self.declarations(key):
            collected.extend(item.values)
        return tuple(collected)

    def value(self, key: str) -> str | None:
        found = self.first(key)
        if found is None or not found.values:
            return None
        return found.values[0]

    def without(self, key: str) -> Recipe:
        """Return a copy with every declaration of ``key`` removed."""

        return replace(self, fields=[item for item in self.fields if item.key != key])

    def set_value(self, key: str, value: str, *, known: bool = True) -> None:
        """Replace the first declaration of ``key`` with a scalar, or append one."""

        for index, item in enumerate(self.fields):
            if item.key == key:
                self.fields[index] = replace(item, values=(value,), form=FieldForm.SCALAR)
                return
        line = max((item.end_line for item in self.fields), default=0) + 1
        self.fields.append(
            Field(
                key=key,
                values=(value,),
                form=FieldForm.SCALAR,
                line=line,
                end_line=line,
                value_line=line,
                known=known,
            )
        )


@dataclass(frozen=True, slots=True)
class JobOutcome:
    """Immutable result of processing one recipe file."""

    path: str
    state: JobState
    diagnostics: tuple[Diagnostic, ...] = ()
    failure: FailureKind | None = None
    canonical_text: str | None = None
    declared_version: str | None = None
    discovered_version: str | None = None
    version_updated: bool = False
    recipe_hash: str | None = None
    duration_ms: int = 0
    input_index: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.SUCCEEDED

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(item for item in self.diagnostics if item.is_error)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(item for item in self.diagnostics if not item.is_error)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "path": self.path,
            "state": str(self.state),
            "failure": str(self.failure) if self.failure is not None else None,
            "diagnostics": [item.to_dict() for item in self.diagnostics],
            "declared_version": self.declared_version,
            "discovered_version": self.discovered_version,
            "version_updated": self.version_updated,
            "recipe_hash": self.recipe_hash,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class RunReport:
    """Aggregated outcomes of one ``run_lint`` invocation, in completion order."""

    outcomes: tuple[JobOutcome, ...]
    cancelled: bool = False
    pending: tuple[str, ...] = ()
    duration_ms: int = 0

    @property
    def succeeded_paths(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.outcomes if item.succeeded)

    @property
    def failed_paths(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.outcomes if not item.succeeded)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_paths) or self.cancelled

    def outcome_for(self, path: str) -> JobOutcome | None:
        for item in self.outcomes:
            if item.path == path:
                return item
        return None

    def sorted_by_input(self) -> RunReport:
        ordered = tuple(sorted(self.outcomes, key=lambda item: item.input_index))
        return replace(self, outcomes=ordered)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "outcomes": [item.to_dict() for item in self.outcomes],
            "succeeded": list(self.succeeded_paths),
            "failed": list(self.failed_paths),
            "cancelled": self.cancelled,
            "pending": list(self.pending),
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "Diagnostic",
    "FailureKind",
    "Field",
    "FieldForm",
    "JSONScalar",
    "JSONValue",
    "JobOutcome",
    "JobState",
    "Recipe",
    "RunReport",
    "Severity",
]
