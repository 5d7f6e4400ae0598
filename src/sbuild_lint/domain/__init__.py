"""Domain models and error taxonomy for the recipe engine."""

from sbuild_lint.domain.errors import (
    ParseError,
    ProbeFailure,
    ProbeTimeout,
    RecipeIOError,
    SbuildLintError,
    ToolingDegraded,
    ValidationError,
)
from sbuild_lint.domain.models import (
    Diagnostic,
    FailureKind,
    Field,
    FieldForm,
    JobOutcome,
    JobState,
    Recipe,
    RunReport,
    Severity,
)

__all__ = [
    "Diagnostic",
    "FailureKind",
    "Field",
    "FieldForm",
    "JobOutcome",
    "JobState",
    "ParseError",
    "ProbeFailure",
    "ProbeTimeout",
    "Recipe",
    "RecipeIOError",
    "RunReport",
    "SbuildLintError",
    "Severity",
    "ToolingDegraded",
    "ValidationError",
]
