"""Static rules, external syntax checking and dynamic version probing."""

from sbuild_lint.validation.rules import (
    RULES,
    Rule,
    RuleRegistry,
    ensure_valid,
    is_valid_url,
    is_valid_version,
    rule,
    shape_problem,
    validate_recipe,
)
from sbuild_lint.validation.syntax_checker import (
    SyntaxChecker,
    SyntheticScript,
    build_synthetic_script,
)
from sbuild_lint.validation.version_probe import ProbeResult, VersionProber, probe_environment

__all__ = [
    "RULES",
    "ProbeResult",
    "Rule",
    "RuleRegistry",
    "SyntaxChecker",
    "SyntheticScript",
    "VersionProber",
    "build_synthetic_script",
    "ensure_valid",
    "is_valid_url",
    "is_valid_version",
    "probe_environment",
    "rule",
    "shape_problem",
    "validate_recipe",
]
