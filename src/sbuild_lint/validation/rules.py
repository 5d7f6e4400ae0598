"""
sbuild-lint — static recipe validation rules

File: src/sbuild_lint/validation/rules.py

Purpose
- Ordered registry of independent rule checks run against a parsed recipe.

Functional requirements
- Rules run in registration order and every rule always runs; one diagnostic
  is produced per violation so all problems surface in a single pass.
- Pure functions of (recipe, schema): no I/O, no mutation.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Final
from urllib.parse import urlsplit

from sbuild_lint.constants import SBUILD_SHEBANG
from sbuild_lint.domain.errors import ValidationError
from sbuild_lint.domain.models import Diagnostic, Field, Recipe
from sbuild_lint.recipe.canonical import derive_pkg_id
from sbuild_lint.recipe.schema import FieldSpec, Schema, Shape, load_schema

RuleCheck = Callable[[Recipe, Schema], Iterable[Diagnostic]]

_NAME_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9+._-]+")
_VERSION_RE: Final[re.Pattern[str]] = re.compile(r"[0-9A-Za-z][0-9A-Za-z.+~_:-]*")
_DIGEST_RE: Final[re.Pattern[str]] = re.compile(r"[0-9a-fA-F]{64}")
_MAX_VERSION_LENGTH: Final[int] = 128
_URL_SCHEMES: Final[frozenset[str]] = frozenset({"http", "https", "ftp"})
_BOOLEAN_VALUES: Final[frozenset[str]] = frozenset({"true", "false"})
_MAX_LISTED_CHOICES: Final[int] = 12


@dataclass(frozen=True, slots=True)
class Rule:
    rule_id: str
    check: RuleCheck


class RuleRegistry:
    """Registration-ordered collection of rules."""

    def __init__(self) -> None:
        self._rules: dict[str, Rule] = {}

    def register(self, rule_id: str, check: RuleCheck) -> None:
        if rule_id in self._rules:
            raise ValueError(f"rule {rule_id!r} is already registered")
        self._rules[rule_id] = Rule(rule_id=rule_id, check=check)

    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules.values())

    def rule_ids(self) -> tuple[str, ...]:
        return tuple(self._rules)


RULES = RuleRegistry()


def rule(rule_id: str) -> Callable[[RuleCheck], RuleCheck]:
    """Register a check in ``RULES`` under ``rule_id``."""

    def decorator(check: RuleCheck) -> RuleCheck:
        RULES.register(rule_id, check)
        return check

    return decorator


def validate_recipe(
    recipe: Recipe,
    schema: Schema | None = None,
    *,
    registry: RuleRegistry = RULES,
) -> list[Diagnostic]:
    """Run every registered rule and return diagnostics in rule order."""

    active = schema or load_schema()
    diagnostics: list[Diagnostic] = []
    for item in registry.rules():
        diagnostics.extend(item.check(recipe, active))
    return diagnostics


def ensure_valid(recipe: Recipe, schema: Schema | None = None) -> list[Diagnostic]:
    """Validate ``recipe`` and raise ``ValidationError`` when any rule reports an error.

    Returns the warnings otherwise. The exception carries every diagnostic,
    warnings included.
    """

    diagnostics = validate_recipe(recipe, schema)
    if any(item.is_error for item in diagnostics):
        raise ValidationError(diagnostics)
    return diagnostics


def _known(recipe: Recipe, schema: Schema) -> Iterator[tuple[FieldSpec, Field]]:
    for item in recipe.fields:
        spec = schema.get(item.key)
        if spec is not None:
            yield spec, item


@rule("shebang")
def check_shebang(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    if recipe.shebang is None:
        yield Diagnostic.warning("shebang", f"missing {SBUILD_SHEBANG} shebang", line=1)
    elif not recipe.shebang.startswith(SBUILD_SHEBANG):
        yield Diagnostic.warning(
            "shebang",
            f"unexpected shebang {recipe.shebang!r}, expected {SBUILD_SHEBANG}",
            line=1,
        )


@rule("required-field")
def check_required(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    for spec in schema.required:
        if not recipe.has(spec.name):
            yield Diagnostic.error(
                "required-field", f"required field {spec.name!r} is missing", field=spec.name
            )


@rule("recommended-field")
def check_recommended(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    for spec in schema.recommended:
        if not recipe.has(spec.name):
            yield Diagnostic.warning(
                "recommended-field",
                f"recommended field {spec.name!r} is missing",
                field=spec.name,
            )


@rule("unknown-field")
def check_unknown(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    for item in recipe.fields:
        if item.key not in schema:
            yield Diagnostic.warning(
                "unknown-field",
                f"unknown field {item.key!r} is passed through unchanged",
                field=item.key,
                line=item.line,
                end_line=item.end_line,
            )


@rule("duplicate-field")
def check_duplicate_fields(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    first_seen: dict[str, int] = {}
    for spec, item in _known(recipe, schema):
        if spec.repeatable:
            continue
        if spec.name not in first_seen:
            first_seen[spec.name] = item.line
            continue
        yield Diagnostic.error(
            "duplicate-field",
            f"field {spec.name!r} declared more than once (first on line {first_seen[spec.name]})",
            field=item.key,
            line=item.line,
            end_line=item.end_line,
        )


@rule("cardinality")
def check_cardinality(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    for spec, item in _known(recipe, schema):
        if item.is_list and not spec.multi:
            yield Diagnostic.error(
                "cardinality",
                f"field {spec.name!r} takes a single value, got a list",
                field=item.key,
                line=item.line,
                end_line=item.end_line,
            )


@rule("empty-value")
def check_empty(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    for spec, item in _known(recipe, schema):
        if item.is_list and not item.values:
            yield Diagnostic.error(
                "empty-value",
                f"field {spec.name!r} has an empty list",
                field=item.key,
                line=item.line,
                end_line=item.end_line,
            )
            continue
        for value in item.values:
            if not value.strip():
                yield Diagnostic.error(
                    "empty-value",
                    f"field {spec.name!r} has an empty value",
                    field=item.key,
                    line=item.line,
                    end_line=item.end_line,
                )


@rule("value-shape")
def check_shapes(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    for spec, item in _known(recipe, schema):
        for value in item.values:
            if not value.strip():
                continue
            problem = shape_problem(spec, value)
            if problem is not None:
                yield Diagnostic.error(
                    "value-shape",
                    problem,
                    field=item.key,
                    line=item.value_line,
                    end_line=item.end_line,
                )


@rule("duplicate-value")
def check_duplicate_values(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    for spec in schema.fields:
        if not spec.multi:
            continue
        declarations = recipe.declarations(spec.name)
        if not declarations:
            continue
        counts = Counter(value for value in recipe.values(spec.name) if value.strip())
        for value, count in counts.items():
            if count > 1:
                yield Diagnostic.error(
                    "duplicate-value",
                    f"duplicate value {value!r} in {spec.name!r}",
                    field=spec.name,
                    line=declarations[0].line,
                    end_line=declarations[-1].end_line,
                )


@rule("source-hash-count")
def check_source_hash_count(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    hashes = recipe.first("hashes")
    if hashes is None:
        return
    source_count = len(recipe.values("sources"))
    hash_count = len(recipe.values("hashes"))
    if source_count != hash_count:
        yield Diagnostic.error(
            "source-hash-count",
            f"'sources' has {source_count} entries but 'hashes' has {hash_count}",
            field="hashes",
            line=hashes.line,
            end_line=hashes.end_line,
        )


@rule("build-asset-count")
def check_build_asset_count(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    anchor = recipe.first("build_asset_out") or recipe.first("build_asset")
    if anchor is None:
        return
    asset_count = len(recipe.values("build_asset"))
    out_count = len(recipe.values("build_asset_out"))
    if asset_count != out_count:
        yield Diagnostic.error(
            "build-asset-count",
            f"'build_asset' has {asset_count} entries but 'build_asset_out' has {out_count}",
            field=anchor.key,
            line=anchor.line,
            end_line=anchor.end_line,
        )

@rule("pkg-id")
def check_pkg_id(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    pkg_id = recipe.first("pkg_id")
    pkg = recipe.value("pkg")
    if pkg_id is None or not pkg or not pkg_id.scalar.strip():
        return
    derived = derive_pkg_id(pkg)
    if derived and pkg_id.scalar != derived:
        yield Diagnostic.error(
            "pkg-id",
            f"pkg_id {pkg_id.scalar!r} does not match {derived!r} derived from pkg {pkg!r}",
            field="pkg_id",
            line=pkg_id.line,
            end_line=pkg_id.end_line,
        )


@rule("disabled-reason")
def check_disabled_reason(recipe: Recipe, schema: Schema) -> Iterator[Diagnostic]:
    disabled = recipe.first("_disabled")
    if disabled is None or disabled.scalar != "true":
        return
    if not (recipe.value("_disabled_reason") or "").strip():
        yield Diagnostic.warning(
            "disabled-reason",
            "recipe is disabled without a '_disabled_reason'",
            field="_disabled",
            line=disabled.line,
        )


def shape_problem(spec: FieldSpec, value: str) -> str | None:
    """Return a message describing why ``value`` violates ``spec.shape``."""

    name = spec.name
    if spec.shape is Shape.NAME and not _NAME_RE.fullmatch(value):
        return (
            f"invalid value {value!r} for {name!r}: "
            "allowed characters are letters, digits and + . _ -"
        )
    if spec.shape is Shape.VERSION and not is_valid_version(value):
        return f"invalid version {value!r} for {name!r}"
    if spec.shape is Shape.URL and not is_valid_url(value):
        return f"invalid URL {value!r} for {name!r}: expected http, https or ftp with a host"
    if spec.shape is Shape.DIGEST and not _DIGEST_RE.fullmatch(value):
        return f"invalid digest {value!r} for {name!r}: expected 64 hex characters"
    if spec.shape is Shape.BOOLEAN and value not in _BOOLEAN_VALUES:
        return f"expected true or false for {name!r}, got {value!r}"
    if spec.shape is Shape.ENUM and value not in spec.choices:
        if len(spec.choices) <= _MAX_LISTED_CHOICES:
            expected = ", ".join(sorted(spec.choices))
            return f"invalid value {value!r} for {name!r}; expected one of: {expected}"
        return f"invalid value {value!r} for {name!r}"
    return None


def is_valid_version(value: str) -> bool:
    return len(value) <= _MAX_VERSION_LENGTH and _VERSION_RE.fullmatch(value) is not None


def is_valid_url(value: str) -> bool:
    if any(char.isspace() for char in value):
        return False
    try:
        parts = urlsplit(value)
        host = parts.hostname
    except ValueError:
        return False
    if parts.scheme not in _URL_SCHEMES or not host:
        return False
    return "." in host or host == "localhost"


__all__ = [
    "RULES",
    "Rule",
    "RuleCheck",
    "RuleRegistry",
    "ensure_valid",
    "is_valid_url",
    "is_valid_version",
    "rule",
    "shape_problem",
    "validate_recipe",
]
