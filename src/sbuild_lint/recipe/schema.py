"""
sbuild-lint — recipe field schema

File: src/sbuild_lint/recipe/schema.py

Purpose
- Load the read-only field table from the packaged ``schema.yaml``.
- Expose lookups used by the parser, the validator and the canonicalizer.

Functional requirements
- The schema is loaded once per process and never mutated afterwards.
- Field order in ``schema.yaml`` is the canonical emission order.
- Malformed schema files fail loudly with every problem listed.
"""

from __future__ import annotations

import functools
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from importlib import resources
from types import MappingProxyType
from typing import Any, Final

import yaml

_SCHEMA_PACKAGE: Final[str] = "sbuild_lint.recipe"
_SCHEMA_RESOURCE: Final[str] = "schema.yaml"
_FLAG_KEYS: Final[tuple[str, ...]] = ("multi", "required", "recommended", "repeatable")


class Shape(StrEnum):
    STRING = "string"
    NAME = "name"
    VERSION = "version"
    URL = "url"
    DIGEST = "digest"
    BOOLEAN = "boolean"
    ENUM = "enum"
    SCRIPT = "script"


class SchemaError(ValueError):
    """Raised when a schema document is structurally invalid."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = tuple(problems)
        rendered = "\n".join(f"- {item}" for item in self.problems)
        super().__init__(f"invalid recipe schema:\n{rendered}")


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Declared properties of one recognized recipe field."""

    name: str
    shape: Shape
    multi: bool = False
    required: bool = False
    recommended: bool = False
    repeatable: bool = False
    choices: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class Schema:
    """Immutable, ordered collection of field specs."""

    version: int
    fields: tuple[FieldSpec, ...]
    _index: Mapping[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index = {spec.name: spec for spec in self.fields}
        object.__setattr__(self, "_index", MappingProxyType(index))

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def get(self, name: str) -> FieldSpec | None:
        return self._index.get(name)

    @property
    def required(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if spec.required)

    @property
    def recommended(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if spec.recommended)

    @property
    def scripts(self) -> tuple[FieldSpec, ...]:
        return tuple(spec for spec in self.fields if spec.shape is Shape.SCRIPT)


@functools.cache
def load_schema() -> Schema:
    """Return the process-wide schema loaded from package data."""

    text = resources.files(_SCHEMA_PACKAGE).joinpath(_SCHEMA_RESOURCE).read_text(encoding="utf-8")
    return parse_schema(text)


def parse_schema(text: str) -> Schema:
    """Build a ``Schema`` from YAML text, collecting all structural problems."""

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SchemaError([f"unparseable YAML: {exc}"]) from exc

    problems: list[str] = []
    if not isinstance(document, Mapping):
        raise SchemaError(["schema root must be a mapping"])

    version = document.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        problems.append("version: expected integer")
        version = 1

    raw_fields = document.get("fields")
    if not isinstance(raw_fields, list) or not raw_fields:
        raise SchemaError([*problems, "fields: expected a non-empty list"])

    specs: list[FieldSpec] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_fields):
        spec = _parse_field(raw, index, problems)
        if spec is None:
            continue
        if spec.name in seen:
            problems.append(f"fields[{index}]: duplicate field {spec.name!r}")
            continue
        seen.add(spec.name)
        specs.append(spec)

    if problems:
        raise SchemaError(problems)
    return Schema(version=version, fields=tuple(specs))


def _parse_field(raw: Any, index: int, problems: list[str]) -> FieldSpec | None:
    path = f"fields[{index}]"
    if not isinstance(raw, Mapping):
        problems.append(f"{path}: expected mapping")
        return None

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        problems.append(f"{path}.name: expected non-empty string")
        return None

    try:
        shape = Shape(raw.get("shape", "string"))
    except ValueError:
        problems.append(f"{path}.shape: unknown shape {raw.get('shape')!r}")
        return None

    flags: dict[str, bool] = {}
    for key in _FLAG_KEYS:
        value = raw.get(key, False)
        if not isinstance(value, bool):
            problems.append(f"{path}.{key}: expected boolean")
            value = False
        flags[key] = value

    raw_choices = raw.get("choices", [])
    if not isinstance(raw_choices, list) or not all(isinstance(item, str) for item in raw_choices):
        problems.append(f"{path}.choices: expected list of strings")
        raw_choices = []
    if shape is Shape.ENUM and not raw_choices:
        problems.append(f"{path}.choices: enum fields need at least one choice")

    return FieldSpec(
        name=name.strip(),
        shape=shape,
        choices=frozenset(raw_choices),
        **flags,
    )


__all__ = ["FieldSpec", "Schema", "SchemaError", "Shape", "load_schema", "parse_schema"]
