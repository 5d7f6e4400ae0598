"""
sbuild-lint — canonical recipe emitter

File: src/sbuild_lint/recipe/canonical.py

Purpose
- Render a validated ``Recipe`` in canonical form.
- Compute the recipe identity hash used by build caches.

Functional requirements
- ``canonicalize(parse(canonicalize(r))) == canonicalize(r)`` byte for byte.
- Known fields follow schema order; unknown fields follow in source order.
- Comments stay attached to the field they preceded.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

from sbuild_lint.constants import SBUILD_SHEBANG
from sbuild_lint.domain.models import FieldForm
from sbuild_lint.recipe.parser import parse_recipe
from sbuild_lint.recipe.schema import Shape, load_schema
from sbuild_lint.utils.hashing import sha256_text

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sbuild_lint.domain.models import Field, Recipe
    from sbuild_lint.recipe.schema import FieldSpec, Schema

_BARE_SAFE_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_@%+=:,./~^-]+")
_PKG_ID_INVALID_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9.+-]+")
_HEREDOC_DELIMITER: Final[str] = "EOF"
_LIST_INDENT: Final[str] = "  "


def canonicalize(recipe: Recipe, schema: Schema | None = None) -> str:
    """Return the canonical text for ``recipe``."""

    active = schema or load_schema()
    lines: list[str] = [_canonical_shebang(recipe.shebang)]

    for spec in active.fields:
        declarations = recipe.declarations(spec.name)
        if not declarations:
            continue
        comments = [line for item in declarations for line in item.comments]
        values = tuple(value for item in declarations for value in item.values)
        lines.extend(comments)
        lines.extend(_emit_known(spec, values, declarations))

    for item in recipe.fields:
        if item.key in active:
            continue
        lines.extend(item.comments)
        lines.extend(_emit_unknown(item))

    lines.extend(recipe.trailing_comments)
    return "\n".join(lines) + "\n"


def recipe_hash(
    source: str | Recipe,
    *,
    exclude_version: bool = False,
    schema: Schema | None = None,
) -> str:
    """SHA-256 over the normalized canonical text of a recipe.

    Blank lines and comments are dropped (the shebang is kept) and every line
    is trimmed. With ``exclude_version`` the ``version`` field is left out so a
    pure version bump keeps the same identity; script lines are unaffected.
    """

    if isinstance(source, str):
        source = parse_recipe(source, schema=schema)
    if exclude_version:
        source = source.without("version")
    text = canonicalize(source, schema)

    kept: list[str] = []
    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#") and not line.startswith("#!"):
            continue
        kept.append(line)
    return sha256_text("\n".join(kept))


def derive_pkg_id(pkg: str) -> str:
    """Normalize a package name into its identifier form."""

    return _PKG_ID_INVALID_RE.sub("-", pkg.strip().lower()).strip("-.")


def format_scalar(value: str) -> str:
    if _BARE_SAFE_RE.fullmatch(value):
        return value
    escaped = (
        value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$").replace("`", "\\`")
    )
    return f'"{escaped}"'


def _canonical_shebang(shebang: str | None) -> str:
    if shebang and shebang.startswith(SBUILD_SHEBANG):
        return shebang
    return SBUILD_SHEBANG


def _emit_known(spec: FieldSpec, values: tuple[str, ...], declarations: Iterable[Field]) -> list[str]:
    if spec.multi or any(item.is_list for item in declarations) or len(values) > 1:
        return _emit_list(spec.name, values)
    value = values[0] if values else ""
    if spec.shape is Shape.SCRIPT and "\n" in value:
        return _emit_heredoc(spec.name, value)
    return [f"{spec.name}={format_scalar(value)}"]


def _emit_unknown(item: Field) -> list[str]:
    if item.form is FieldForm.LIST:
        return _emit_list(item.key, item.values)
    if "\n" in item.scalar:
        return _emit_heredoc(item.key, item.scalar)
    return [f"{item.key}={format_scalar(item.scalar)}"]


def _emit_list(key: str, values: tuple[str, ...]) -> list[str]:
    if not values:
        return [f"{key}=()"]
    return [f"{key}=(", *(f"{_LIST_INDENT}{format_scalar(value)}" for value in values), ")"]


def _emit_heredoc(key: str, body: str) -> list[str]:
    body_lines = body.split("\n")
    delimiter = _HEREDOC_DELIMITER
    suffix = 0
    taken = set(body_lines)
    while delimiter in taken:
        suffix += 1
        delimiter = f"{_HEREDOC_DELIMITER}_{suffix}"
    return [f"{key}=<<'{delimiter}'", *body_lines, delimiter]


__all__ = ["canonicalize", "derive_pkg_id", "format_scalar", "recipe_hash"]
