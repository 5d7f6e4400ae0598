"""Recipe schema, parser and canonical emitter."""

from sbuild_lint.recipe.canonical import canonicalize, derive_pkg_id, format_scalar, recipe_hash
from sbuild_lint.recipe.parser import parse_recipe
from sbuild_lint.recipe.schema import (
    FieldSpec,
    Schema,
    SchemaError,
    Shape,
    load_schema,
    parse_schema,
)

__all__ = [
    "FieldSpec",
    "Schema",
    "SchemaError",
    "Shape",
    "canonicalize",
    "derive_pkg_id",
    "format_scalar",
    "load_schema",
    "parse_recipe",
    "parse_schema",
    "recipe_hash",
]
