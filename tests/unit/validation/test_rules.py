"""
sbuild-lint — unit tests for static validation rules

File: tests/unit/validation/test_rules.py

Purpose
- Validate each registered rule in isolation and the aggregated run order.

What this test file should cover
- A complete recipe produces no diagnostics.
- Every violation yields exactly one diagnostic with field and line anchors.
- Paired lists (sources/hashes, build_asset/build_asset_out) must line up.
- Rules run in registration order and custom registries are honored.
"""

from __future__ import annotations

import pytest

from sbuild_lint.domain.errors import ValidationError
from sbuild_lint.domain.models import Diagnostic, Severity
from sbuild_lint.recipe.parser import parse_recipe
from sbuild_lint.validation.rules import (
    RULES,
    RuleRegistry,
    ensure_valid,
    is_valid_url,
    is_valid_version,
    validate_recipe,
)

DIGEST = "a" * 64

VALID_RECIPE = f"""#!/SBUILD
pkg=hello
version=2.12.1
description="GNU Hello"
license=(GPL-3.0-or-later)
arch=(x86_64 aarch64)
sources=(https://ftp.gnu.org/gnu/hello/hello-2.12.1.tar.gz)
hashes=({DIGEST})
run=make
"""


def _diagnostics(text: str) -> list[Diagnostic]:
    return validate_recipe(parse_recipe(text))


def _by_rule(diagnostics: list[Diagnostic], rule_id: str) -> list[Diagnostic]:
    return [item for item in diagnostics if item.rule == rule_id]


def test_complete_recipe_is_clean() -> None:
    assert _diagnostics(VALID_RECIPE) == []


def test_missing_required_fields_are_errors() -> None:
    diagnostics = _diagnostics("#!/SBUILD\ndescription=x\n")
    required = _by_rule(diagnostics, "required-field")

    assert [item.field for item in required] == ["pkg", "version"]
    assert all(item.severity is Severity.ERROR for item in required)
    assert required[0].message == "required field 'pkg' is missing"


def test_missing_recommended_fields_are_warnings() -> None:
    diagnostics = _diagnostics("#!/SBUILD\npkg=foo\nversion=1.0.0\npkgver=echo 1.2.0\n")

    assert {item.severity for item in diagnostics} == {Severity.WARNING}
    assert [item.field for item in _by_rule(diagnostics, "recommended-field")] == [
        "description",
        "sources",
        "run",
    ]


def test_missing_shebang_is_a_warning_on_line_one() -> None:
    (shebang,) = _by_rule(_diagnostics("pkg=foo\nversion=1\n"), "shebang")

    assert shebang.severity is Severity.WARNING
    assert shebang.line == 1


def test_source_hash_mismatch_yields_single_error() -> None:
    text = VALID_RECIPE.replace(
        "sources=(https://ftp.gnu.org/gnu/hello/hello-2.12.1.tar.gz)",
        "sources=(https://example.org/a.tar.gz https://example.org/b.tar.gz)",
    )
    mismatches = _by_rule(_diagnostics(text), "source-hash-count")

    assert len(mismatches) == 1
    assert mismatches[0].message == "'sources' has 2 entries but 'hashes' has 1"
    assert mismatches[0].line == 8


def test_build_asset_pairs_must_line_up() -> None:
    hashes = f"hashes=({DIGEST})\n"
    paired = VALID_RECIPE.replace(
        hashes,
        hashes + "build_asset=(https://example.org/a.patch https://example.org/b.patch)\n"
        "build_asset_out=(a.patch b.patch)\n",
    )
    short = paired.replace("build_asset_out=(a.patch b.patch)", "build_asset_out=(a.patch)")
    unpaired = VALID_RECIPE.replace(hashes, hashes + "build_asset=https://example.org/a.patch\n")

    assert _diagnostics(paired) == []
    (mismatch,) = _by_rule(_diagnostics(short), "build-asset-count")
    assert mismatch.message == "'build_asset' has 2 entries but 'build_asset_out' has 1"
    assert (mismatch.field, mismatch.line) == ("build_asset_out", 10)
    (missing,) = _by_rule(_diagnostics(unpaired), "build-asset-count")
    assert (missing.field, missing.line) == ("build_asset", 9)

def test_pkg_id_must_match_derived_identifier() -> None:
    ok = VALID_RECIPE.replace("pkg=hello\n", "pkg=hello\npkg_id=hello\n")
    bad = VALID_RECIPE.replace("pkg=hello\n", "pkg=hello\npkg_id=hi\n")

    assert _by_rule(_diagnostics(ok), "pkg-id") == []
    (mismatch,) = _by_rule(_diagnostics(bad), "pkg-id")
    assert mismatch.line == 3
    assert "'hello'" in mismatch.message


@pytest.mark.parametrize(
    ("replacement", "field", "fragment"),
    [
        ("version=2.12 beta", "version", "invalid version '2.12 beta'"),
        ("homepage=not-a-url", "homepage", "invalid URL 'not-a-url'"),
        ("arch=(x86_64 sparc)", "arch", "expected one of: aarch64, loongarch64, riscv64, x86_64"),
        ("hashes=(deadbeef)", "hashes", "expected 64 hex characters"),
        ("_disabled=maybe", "_disabled", "expected true or false"),
        ("pkg_id=has space", "pkg_id", "allowed characters are letters"),
    ],
)
def test_value_shape_violations(replacement: str, field: str, fragment: str) -> None:
    key = replacement.partition("=")[0]
    lines = [line for line in VALID_RECIPE.splitlines() if not line.startswith(f"{key}=")]
    lines.insert(2, replacement)
    shapes = _by_rule(_diagnostics("\n".join(lines) + "\n"), "value-shape")

    assert len(shapes) == 1
    assert shapes[0].field == field
    assert fragment in shapes[0].message
    assert shapes[0].line == 3


def test_duplicate_values_in_multi_field() -> None:
    text = VALID_RECIPE.replace("license=(GPL-3.0-or-later)", "license=(MIT MIT)\nlicense=(Apache-2.0)")
    (duplicate,) = _by_rule(_diagnostics(text), "duplicate-value")

    assert duplicate.message == "duplicate value 'MIT' in 'license'"
    assert (duplicate.line, duplicate.end_line) == (5, 6)


def test_repeated_single_valued_field_is_an_error() -> None:
    text = VALID_RECIPE + "description=again\n"
    (duplicate,) = _by_rule(_diagnostics(text), "duplicate-field")

    assert duplicate.line == 10
    assert "first on line 4" in duplicate.message


def test_list_for_single_valued_field_is_an_error() -> None:
    text = VALID_RECIPE.replace("pkg=hello", "pkg=(hello world)")
    (cardinality,) = _by_rule(_diagnostics(text), "cardinality")

    assert cardinality.field == "pkg"


def test_empty_values_and_lists_are_errors() -> None:
    text = VALID_RECIPE.replace('description="GNU Hello"', 'description=""\ntag=()')
    empties = _by_rule(_diagnostics(text), "empty-value")

    assert [item.field for item in empties] == ["description", "tag"]


def test_disabled_recipe_needs_a_reason() -> None:
    disabled = VALID_RECIPE + "_disabled=true\n"
    explained = disabled + '_disabled_reason="upstream gone"\n'

    (warning,) = _by_rule(_diagnostics(disabled), "disabled-reason")
    assert warning.severity is Severity.WARNING
    assert _by_rule(_diagnostics(explained), "disabled-reason") == []


def test_unknown_fields_warn_but_do_not_fail() -> None:
    (unknown,) = _by_rule(_diagnostics(VALID_RECIPE + "x_custom=1\n"), "unknown-field")

    assert unknown.severity is Severity.WARNING
    assert unknown.field == "x_custom"


def test_ensure_valid_returns_warnings_or_raises_with_everything() -> None:
    warnings = ensure_valid(parse_recipe("#!/SBUILD\npkg=foo\nversion=1.0.0\n"))

    assert {item.rule for item in warnings} == {"recommended-field"}

    with pytest.raises(ValidationError, match=r"recipe has 1 validation error\(s\)") as excinfo:
        ensure_valid(parse_recipe("#!/SBUILD\npkg=foo\n"))
    assert {item.rule for item in excinfo.value.diagnostics} == {"required-field", "recommended-field"}


def test_diagnostics_follow_rule_registration_order() -> None:
    diagnostics = _diagnostics("x_custom=1\nversion=bad version\n")
    order = {rule_id: index for index, rule_id in enumerate(RULES.rule_ids())}
    positions = [order[item.rule] for item in diagnostics]

    assert positions == sorted(positions)
    assert RULES.rule_ids()[:2] == ("shebang", "required-field")


def test_custom_registry_runs_only_its_rules() -> None:
    registry = RuleRegistry()
    registry.register("always", lambda recipe, schema: [Diagnostic.warning("always", "hi")])

    assert validate_recipe(parse_recipe("pkg=x\n"), registry=registry) == [
        Diagnostic.warning("always", "hi")
    ]
    with pytest.raises(ValueError, match="already registered"):
        registry.register("always", lambda recipe, schema: [])


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("https://example.org/x.tar.gz", True),
        ("ftp://ftp.gnu.org/gnu/", True),
        ("http://localhost:8080/a", True),
        ("file:///etc/passwd", False),
        ("https://nodot/a", False),
        ("https://example.org/a b", False),
        ("https://[broken/", False),
    ],
)
def test_is_valid_url(value: str, expected: bool) -> None:
    assert is_valid_url(value) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1.0.0", True), ("2:1.2-3~rc1", True), ("r1234.abcdef", True), (".1", False), ("1" * 200, False)],
)
def test_is_valid_version(value: str, expected: bool) -> None:
    assert is_valid_version(value) is expected
