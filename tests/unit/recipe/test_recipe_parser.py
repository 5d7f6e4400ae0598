"""
sbuild-lint — unit tests for the recipe parser

File: tests/unit/recipe/test_recipe_parser.py

Purpose
- Validate the key=value recipe grammar: value forms, comment attachment and
  line bookkeeping.

What this test file should cover
- Bare, quoted, list and heredoc values.
- Comments attached to the following field and trailing comments.
- ParseError line numbers for every malformed construct.
- Strict mode and cardinality conflicts.
"""

from __future__ import annotations

import pytest

from sbuild_lint.domain.errors import ParseError
from sbuild_lint.domain.models import FieldForm
from sbuild_lint.recipe.parser import parse_recipe

BASIC_RECIPE = """#!/SBUILD
# Package name
pkg=hello
version=2.12.1  # upstream tag
description="GNU Hello prints a greeting"
license=(
  # SPDX identifiers
  GPL-3.0-or-later
  "Public Domain"
)
run=<<'EOF'
./configure --prefix=/usr
make
EOF
# end of recipe
"""


def test_parse_basic_recipe_preserves_order_and_comments() -> None:
    recipe = parse_recipe(BASIC_RECIPE, source="hello.SBUILD")

    assert recipe.source == "hello.SBUILD"
    assert recipe.shebang == "#!/SBUILD"
    assert recipe.keys() == ("pkg", "version", "description", "license", "run")
    assert recipe.value("pkg") == "hello"
    assert recipe.value("version") == "2.12.1"
    assert recipe.value("description") == "GNU Hello prints a greeting"
    assert recipe.values("license") == ("GPL-3.0-or-later", "Public Domain")
    assert recipe.value("run") == "./configure --prefix=/usr\nmake"
    assert recipe.trailing_comments == ("# end of recipe",)

    pkg = recipe.first("pkg")
    assert pkg is not None
    assert pkg.comments == ("# Package name",)
    assert pkg.line == 3

    license_field = recipe.first("license")
    assert license_field is not None
    assert license_field.form is FieldForm.LIST
    assert license_field.comments == ("# SPDX identifiers",)
    assert (license_field.line, license_field.end_line) == (6, 10)


def test_heredoc_value_line_points_at_first_body_line() -> None:
    recipe = parse_recipe(BASIC_RECIPE)
    run = recipe.first("run")

    assert run is not None
    assert run.form is FieldForm.HEREDOC
    assert run.line == 11
    assert run.value_line == 12
    assert run.end_line == 14


def test_missing_shebang_is_recorded_as_none() -> None:
    recipe = parse_recipe("pkg=foo\nversion=1\n")

    assert recipe.shebang is None
    assert recipe.keys() == ("pkg", "version")


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ('description="say \\"hi\\" for \\$5 and \\\\ more"', 'say "hi" for $5 and \\ more'),
        ("description='literal \\n and $HOME'", "literal \\n and $HOME"),
        ('description="a # not a comment" # comment', "a # not a comment"),
        ("description=plain words   # trailing", "plain words"),
        ("description=a#b", "a#b"),
        ("description=", ""),
    ],
)
def test_scalar_value_forms(line: str, expected: str) -> None:
    recipe = parse_recipe(f"pkg=foo\n{line}\n")
    assert recipe.value("description") == expected


def test_quoted_value_may_span_lines() -> None:
    recipe = parse_recipe('pkg=foo\ndescription="first line\nsecond line"\nversion=1\n')

    description = recipe.first("description")
    assert description is not None
    assert description.scalar == "first line\nsecond line"
    assert (description.line, description.end_line) == (2, 3)
    assert recipe.value("version") == "1"


def test_list_items_may_share_lines_and_be_quoted() -> None:
    recipe = parse_recipe("arch=(x86_64 aarch64\n  'riscv64' )\n")
    assert recipe.values("arch") == ("x86_64", "aarch64", "riscv64")


def test_empty_list_is_a_list_with_no_values() -> None:
    recipe = parse_recipe("tag=()\n")
    tag = recipe.first("tag")

    assert tag is not None
    assert tag.is_list
    assert tag.values == ()


@pytest.mark.parametrize(
    "opener",
    ["<<EOF", "<<'EOF'", '<<"EOF"', "<< EOF", "<<'EOF' # script"],
)
def test_heredoc_delimiter_forms(opener: str) -> None:
    recipe = parse_recipe(f"run={opener}\necho hi\nEOF\npkg=foo\n")

    assert recipe.value("run") == "echo hi"
    assert recipe.value("pkg") == "foo"


def test_dash_heredoc_strips_leading_tabs() -> None:
    recipe = parse_recipe("run=<<-END\n\techo one\n\t\techo two\n\tEND\n")
    assert recipe.value("run") == "echo one\necho two"


def test_indented_delimiter_does_not_close_plain_heredoc() -> None:
    recipe = parse_recipe("run=<<EOF\nif true; then\n  cat <<EOF\n  EOF\nfi\nEOF\npkg=foo\n")

    assert recipe.value("run") == "if true; then\n  cat <<EOF\n  EOF\nfi"
    assert recipe.value("pkg") == "foo"


@pytest.mark.parametrize("terminator", ["  END", "END "])
def test_dash_heredoc_only_strips_tabs_from_delimiter(terminator: str) -> None:
    with pytest.raises(ParseError, match="unterminated heredoc"):
        parse_recipe(f"run=<<-END\n\techo one\n{terminator}\n")


def test_crlf_line_endings_and_bom_are_accepted() -> None:
    recipe = parse_recipe("\ufeff#!/SBUILD\r\npkg=foo\r\nversion=1.0\r\n")

    assert recipe.shebang == "#!/SBUILD"
    assert recipe.value("pkg") == "foo"
    assert recipe.value("version") == "1.0"


def test_unknown_fields_are_kept_in_place() -> None:
    recipe = parse_recipe("pkg=foo\nx_custom=bar\nversion=1\n")

    custom = recipe.first("x_custom")
    assert recipe.keys() == ("pkg", "x_custom", "version")
    assert custom is not None
    assert custom.known is False


@pytest.mark.parametrize(
    ("text", "line", "reason"),
    [
        ("pkg=foo\njust some words\n", 2, "expected key=value"),
        ("pkg=foo\n1version=2\n", 2, "illegal characters in key"),
        ("pkg-name=foo\n", 1, "illegal characters in key"),
        ('pkg=foo\ndescription="never\nclosed\nversion=1\n', 2, "unterminated double-quoted value"),
        ("pkg=foo\n\ndescription='open\n", 3, "unterminated single-quoted value"),
        ('pkg="foo" trailing\n', 1, "unexpected text after closing quote"),
        ("arch=(x86_64\naarch64\n", 1, "unterminated list"),
        ("arch=(x86_64) extra\n", 1, "unexpected text after closing parenthesis"),
        ("pkg=foo\nrun=<<EOF\necho hi\n", 2, "unterminated heredoc, expected 'EOF'"),
    ],
)
def test_parse_errors_report_opening_line(text: str, line: int, reason: str) -> None:
    with pytest.raises(ParseError) as excinfo:
        parse_recipe(text, source="bad.SBUILD")

    assert excinfo.value.line == line
    assert reason in excinfo.value.reason
    assert str(excinfo.value).startswith(f"bad.SBUILD:{line}: ")


def test_cardinality_conflict_is_a_parse_error() -> None:
    with pytest.raises(ParseError) as excinfo:
        parse_recipe("tag=one\npkg=foo\ntag=(two three)\n")

    assert excinfo.value.line == 3
    assert "redeclared as list (declared as scalar on line 1)" in excinfo.value.reason


def test_repeated_declarations_with_same_form_are_kept() -> None:
    recipe = parse_recipe("maintainer=alice\nmaintainer=bob\n")

    assert len(recipe.declarations("maintainer")) == 2
    assert recipe.values("maintainer") == ("alice", "bob")


def test_strict_mode_rejects_unknown_fields() -> None:
    parse_recipe("pkg=foo\nmystery=1\n")

    with pytest.raises(ParseError) as excinfo:
        parse_recipe("pkg=foo\nmystery=1\n", strict=True)

    assert excinfo.value.line == 2
    assert "unknown field 'mystery'" in excinfo.value.reason
