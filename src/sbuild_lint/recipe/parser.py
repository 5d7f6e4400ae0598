"""
sbuild-lint — SBUILD recipe parser

File: src/sbuild_lint/recipe/parser.py

Purpose
- Turn recipe text into an ordered, comment-preserving ``Recipe``.

Grammar
- Optional shebang on line 1 (``#!/SBUILD``).
- Blank lines are ignored; ``#`` lines attach to the next field.
- ``key=value`` where ``key`` matches ``[A-Za-z_][A-Za-z0-9_]*`` and the value is
  bare text, a single/double quoted string, a ``( ... )`` list or a heredoc.

Functional requirements
- Single pass, no I/O and no external processes.
- Unterminated constructs are reported at the line that opened them.
- A key re-declared with a different cardinality (scalar vs list) is rejected.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

from sbuild_lint.domain.errors import ParseError
from sbuild_lint.domain.models import Field, FieldForm, Recipe
from sbuild_lint.recipe.schema import load_schema

if TYPE_CHECKING:
    from sbuild_lint.recipe.schema import Schema

_KEY_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_HEREDOC_RE: Final[re.Pattern[str]] = re.compile(
    r"<<(?P<dash>-?)\s*(?:'(?P<sq>[^']+)'|\"(?P<dq>[^\"]+)\"|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))"
    r"\s*(?:#.*)?$"
)
_INLINE_COMMENT_RE: Final[re.Pattern[str]] = re.compile(r"\s+#.*$")
_DQUOTE_ESCAPABLE: Final[frozenset[str]] = frozenset({'"', "\\", "$", "`"})
_EOF: Final[str] = ""


def parse_recipe(
    text: str,
    *,
    source: str = "<recipe>",
    schema: Schema | None = None,
    strict: bool = False,
) -> Recipe:
    """Parse recipe ``text`` into a ``Recipe`` or raise ``ParseError``."""

    return _Parser(text, source=source, schema=schema or load_schema(), strict=strict).parse()


class _Cursor:
    """Character cursor over recipe lines; line ends read as ``\\n``."""

    __slots__ = ("col", "lines", "row")

    def __init__(self, lines: list[str], row: int, col: int) -> None:
        self.lines = lines
        self.row = row
        self.col = col

    def peek(self) -> str:
        if self.row >= len(self.lines):
            return _EOF
        line = self.lines[self.row]
        if self.col >= len(line):
            return "\n"
        return line[self.col]

    def advance(self) -> str:
        char = self.peek()
        if char == "\n":
            self.row += 1
            self.col = 0
        elif char:
            self.col += 1
        return char

    def rest_of_line(self) -> str:
        if self.row >= len(self.lines):
            return ""
        return self.lines[self.row][self.col :]

    def next_line(self) -> None:
        self.row += 1
        self.col = 0


class _Parser:
    def __init__(self, text: str, *, source: str, schema: Schema, strict: bool) -> None:
        self._text = text
        self._source = source
        self._schema = schema
        self._strict = strict
        self._lines = text.removeprefix("\ufeff").replace("\r\n", "\n").split("\n")
        self._first_form: dict[str, tuple[bool, int]] = {}

    def parse(self) -> Recipe:
        recipe = Recipe(source=self._source, text=self._text)
        row = 0
        if self._lines and self._lines[0].startswith("#!"):
            recipe.shebang = self._lines[0].rstrip()
            row = 1

        pending: list[str] = []
        while row < len(self._lines):
            stripped = self._lines[row].strip()
            if not stripped:
                row += 1
                continue
            if stripped.startswith("#"):
                pending.append(stripped)
                row += 1
                continue
            parsed, row = self._parse_field(row, tuple(pending))
            pending.clear()
            recipe.fields.append(parsed)

        recipe.trailing_comments = tuple(pending)
        return recipe

    def _fail(self, row: int, reason: str) -> ParseError:
        return ParseError(row + 1, reason, source=self._source)

    def _parse_field(self, row: int, comments: tuple[str, ...]) -> tuple[Field, int]:
        line = self._lines[row]
        body = line.lstrip()
        if "=" not in body:
            raise self._fail(row, f"expected key=value, found {_clip(body)!r}")
        key, _, _ = body.partition("=")
        if not _KEY_RE.fullmatch(key):
            raise self._fail(row, f"illegal characters in key {_clip(key)!r}")

        known = key in self._schema
        if self._strict and not known:
            raise self._fail(row, f"unknown field {key!r}")

        start_col = len(line) - len(body) + len(key) + 1
        while start_col < len(line) and line[start_col] in " \t":
            start_col += 1
        value_text = line[start_col:]
        extra_comments: list[str] = []

        if value_text.startswith("("):
            values, end_row = self._parse_list(row, start_col + 1, extra_comments)
            form = FieldForm.LIST
            value_row = row
        elif heredoc := _HEREDOC_RE.match(value_text):
            values, end_row = self._parse_heredoc(row, heredoc)
            form = FieldForm.HEREDOC
            value_row = row + 1
        elif value_text.startswith(("'", '"')):
            cursor = _Cursor(self._lines, row, start_col)
            value = self._scan_quoted(cursor, opening_row=row)
            self._expect_line_end(cursor, "closing quote")
            values, end_row = (value,), cursor.row
            form = FieldForm.SCALAR
            value_row = row
        else:
            values = (_INLINE_COMMENT_RE.sub("", value_text).strip(),)
            end_row = row
            form = FieldForm.SCALAR
            value_row = row

        self._check_cardinality(key, form, row)
        parsed = Field(
            key=key,
            values=values,
            form=form,
            line=row + 1,
            end_line=end_row + 1,
            value_line=value_row + 1,
            known=known,
            comments=comments + tuple(extra_comments),
        )
        return parsed, end_row + 1

    def _check_cardinality(self, key: str, form: FieldForm, row: int) -> None:
        is_list = form is FieldForm.LIST
        previous = self._first_form.get(key)
        if previous is None:
            self._first_form[key] = (is_list, row + 1)
            return
        was_list, first_line = previous
        if was_list != is_list:
            declared = "list" if is_list else "scalar"
            first = "list" if was_list else "scalar"
            raise self._fail(
                row,
                f"field {key!r} redeclared as {declared} (declared as {first} on line {first_line})",
            )

    def _scan_quoted(self, cursor: _Cursor, *, opening_row: int) -> str:
        quote = cursor.advance()
        kind = "double-quoted" if quote == '"' else "single-quoted"
        chars: list[str] = []
        while True:
            char = cursor.advance()
            if char == _EOF:
                raise self._fail(opening_row, f"unterminated {kind} value")
            if char == quote:
                return "".join(chars)
            if char == "\\" and quote == '"':
                following = cursor.peek()
                if following in _DQUOTE_ESCAPABLE:
                    chars.append(cursor.advance())
                    continue
                if following == "\n":
                    cursor.advance()
                    continue
            chars.append(char)

    def _expect_line_end(self, cursor: _Cursor, construct: str) -> None:
        remainder = cursor.rest_of_line().strip()
        if remainder and not remainder.startswith("#"):
            raise self._fail(cursor.row, f"unexpected text after {construct}: {_clip(remainder)!r}")

    def _parse_list(
        self, row: int, col: int, comments: list[str]
    ) -> tuple[tuple[str, ...], int]:
        cursor = _Cursor(self._lines, row, col)
        items: list[str] = []
        while True:
            char = cursor.peek()
            if char == _EOF:
                raise self._fail(row, "unterminated list, expected ')'")
            if char in " \t\n":
                cursor.advance()
                continue
            if char == ")":
                cursor.advance()
                self._expect_line_end(cursor, "closing parenthesis")
                return tuple(items), cursor.row
            if char == "#":
                comments.append(cursor.rest_of_line().strip())
                cursor.next_line()
                continue
            if char in "'\"":
                items.append(self._scan_quoted(cursor, opening_row=cursor.row))
                continue
            word: list[str] = []
            while cursor.peek() not in {_EOF, " ", "\t", "\n", ")"}:
                word.append(cursor.advance())
            items.append("".join(word))

    def _parse_heredoc(self, row: int, match: re.Match[str]) -> tuple[tuple[str, ...], int]:
        delimiter = match.group("sq") or match.group("dq") or match.group("bare")
        strip_tabs = match.group("dash") == "-"
        body: list[str] = []
        cursor_row = row + 1
        while cursor_row < len(self._lines):
            line = self._lines[cursor_row]
            if strip_tabs:
                line = line.lstrip("\t")
            # Only <<- may indent the terminator, and only with tabs.
            if line == delimiter:
                return ("\n".join(body),), cursor_row
            body.append(line)
            cursor_row += 1
        raise self._fail(row, f"unterminated heredoc, expected {delimiter!r}")


def _clip(text: str, limit: int = 40) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


__all__ = ["parse_recipe"]
