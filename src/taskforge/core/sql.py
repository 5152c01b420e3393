"""Minimal SQL tokenizer.

Splits statement text into spans that are just precise enough for marker
rewriting and clause detection: string literals, quoted identifiers,
comments, ordinal markers (``$1``), words, whitespace and punctuation.
It is NOT a parser -- it never validates grammar, it only guarantees that a
``$1`` inside ``'cost: $1'`` or ``-- $1`` is never mistaken for a marker and
that ``RETURNING`` inside a literal is never mistaken for a clause.

Examples:
    >>> [t.text for t in tokenize("note = 'cost $2' AND id = $1") if t.kind is TokenKind.MARKER]
    ['$1']

Tags:
    sql, tokenizer, placeholders, taskforge

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from .errors import MalformedQueryError


class TokenKind(str, Enum):
    WORD = "word"
    MARKER = "marker"
    STRING = "string"
    IDENTIFIER = "identifier"
    COMMENT = "comment"
    SPACE = "space"
    PUNCT = "punct"


@dataclass(frozen=True)
class Token:
    """One lexical span of the statement text."""

    kind: TokenKind
    text: str
    start: int

    @property
    def upper(self) -> str:
        return self.text.upper()

    @property
    def index(self) -> int:
        """Ordinal of a ``$n`` marker (1-based)."""
        if self.kind is not TokenKind.MARKER:
            raise ValueError(f"Not a marker token: {self.text!r}")
        return int(self.text[1:])

    def is_keyword(self, *words: str) -> bool:
        return self.kind is TokenKind.WORD and self.upper in words


def tokenize(text: str) -> list[Token]:
    """Split ``text`` into tokens; concatenating their text yields ``text``."""
    tokens: list[Token] = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        start = i

        if ch.isspace():
            while i < n and text[i].isspace():
                i += 1
            kind = TokenKind.SPACE

        elif ch == "'" or ch == '"':
            # '' and "" are escapes inside their own quote style
            i += 1
            while True:
                end = text.find(ch, i)
                if end < 0:
                    raise MalformedQueryError(
                        f"Unterminated quoted span starting at offset {start}"
                    )
                if end + 1 < n and text[end + 1] == ch:
                    i = end + 2
                    continue
                i = end + 1
                break
            kind = TokenKind.STRING if ch == "'" else TokenKind.IDENTIFIER

        elif text.startswith("--", i):
            end = text.find("\n", i)
            i = n if end < 0 else end
            kind = TokenKind.COMMENT

        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end < 0:
                raise MalformedQueryError(
                    f"Unterminated block comment starting at offset {start}"
                )
            i = end + 2
            kind = TokenKind.COMMENT

        elif ch == "$" and i + 1 < n and text[i + 1].isdigit():
            i += 1
            while i < n and text[i].isdigit():
                i += 1
            kind = TokenKind.MARKER

        elif ch.isalnum() or ch == "_":
            while i < n and (text[i].isalnum() or text[i] in "_$"):
                i += 1
            kind = TokenKind.WORD

        else:
            i += 1
            kind = TokenKind.PUNCT

        tokens.append(Token(kind, text[start:i], start))

    return tokens


def render(tokens: Iterable[Token]) -> str:
    """Concatenate tokens back into text."""
    return "".join(t.text for t in tokens)


def significant(tokens: Sequence[Token]) -> list[int]:
    """Indexes of tokens that are neither whitespace nor comments."""
    return [
        i for i, t in enumerate(tokens)
        if t.kind not in (TokenKind.SPACE, TokenKind.COMMENT)
    ]


def find_top_level(tokens: Sequence[Token], *keywords: str, start: int = 0) -> int | None:
    """Index of the first keyword at parenthesis depth 0, or ``None``."""
    depth = 0
    for i in range(start, len(tokens)):
        tok = tokens[i]
        if tok.kind is TokenKind.PUNCT:
            if tok.text == "(":
                depth += 1
            elif tok.text == ")":
                depth -= 1
        elif depth == 0 and tok.is_keyword(*keywords):
            return i
    return None


def strip_trailing(tokens: Sequence[Token]) -> list[Token]:
    """Drop trailing whitespace, comments and ``;`` terminators."""
    end = len(tokens)
    while end and (
        tokens[end - 1].kind in (TokenKind.SPACE, TokenKind.COMMENT)
        or tokens[end - 1].text == ";"
    ):
        end -= 1
    return list(tokens[:end])


__all__ = [
    "Token",
    "TokenKind",
    "tokenize",
    "render",
    "significant",
    "find_top_level",
    "strip_trailing",
]
