"""Placeholder translation: ordinal ``$n`` markers → backend marker style.

Application code always writes ordinal markers (``$1``, ``$2``, ...).  A
backend that binds by *position* with a generic marker (SQLite ``?``) needs
every ``$n`` rewritten AND the parameter list rebuilt in marker order, so
that ``... $2 ... $1 ... $2`` binds ``(p2, p1, p2)``.  A backend that speaks
ordinal markers natively (PostgreSQL via asyncpg) gets the text unchanged.

Markers inside string literals, quoted identifiers and comments are never
touched (see :mod:`taskforge.core.sql`).

Examples:
    >>> translate_placeholders("SELECT * FROM t WHERE a = $2 AND b = $1", ["x", "y"])
    ('SELECT * FROM t WHERE a = ? AND b = ?', ('y', 'x'))

    >>> translate_placeholders("SELECT '$1', $1", [5], style="numeric")
    ("SELECT '$1', $1", (5,))
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Literal

from .errors import MalformedQueryError
from .sql import Token, TokenKind, tokenize

MarkerStyle = Literal["qmark", "numeric"]


def marker_indexes(source: str | Iterable[Token]) -> list[int]:
    """Ordinals of all markers, left to right (repeats included)."""
    tokens = tokenize(source) if isinstance(source, str) else source
    return [t.index for t in tokens if t.kind is TokenKind.MARKER]


def count_markers(source: str | Iterable[Token]) -> int:
    return len(marker_indexes(source))


def validate_markers(indexes: Sequence[int], param_count: int) -> None:
    """Check that the distinct markers are exactly ``1..param_count``."""
    distinct = set(indexes)
    expected = set(range(1, param_count + 1))
    if distinct == expected:
        return

    if 0 in distinct:
        raise MalformedQueryError("Marker $0 is invalid; markers are 1-indexed")
    missing = sorted(expected - distinct)
    extra = sorted(distinct - expected)
    parts = []
    if extra:
        parts.append(f"markers without parameters: {', '.join(f'${i}' for i in extra)}")
    if missing:
        parts.append(f"parameters without markers: {', '.join(f'${i}' for i in missing)}")
    raise MalformedQueryError(
        f"Marker/parameter mismatch ({param_count} parameters; {'; '.join(parts)})"
    )


def bind_tokens(
    tokens: Iterable[Token],
    params: Sequence[Any],
    style: MarkerStyle = "qmark",
) -> tuple[str, list[Any]]:
    """Render ``tokens`` in ``style`` and return the positionally bound params.

    Used for whole statements and for statement fragments (a WHERE clause or a
    SET list); ``params`` is always the full parameter list of the original
    query so fragment markers keep their original meaning.
    """
    parts: list[str] = []
    bound: list[Any] = []
    for tok in tokens:
        if tok.kind is not TokenKind.MARKER:
            parts.append(tok.text)
            continue
        idx = tok.index
        if idx < 1 or idx > len(params):
            raise MalformedQueryError(
                f"Marker {tok.text} has no parameter ({len(params)} supplied)"
            )
        if style == "qmark":
            parts.append("?")
            bound.append(params[idx - 1])
        else:
            parts.append(tok.text)
    if style == "numeric":
        bound = list(params)
    return "".join(parts), bound


def translate_placeholders(
    text: str,
    params: Sequence[Any] = (),
    style: MarkerStyle = "qmark",
) -> tuple[str, tuple[Any, ...]]:
    """Translate a whole query and validate the marker/parameter invariant."""
    tokens = tokenize(text)
    validate_markers(marker_indexes(tokens), len(params))
    sql, bound = bind_tokens(tokens, params, style)
    return sql, tuple(bound)


__all__ = [
    "MarkerStyle",
    "count_markers",
    "marker_indexes",
    "validate_markers",
    "bind_tokens",
    "translate_placeholders",
]
