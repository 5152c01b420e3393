"""Statement classification.

``classify()`` looks at tokenized query text and decides:

- the statement kind (SELECT / INSERT / UPDATE / DELETE / OTHER) from the
  leading keyword, case-insensitively, skipping whitespace and comments;
- whether a top-level ``RETURNING`` clause is present and what it returns;
- for writes, the target table and the ``SET`` / ``WHERE`` spans the
  RETURNING emulator rebuilds statements from.

It fails closed: a statement that asks for RETURNING in a shape the emulator
cannot reproduce exactly (``INSERT ... SELECT``, multi-row ``VALUES``,
``ON CONFLICT`` upserts, ``UPDATE OR <conflict>``, ``UPDATE ... FROM``,
markers inside the RETURNING list, RETURNING on a non-write) raises
:class:`MalformedQueryError` instead of silently executing without the rows
the caller asked for.

Examples:
    >>> stmt = classify("UPDATE tasks SET status = $1 WHERE id = $2 RETURNING *")
    >>> stmt.kind, stmt.table, stmt.returning
    (<StatementKind.UPDATE: 'UPDATE'>, 'tasks', '*')
    >>> render(stmt.where_tokens)
    'id = $2'
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .enums import StatementKind
from .errors import MalformedQueryError
from .sql import Token, TokenKind, find_top_level, render, significant, strip_trailing, tokenize

_KINDS = {kind.value: kind for kind in StatementKind if kind is not StatementKind.OTHER}


@dataclass(frozen=True)
class Statement:
    """A classified statement and the spans the emulator needs."""

    text: str
    kind: StatementKind
    tokens: list[Token] = field(repr=False)
    table: str | None = None
    returning: str | None = None
    body_tokens: list[Token] = field(default_factory=list, repr=False)
    set_tokens: list[Token] | None = field(default=None, repr=False)
    where_tokens: list[Token] | None = field(default=None, repr=False)
    conflict: str | None = None

    @property
    def has_returning(self) -> bool:
        return self.returning is not None

    @property
    def body(self) -> str:
        """Statement text without the RETURNING clause or trailing ``;``."""
        return render(self.body_tokens)


def classify(text: str) -> Statement:
    """Classify ``text``; raise :class:`MalformedQueryError` on unemulable RETURNING."""
    tokens = tokenize(text)
    sig = significant(tokens)
    if not sig:
        raise MalformedQueryError("Empty statement")

    kind = _KINDS.get(tokens[sig[0]].upper, StatementKind.OTHER)

    ret_idx = find_top_level(tokens, "RETURNING")
    if ret_idx is None:
        body = strip_trailing(tokens)
        returning = None
    else:
        if not kind.is_write:
            raise MalformedQueryError(
                f"RETURNING is only supported on INSERT/UPDATE/DELETE, not {kind.value}"
            )
        body = strip_trailing(tokens[:ret_idx])
        ret_tokens = strip_trailing(tokens[ret_idx + 1:])
        returning = render(ret_tokens).strip()
        if not returning:
            raise MalformedQueryError("RETURNING clause has no column list")
        if any(t.kind is TokenKind.MARKER for t in ret_tokens):
            raise MalformedQueryError("Parameter markers are not allowed in a RETURNING list")

    if kind is StatementKind.INSERT:
        return _classify_insert(text, tokens, body, returning)
    if kind is StatementKind.UPDATE:
        return _classify_update(text, tokens, body, returning)
    if kind is StatementKind.DELETE:
        return _classify_delete(text, tokens, body, returning)
    return Statement(text=text, kind=kind, tokens=tokens, body_tokens=body)


# -- per-kind shapes ---------------------------------------------------------


def _classify_insert(
    text: str, tokens: list[Token], body: list[Token], returning: str | None
) -> Statement:
    into = find_top_level(body, "INTO")
    table, after = _read_name(body, into + 1) if into is not None else (None, len(body))

    if returning is not None:
        if table is None:
            raise MalformedQueryError("Cannot emulate RETURNING: INSERT target table not found")
        if find_top_level(body, "SELECT", start=after) is not None:
            raise MalformedQueryError("Cannot emulate RETURNING for INSERT ... SELECT")
        if find_top_level(body, "CONFLICT", "DUPLICATE", start=after) is not None:
            raise MalformedQueryError("Cannot emulate RETURNING for upsert statements")
        values = find_top_level(body, "VALUES", start=after)
        if values is not None and _has_top_level_comma(body, values + 1):
            raise MalformedQueryError("Cannot emulate RETURNING for multi-row VALUES")

    return Statement(
        text=text,
        kind=StatementKind.INSERT,
        tokens=tokens,
        table=table,
        returning=returning,
        body_tokens=body,
    )


def _classify_update(
    text: str, tokens: list[Token], body: list[Token], returning: str | None
) -> Statement:
    sig = significant(body)
    pos = 1
    conflict = None
    # UPDATE OR IGNORE / OR REPLACE ...
    if pos < len(sig) and body[sig[pos]].is_keyword("OR"):
        if pos + 1 < len(sig):
            conflict = body[sig[pos + 1]].upper
        pos += 2
    table, after = _read_name(body, sig[pos]) if pos < len(sig) else (None, len(body))

    set_idx = find_top_level(body, "SET", start=after)
    where_idx = find_top_level(body, "WHERE", start=after)

    set_tokens = None
    if set_idx is not None:
        set_tokens = body[set_idx + 1: where_idx if where_idx is not None else len(body)]
    where_tokens = body[where_idx + 1:] if where_idx is not None else None

    if returning is not None:
        if table is None or set_tokens is None:
            raise MalformedQueryError("Cannot emulate RETURNING: UPDATE shape not recognised")
        if find_top_level(set_tokens, "FROM") is not None:
            raise MalformedQueryError("Cannot emulate RETURNING for UPDATE ... FROM")
        if conflict is not None:
            # ids captured up front cannot tell which rows the conflict policy skipped
            raise MalformedQueryError(f"Cannot emulate RETURNING for UPDATE OR {conflict}")

    return Statement(
        text=text,
        kind=StatementKind.UPDATE,
        tokens=tokens,
        table=table,
        returning=returning,
        body_tokens=body,
        set_tokens=_trim(set_tokens),
        where_tokens=_trim(where_tokens),
        conflict=conflict,
    )


def _classify_delete(
    text: str, tokens: list[Token], body: list[Token], returning: str | None
) -> Statement:
    from_idx = find_top_level(body, "FROM")
    table, after = _read_name(body, from_idx + 1) if from_idx is not None else (None, len(body))
    where_idx = find_top_level(body, "WHERE", start=after)
    where_tokens = body[where_idx + 1:] if where_idx is not None else None

    if returning is not None:
        if table is None:
            raise MalformedQueryError("Cannot emulate RETURNING: DELETE target table not found")
        if find_top_level(body, "USING", start=after) is not None:
            raise MalformedQueryError("Cannot emulate RETURNING for DELETE ... USING")

    return Statement(
        text=text,
        kind=StatementKind.DELETE,
        tokens=tokens,
        table=table,
        returning=returning,
        body_tokens=body,
        where_tokens=_trim(where_tokens),
    )


# -- helpers -----------------------------------------------------------------


def _read_name(tokens: list[Token], start: int) -> tuple[str | None, int]:
    """Read a (possibly schema-qualified) table name starting at ``start``.

    Returns the name as written (quoted identifiers stay quoted) and the
    index just past it.
    """
    i = start
    while i < len(tokens) and tokens[i].kind in (TokenKind.SPACE, TokenKind.COMMENT):
        i += 1
    parts: list[str] = []
    while i < len(tokens) and tokens[i].kind in (TokenKind.WORD, TokenKind.IDENTIFIER):
        parts.append(tokens[i].text)
        i += 1
        if i < len(tokens) and tokens[i].text == ".":
            parts.append(".")
            i += 1
            continue
        break
    if not parts or parts[-1] == ".":
        return None, i
    return "".join(parts), i


def _has_top_level_comma(tokens: list[Token], start: int) -> bool:
    depth = 0
    for tok in tokens[start:]:
        if tok.kind is not TokenKind.PUNCT:
            continue
        if tok.text == "(":
            depth += 1
        elif tok.text == ")":
            depth -= 1
        elif tok.text == "," and depth == 0:
            return True
    return False


def _trim(tokens: list[Token] | None) -> list[Token] | None:
    if tokens is None:
        return None
    sig = significant(tokens)
    if not sig:
        return []
    return tokens[sig[0]: sig[-1] + 1]


__all__ = [
    "Statement",
    "classify",
]
