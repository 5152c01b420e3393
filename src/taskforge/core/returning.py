"""
RETURNING emulation for stores that do not return rows from writes.

Manifesto:
    Application code is written once, PostgreSQL-style:
    ``INSERT ... RETURNING *`` hands back the stored row, defaults and
    generated id included.  On a store without RETURNING the emulator
    rebuilds that result from ordinary statements, inside ONE atomic scope on
    ONE pinned session, so no other statement can interleave and a failed
    write leaves nothing behind.

Architecture:
    ::

        INSERT ... RETURNING cols
        ┌──────────────────────────────────────────────────────────┐
        │ BEGIN IMMEDIATE                                           │
        │ INSERT ...                      → last_row_id, changes    │
        │ SELECT cols FROM t WHERE pk = ? (last_row_id)             │
        │ COMMIT                                                    │
        └──────────────────────────────────────────────────────────┘

        UPDATE t SET ... WHERE pred RETURNING cols
        ┌──────────────────────────────────────────────────────────┐
        │ BEGIN IMMEDIATE                                           │
        │ SELECT pk FROM t WHERE pred     → ids (captured BEFORE)   │
        │ UPDATE t SET ... WHERE pk IN (ids)                        │
        │ SELECT cols FROM t WHERE pk IN (ids) ORDER BY pk          │
        │ COMMIT                                                    │
        └──────────────────────────────────────────────────────────┘

        DELETE FROM t WHERE pred RETURNING cols
        ┌──────────────────────────────────────────────────────────┐
        │ SELECT pk ... → SELECT cols ... → DELETE ... pk IN (ids)  │
        └──────────────────────────────────────────────────────────┘

    Capturing the identities before the UPDATE makes the result exactly
    the rows that matched the predicate when the statement ran, even when
    the update changes a column the predicate tests.  A row that starts
    matching only because of the update is not returned (it did not match).

Guardrails:
    ❌ DON'T: Re-run the WHERE clause after the UPDATE
    ✅ DO: Address updated rows by the identities captured beforehand

    ❌ DON'T: Run the follow-up SELECT on a different connection
    ✅ DO: Keep the whole sequence in ``session.atomic()``

Tags:
    returning, emulation, sqlite, atomic, taskforge
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from .codec import StructuredFieldCodec
from .dialect import Dialect
from .enums import StatementKind
from .errors import ConfigError, MalformedQueryError
from .logging import get_logger
from .placeholders import bind_tokens
from .protocols import BackendSession
from .result import QueryResult
from .statements import Statement

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 500


class ReturningEmulator:
    """Produce RETURNING results on a ``?``-marker store without native support."""

    def __init__(
        self,
        dialect: Dialect,
        codec: StructuredFieldCodec,
        primary_key_for: Callable[[str], str],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if dialect.marker_style != "qmark":
            raise ConfigError(f"RETURNING emulation needs '?' markers, not {dialect.marker_style}")
        self._dialect = dialect
        self._codec = codec
        self._primary_key_for = primary_key_for
        self._chunk_size = chunk_size

    async def emulate(
        self, session: BackendSession, stmt: Statement, params: Sequence[Any]
    ) -> QueryResult:
        """Run ``stmt`` and return the rows its RETURNING clause names."""
        if not stmt.has_returning or stmt.table is None:
            raise MalformedQueryError("Statement has no RETURNING clause to emulate")

        if stmt.kind is StatementKind.INSERT:
            result = await self._insert(session, stmt, params)
        elif stmt.kind is StatementKind.UPDATE:
            result = await self._update(session, stmt, params)
        elif stmt.kind is StatementKind.DELETE:
            result = await self._delete(session, stmt, params)
        else:
            raise MalformedQueryError(f"Cannot emulate RETURNING for {stmt.kind.value}")

        logger.debug(
            "returning_emulated",
            kind=stmt.kind.value,
            table=stmt.table,
            row_count=result.row_count,
            rows=len(result.rows),
        )
        return result

    # -- INSERT ----------------------------------------------------------------

    async def _insert(
        self, session: BackendSession, stmt: Statement, params: Sequence[Any]
    ) -> QueryResult:
        sql, args = bind_tokens(stmt.body_tokens, params, "qmark")
        pk = self._primary_key_for(stmt.table)

        async with session.atomic():
            outcome = await session.execute(sql, args)
            if outcome.row_count == 0 or outcome.last_row_id is None:
                # INSERT OR IGNORE that skipped the row
                return QueryResult([], outcome.row_count)
            rows = await session.fetch(
                f"SELECT {stmt.returning} FROM {stmt.table} WHERE {pk} = {self._dialect.placeholder(0)}",
                [outcome.last_row_id],
            )

        return QueryResult(self._codec.decode_rows(rows), outcome.row_count)

    # -- UPDATE ----------------------------------------------------------------

    async def _update(
        self, session: BackendSession, stmt: Statement, params: Sequence[Any]
    ) -> QueryResult:
        pk = self._primary_key_for(stmt.table)
        set_sql, set_args = bind_tokens(stmt.set_tokens or [], params, "qmark")

        async with session.atomic():
            ids = await self._matching_ids(session, stmt, params, pk)
            if not ids:
                return QueryResult([], 0)

            changed = 0
            for chunk in self._chunks(ids, reserve=len(set_args)):
                outcome = await session.execute(
                    f"UPDATE {stmt.table} SET {set_sql} WHERE {pk} IN ({self._dialect.placeholders(len(chunk))})",
                    [*set_args, *chunk],
                )
                changed += outcome.row_count

            rows = await self._select_by_ids(session, stmt, pk, ids)

        return QueryResult(self._codec.decode_rows(rows), changed)

    # -- DELETE ----------------------------------------------------------------

    async def _delete(
        self, session: BackendSession, stmt: Statement, params: Sequence[Any]
    ) -> QueryResult:
        pk = self._primary_key_for(stmt.table)

        async with session.atomic():
            ids = await self._matching_ids(session, stmt, params, pk)
            if not ids:
                return QueryResult([], 0)

            rows = await self._select_by_ids(session, stmt, pk, ids)

            deleted = 0
            for chunk in self._chunks(ids):
                outcome = await session.execute(
                    f"DELETE FROM {stmt.table} WHERE {pk} IN ({self._dialect.placeholders(len(chunk))})",
                    chunk,
                )
                deleted += outcome.row_count

        return QueryResult(self._codec.decode_rows(rows), deleted)

    # -- helpers ---------------------------------------------------------------

    async def _matching_ids(
        self, session: BackendSession, stmt: Statement, params: Sequence[Any], pk: str
    ) -> list[Any]:
        sql = f"SELECT {pk} FROM {stmt.table}"
        args: list[Any] = []
        if stmt.where_tokens:
            where_sql, args = bind_tokens(stmt.where_tokens, params, "qmark")
            sql += f" WHERE {where_sql}"
        rows = await session.fetch(sql, args)
        ids = [next(iter(row.values())) for row in rows]
        return sorted(set(ids), key=_sort_key)

    async def _select_by_ids(
        self, session: BackendSession, stmt: Statement, pk: str, ids: list[Any]
    ) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for chunk in self._chunks(ids):
            rows.extend(
                await session.fetch(
                    f"SELECT {stmt.returning} FROM {stmt.table} "
                    f"WHERE {pk} IN ({self._dialect.placeholders(len(chunk))}) ORDER BY {pk}",
                    chunk,
                )
            )
        return rows

    def _chunks(self, ids: list[Any], reserve: int = 0) -> list[list[Any]]:
        size = max(self._chunk_size - reserve, 1)
        return [ids[i: i + size] for i in range(0, len(ids), size)]


def _sort_key(value: Any) -> tuple[int, Any]:
    # integers before text, mirroring SQLite's ORDER BY across storage classes
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value))


__all__ = [
    "ReturningEmulator",
]
