"""Query pipeline shared by ``DatabasePool.query`` and connection handles.

One call goes through, in order:

1. structured parameters are encoded (dict/list → JSON text);
2. ``$n`` markers are validated against the parameters and translated to the
   backend's style (no-op on PostgreSQL);
3. the statement is classified; a RETURNING the backend cannot do natively
   is routed to :class:`~taskforge.core.returning.ReturningEmulator`;
4. structured columns of the returned rows are decoded, unless the driver
   already parsed them (asyncpg json/jsonb codec).

Malformed input is rejected in steps 2-3, before anything reaches the store.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

from .codec import StructuredFieldCodec
from .dialect import Dialect
from .errors import TaskforgeError
from .logging import get_logger
from .protocols import BackendSession
from .result import QueryResult
from .returning import ReturningEmulator
from .settings import DatabaseSettings
from .statements import classify

logger = get_logger(__name__)


class QueryExecutor:
    """Stateless query pipeline bound to one dialect."""

    def __init__(
        self,
        dialect: Dialect,
        codec: StructuredFieldCodec,
        emulator: ReturningEmulator | None = None,
    ):
        self._dialect = dialect
        self._codec = codec
        self._emulator = emulator

    @classmethod
    def for_dialect(cls, dialect: Dialect, settings: DatabaseSettings) -> QueryExecutor:
        codec = StructuredFieldCodec(settings.structured_columns)
        emulator = None
        if not dialect.supports_returning:
            emulator = ReturningEmulator(dialect, codec, settings.primary_key_for)
        return cls(dialect, codec, emulator)

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def codec(self) -> StructuredFieldCodec:
        return self._codec

    async def run(
        self, session: BackendSession, text: str, params: Sequence[Any] | None = None
    ) -> QueryResult:
        """Execute ``text`` with ``params`` on ``session``."""
        values = self._codec.encode_params(params or ())
        sql, args = self._dialect.translate(text, values)
        stmt = classify(text)
        emulated = stmt.has_returning and not self._dialect.supports_returning

        started = time.perf_counter()
        try:
            if emulated:
                if self._emulator is None:
                    raise TaskforgeError(f"No RETURNING emulator for {self._dialect.name}")
                result = await self._emulator.emulate(session, stmt, values)
            else:
                rows, row_count = await session.run(sql, args, stmt.kind)
                if not self._dialect.decodes_json:
                    rows = self._codec.decode_rows(rows)
                result = QueryResult(rows, row_count)
        except TaskforgeError as e:
            e.with_context(backend=self._dialect.name, statement=stmt.kind.value, table=stmt.table)
            logger.warning("query_failed", **e.to_dict())
            raise

        logger.debug(
            "query_executed",
            backend=self._dialect.name,
            kind=stmt.kind.value,
            table=stmt.table,
            emulated=emulated,
            row_count=result.row_count,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result


__all__ = [
    "QueryExecutor",
]
