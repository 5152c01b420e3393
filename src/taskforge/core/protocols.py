"""
Canonical protocol definitions for the taskforge data-access layer.

A ``BackendSession`` is ONE pinned backend connection, borrowed from an
adapter for the duration of a single ``query`` call or a connection handle.
The executor and the RETURNING emulator only ever talk to this protocol, so
they never import a database driver.

Architecture:
    ::

        BackendSession Protocol:
        ┌────────────────────────────────────────────────────────────┐
        │ run(sql, params, kind) → (rows, row_count)  one statement   │
        │ fetch(sql, params)     → rows                               │
        │ execute(sql, params)   → ExecResult(row_count, last_row_id) │
        │ atomic()               → async transaction / savepoint scope│
        └────────────────────────────────────────────────────────────┘

        Implementations:
        ┌────────────────────────────────────────────────────────────┐
        │ SQLiteSession    → aiosqlite.Connection (single, locked)    │
        │ PostgresSession  → asyncpg connection from the pool         │
        └────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Keep a session reference after the call that borrowed it returns
    ✅ DO: Borrow through ``adapter.session()`` / the pool facade

    ❌ DON'T: Let driver exceptions escape a session method
    ✅ DO: Map them to ``taskforge.core.errors`` types at the session boundary

Tags:
    protocol, session, async, database, taskforge
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .enums import StatementKind


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a statement executed for its side effect."""

    row_count: int
    last_row_id: int | None = None


@runtime_checkable
class BackendSession(Protocol):
    """Minimal async session interface shared by all adapters."""

    async def run(
        self, sql: str, params: Sequence[Any] = (), kind: StatementKind = StatementKind.OTHER
    ) -> tuple[list[dict[str, Any]], int]:
        """Execute one statement; return its rows and the affected-row count.

        For writes the count is rows physically affected; for reads it is
        ``len(rows)``.
        """
        ...

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and return all rows as dicts."""
        ...

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecResult:
        """Execute a statement for its side effect."""
        ...

    def atomic(self) -> AbstractAsyncContextManager[None]:
        """Transaction scope; nests as a savepoint inside an open transaction."""
        ...


__all__ = [
    "ExecResult",
    "BackendSession",
]
