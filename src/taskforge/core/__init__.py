"""Taskforge Core -- backend-agnostic data access for the task manager.

Manifesto:
    The application's SQL is written once, PostgreSQL-style: ``$1``-numbered
    parameters and ``RETURNING`` on writes.  It must run unchanged on a
    single-file SQLite store in development and on PostgreSQL in production.
    ``taskforge.core`` is the compatibility layer that makes that true,
    behind one pool facade with an explicit lifecycle.

    - **Write once:** Placeholder translation and RETURNING emulation hide the store
    - **Fail closed:** Malformed markers and unemulable RETURNING never reach the store
    - **Same rows everywhere:** Structured columns decode to dict/list on both backends
    - **Import-guarded extras:** asyncpg loaded only when PostgreSQL connects

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (TaskforgeError + categories)
        enums.py           DatabaseType, StatementKind, PoolState
        result.py          QueryResult (rows + row_count)
        protocols.py       BackendSession protocol + ExecResult

    Layer 2 -- SQL Text
        sql.py             Tokenizer (strings, identifiers, comments, markers)
        placeholders.py    $n marker validation + translation
        statements.py      Statement classifier (kind, table, RETURNING spans)
        dialect.py         SQLite / PostgreSQL dialects

    Layer 3 -- Execution
        codec.py           Structured-field codec (JSON text <-> dict/list)
        returning.py       RETURNING emulator (INSERT / UPDATE / DELETE)
        executor.py        Query pipeline
        database.py        Async PostgreSQL connection pool helpers (asyncpg)
        adapters/          SQLite (aiosqlite) + PostgreSQL (asyncpg) adapters

    Layer 4 -- Facade & Cross-Cutting Concerns
        pool.py            DatabasePool + ConnectionHandle
        settings.py        DatabaseSettings (pydantic-settings)
        logging.py         Structured logging (structlog)

Tags:
    taskforge, data-access, sqlite, postgresql, returning, async

Doc-Types:
    package-overview, architecture-map, module-index
"""

from taskforge.core.adapters import (
    DatabaseAdapter,
    PostgreSQLAdapter,
    SQLiteAdapter,
    get_adapter,
)
from taskforge.core.codec import StructuredFieldCodec
from taskforge.core.dialect import (
    Dialect,
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
    register_dialect,
)
from taskforge.core.enums import DatabaseType, PoolState, StatementKind
from taskforge.core.errors import (
    BackendUnavailableError,
    ConfigError,
    ConstraintViolationError,
    DatabaseError,
    ErrorCategory,
    MalformedQueryError,
    NotInitializedError,
    QueryError,
    TaskforgeError,
    is_retryable,
)
from taskforge.core.executor import QueryExecutor
from taskforge.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from taskforge.core.placeholders import translate_placeholders
from taskforge.core.pool import ConnectionHandle, DatabasePool, init_database
from taskforge.core.protocols import BackendSession, ExecResult
from taskforge.core.result import QueryResult
from taskforge.core.returning import ReturningEmulator
from taskforge.core.settings import DatabaseSettings
from taskforge.core.statements import Statement, classify

__all__ = [
    # adapters
    "DatabaseAdapter",
    "SQLiteAdapter",
    "PostgreSQLAdapter",
    "get_adapter",
    # codec
    "StructuredFieldCodec",
    # dialect
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "register_dialect",
    # enums
    "DatabaseType",
    "PoolState",
    "StatementKind",
    # errors
    "TaskforgeError",
    "ErrorCategory",
    "ConfigError",
    "NotInitializedError",
    "DatabaseError",
    "MalformedQueryError",
    "ConstraintViolationError",
    "QueryError",
    "BackendUnavailableError",
    "is_retryable",
    # execution
    "QueryExecutor",
    "ReturningEmulator",
    "BackendSession",
    "ExecResult",
    "QueryResult",
    # logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    # sql text
    "translate_placeholders",
    "Statement",
    "classify",
    # facade
    "DatabasePool",
    "ConnectionHandle",
    "init_database",
    "DatabaseSettings",
]
