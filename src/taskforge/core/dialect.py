"""SQL dialect abstraction for the backend-agnostic query dialect.

Application code writes one dialect: ordinal ``$n`` markers, ``RETURNING``,
JSON columns.  Each ``Dialect`` states which of those features the backend
speaks natively and renders the SQL fragments the RETURNING emulator needs.

Architecture::

    Application SQL:  UPDATE tasks SET status = $1 WHERE id = $2 RETURNING *
                              │
              ┌───────────────┴────────────────┐
              ▼                                ▼
    ┌────────────────────┐          ┌──────────────────────┐
    │ SQLiteDialect      │          │ PostgreSQLDialect     │
    │ markers: ?         │          │ markers: $1 (native)  │
    │ RETURNING: emulate │          │ RETURNING: native     │
    └────────────────────┘          └──────────────────────┘

Examples:
    >>> d = get_dialect("sqlite")
    >>> d.translate("SELECT * FROM t WHERE id = $1", [7])
    ('SELECT * FROM t WHERE id = ?', (7,))
    >>> d.placeholders(3)
    '?, ?, ?'

Guardrails:
    ❌ DON'T: Rewrite markers with a regex over the raw text
    ✅ DO: Go through ``translate()``, which tokenizes first

Tags:
    dialect, sql, placeholders, returning, taskforge

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from .enums import DatabaseType
from .placeholders import MarkerStyle, translate_placeholders


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract."""

    @property
    def name(self) -> str:
        """Human-readable dialect name (e.g. ``'sqlite'``)."""
        ...

    @property
    def marker_style(self) -> MarkerStyle:
        """``'qmark'`` for generic positional markers, ``'numeric'`` for ``$n``."""
        ...

    @property
    def supports_returning(self) -> bool:
        """Whether ``INSERT/UPDATE/DELETE ... RETURNING`` runs natively."""
        ...

    @property
    def decodes_json(self) -> bool:
        """Whether the driver already hands back parsed ``json``/``jsonb`` values."""
        ...

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index)."""
        ...

    def placeholders(self, count: int, start: int = 0) -> str:
        """Comma-separated placeholder list."""
        ...

    def translate(self, text: str, params: Sequence[Any] = ()) -> tuple[str, tuple[Any, ...]]:
        """Rewrite ordinal markers for this backend and rebind parameters."""
        ...


class SQLiteDialect:
    """SQLite dialect -- ``?`` placeholders, RETURNING emulated."""

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def marker_style(self) -> MarkerStyle:
        return "qmark"

    @property
    def supports_returning(self) -> bool:
        return False

    @property
    def decodes_json(self) -> bool:
        return False

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int, start: int = 0) -> str:  # noqa: ARG002
        return ", ".join("?" for _ in range(count))

    def translate(self, text: str, params: Sequence[Any] = ()) -> tuple[str, tuple[Any, ...]]:
        return translate_placeholders(text, params, self.marker_style)


class PostgreSQLDialect:
    """PostgreSQL dialect -- native ``$n`` placeholders (asyncpg) and RETURNING.

    ``translate`` validates markers but leaves the text untouched.
    """

    @property
    def name(self) -> str:
        return "postgresql"

    @property
    def marker_style(self) -> MarkerStyle:
        return "numeric"

    @property
    def supports_returning(self) -> bool:
        return True

    @property
    def decodes_json(self) -> bool:
        # asyncpg runs the json/jsonb type codec installed on every connection
        return True

    def placeholder(self, index: int) -> str:
        return f"${index + 1}"

    def placeholders(self, count: int, start: int = 0) -> str:
        return ", ".join(self.placeholder(start + i) for i in range(count))

    def translate(self, text: str, params: Sequence[Any] = ()) -> tuple[str, tuple[Any, ...]]:
        return translate_placeholders(text, params, self.marker_style)


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
}


def get_dialect(db_type: str | DatabaseType) -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.value if isinstance(db_type, DatabaseType) else db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (test doubles, new drivers)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "register_dialect",
]
