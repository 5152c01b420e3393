"""Database adapter registry and factory.

Manifesto:
    Consumers should never hard-code adapter class names.  The registry
    maps ``DatabaseType`` strings to adapter classes and the ``get_adapter()``
    factory creates an instance configured from ``DatabaseSettings``.

Features:
    - ``AdapterRegistry`` with pre-registered defaults
    - ``register()`` for custom adapters (test doubles, other stores)
    - ``get_adapter()`` factory: type + settings → unconnected adapter

Tags:
    taskforge, database, registry, factory

Doc-Types:
    api-reference
"""

from __future__ import annotations

from taskforge.core.errors import ConfigError
from taskforge.core.settings import DatabaseSettings

from .base import DatabaseAdapter
from .postgresql import PostgreSQLAdapter
from .sqlite import SQLiteAdapter
from .types import DatabaseType


class AdapterRegistry:
    """
    Registry for database adapter factories.

    Pre-registered adapters:
    - ``sqlite`` - :class:`SQLiteAdapter`
    - ``postgresql`` / ``postgres`` - :class:`PostgreSQLAdapter`
    """

    def __init__(self):
        self._factories: dict[str, type[DatabaseAdapter]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        """Register default adapters."""
        self._factories["sqlite"] = SQLiteAdapter
        self._factories["postgresql"] = PostgreSQLAdapter
        self._factories["postgres"] = PostgreSQLAdapter  # Alias

    def register(self, name: str, adapter_class: type[DatabaseAdapter]) -> None:
        """Register an adapter factory."""
        self._factories[name.lower()] = adapter_class

    def create(self, name: str, settings: DatabaseSettings) -> DatabaseAdapter:
        """Create an adapter by name."""
        name = name.lower()
        if name not in self._factories:
            raise ConfigError(
                f"Unknown database adapter: {name}. Available: {', '.join(self.list_adapters())}"
            )
        return self._factories[name](settings)

    def list_adapters(self) -> list[str]:
        """List registered adapter names."""
        return sorted(self._factories.keys())


# Global registry
adapter_registry = AdapterRegistry()


def get_adapter(
    db_type: DatabaseType | str,
    settings: DatabaseSettings | None = None,
) -> DatabaseAdapter:
    """
    Get a database adapter by type.

    Usage:
        adapter = get_adapter(DatabaseType.SQLITE, DatabaseSettings(sqlite_path="data.db"))
        adapter = get_adapter("postgresql", DatabaseSettings.from_url(url))
    """
    if isinstance(db_type, DatabaseType):
        name = db_type.value
    else:
        name = db_type

    return adapter_registry.create(name, settings or DatabaseSettings())


__all__ = [
    "AdapterRegistry",
    "adapter_registry",
    "get_adapter",
]
