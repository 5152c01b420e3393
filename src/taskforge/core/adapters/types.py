"""Adapter-level types shared by the concrete adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from taskforge.core.enums import DatabaseType


@dataclass
class AdapterStats:
    """Point-in-time view of an adapter's connection resources."""

    backend: DatabaseType
    connected: bool
    size: int = 0
    free_size: int = 0
    min_size: int = 0
    max_size: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = {
            "backend": self.backend.value,
            "connected": self.connected,
            "size": self.size,
            "free_size": self.free_size,
            "min_size": self.min_size,
            "max_size": self.max_size,
        }
        result.update(self.extra)
        return result


__all__ = [
    "DatabaseType",
    "AdapterStats",
]
