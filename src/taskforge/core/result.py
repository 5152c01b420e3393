"""Query result returned by every path through the pool facade."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

Row = dict[str, Any]


@dataclass
class QueryResult:
    """
    Rows plus affected-row count.

    For INSERT/UPDATE/DELETE ``row_count`` is the number of rows physically
    affected, independent of how many rows are echoed back in ``rows``.
    For SELECT it is ``len(rows)`` and carries no extra meaning.
    """

    rows: list[Row] = field(default_factory=list)
    row_count: int = 0

    def first(self) -> Row | None:
        """First row, or ``None`` when the result is empty."""
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:
        """First column of the first row, or ``None``."""
        row = self.first()
        if not row:
            return None
        return next(iter(row.values()))

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)


__all__ = [
    "Row",
    "QueryResult",
]
