"""Structured-field codec.

Some columns hold a structured value (the ``specifications`` of an inventory
item, the ``metadata`` of an activity log) that SQLite stores as JSON text.
The codec makes both backends look the same to application code:

- **write**: ``dict`` / ``list`` parameters are serialized to canonical JSON
  text before binding; text is passed through unchanged, so a caller that
  already serialized the value does not get it double-encoded;
- **read**: declared structured columns whose value is text are parsed back;
  text that is not valid JSON is returned unchanged -- historical rows are
  allowed to be messy and a read never fails because of them.

Round-trip law: ``decode(encode(v)) == v`` for every dict/list the
application stores.

Examples:
    >>> codec = StructuredFieldCodec(["specifications"])
    >>> codec.encode({"ram": "16GB", "ssd": True})
    '{"ram":"16GB","ssd":true}'
    >>> codec.encode('{"ram":"16GB"}')
    '{"ram":"16GB"}'
    >>> codec.decode_row({"id": 1, "specifications": '{"ram":"16GB"}'})
    {'id': 1, 'specifications': {'ram': '16GB'}}
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .logging import get_logger

logger = get_logger(__name__)

STRUCTURED_TYPES = (dict, list)


class StructuredFieldCodec:
    """Encode structured parameters on write, decode structured columns on read."""

    def __init__(self, columns: Iterable[str] = ()):
        self._columns = frozenset(c.lower() for c in columns)

    @property
    def columns(self) -> frozenset[str]:
        return self._columns

    def is_structured(self, column: str) -> bool:
        return column.lower() in self._columns

    # -- write ---------------------------------------------------------------

    def encode(self, value: Any) -> Any:
        """Serialize a structured value to canonical JSON text.

        Text (including already-serialized JSON) and scalars pass through.
        """
        if isinstance(value, STRUCTURED_TYPES):
            return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
        return value

    def encode_params(self, params: Sequence[Any]) -> tuple[Any, ...]:
        return tuple(self.encode(p) for p in params)

    def to_json_text(self, value: Any) -> str:
        """Encoder for native ``json``/``jsonb`` types: scalars are serialized too."""
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)

    # -- read ----------------------------------------------------------------

    def decode(self, value: Any) -> Any:
        """Parse JSON text; anything unparseable is returned as-is."""
        if not isinstance(value, (str, bytes)):
            return value
        try:
            return json.loads(value)
        except ValueError:
            logger.debug("structured_field_passthrough", length=len(value))
            return value

    def decode_row(self, row: Mapping[str, Any]) -> dict[str, Any]:
        decoded = dict(row)
        for key, value in decoded.items():
            if value is not None and key.lower() in self._columns:
                decoded[key] = self.decode(value)
        return decoded

    def decode_rows(self, rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        if not self._columns:
            return [dict(r) for r in rows]
        return [self.decode_row(r) for r in rows]

    def __repr__(self) -> str:
        return f"StructuredFieldCodec({sorted(self._columns)!r})"


__all__ = [
    "StructuredFieldCodec",
]
