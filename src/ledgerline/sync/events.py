"""Change events — the canonical shape handed to consumers.

The source may deliver two payload shapes:

- realtime wire shape: ``{"data": {"type", "table", "schema", "record",
  "old_record", "commit_timestamp"}, "ids": [...]}``
- flat client shape: ``{"eventType", "table", "schema", "new", "old",
  "commit_timestamp"}``

``normalize_payload`` accepts either and produces a ``ChangeEvent``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ledgerline._types import Operation, Row


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A row-level change on one table.

    Attributes:
        table: Originating table.
        operation: ``insert``, ``update`` or ``delete``.
        row: The row after the change; for deletes, the removed row.
        old_row: The row before the change when the source provides it.
        schema: Database schema of the table.
        commit_timestamp: Commit time reported by the source, if any.

    """

    table: str
    operation: Operation
    row: Row
    old_row: Row | None = None
    schema: str = "public"
    commit_timestamp: str | None = None


def _body(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    if isinstance(data, dict):
        return data
    return payload


def payload_table(payload: dict[str, Any]) -> str | None:
    """Return the table named inside a raw payload, if any."""
    table = _body(payload).get("table")
    return table if isinstance(table, str) else None


def normalize_payload(
    table: str,
    operation: Operation,
    payload: dict[str, Any],
) -> ChangeEvent:
    """Build a ChangeEvent from a raw payload received by a table listener.

    The listener's table and operation are authoritative; the payload only
    supplies the row images and metadata.

    """
    body = _body(payload)

    new = body.get("record", body.get("new"))
    old = body.get("old_record", body.get("old"))
    new_row = new if isinstance(new, dict) and new else None
    old_row = old if isinstance(old, dict) and old else None

    if operation == "delete":
        row = old_row or new_row or {}
    else:
        row = new_row or {}

    schema = body.get("schema")
    commit_timestamp = body.get("commit_timestamp")

    return ChangeEvent(
        table=table,
        operation=operation,
        row=row,
        old_row=old_row,
        schema=schema if isinstance(schema, str) else "public",
        commit_timestamp=commit_timestamp if isinstance(commit_timestamp, str) else None,
    )
