"""Change router — demultiplexes notifications to a single consumer handler.

A channel carries one listener per (table, operation) pair.  Each listener
closes over its table and operation, normalizes the raw payload, and forwards
it to the descriptor's one handler tagged with the originating table.  A
descriptor covering N tables still has exactly one handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ledgerline._types import OPERATIONS
from ledgerline.source.base import SubscriptionFilter
from ledgerline.sync.events import normalize_payload, payload_table

if TYPE_CHECKING:
    from ledgerline._types import ChangeHandler, Operation
    from ledgerline.observability.collector import SyncCollector
    from ledgerline.source.base import RawCallback


@dataclass(frozen=True, slots=True)
class SubscriptionDescriptor:
    """What one consumer subscribed to.

    Attributes:
        channel_name: Unique name of the channel carrying the subscription.
        tables: Tables the consumer cares about.
        handler: The consumer's single change handler.
        schema: Database schema of the tables.

    """

    channel_name: str
    tables: frozenset[str]
    handler: ChangeHandler
    schema: str = "public"


class ChangeRouter:
    """Routes raw payloads of one channel to its descriptor's handler.

    Once closed, every payload is dropped, including payloads that were
    already scheduled for delivery when ``close()`` ran.

    Args:
        descriptor: The subscription being served.
        collector: Optional collector for ``ChangeRouted`` events.

    """

    __slots__ = ("_closed", "_collector", "_descriptor", "_routed")

    def __init__(
        self,
        descriptor: SubscriptionDescriptor,
        *,
        collector: SyncCollector | None = None,
    ) -> None:
        self._descriptor = descriptor
        self._collector = collector
        self._closed = False
        self._routed = 0

    @property
    def descriptor(self) -> SubscriptionDescriptor:
        """The subscription being served."""
        return self._descriptor

    @property
    def closed(self) -> bool:
        """Whether the router has stopped delivering."""
        return self._closed

    @property
    def routed(self) -> int:
        """Number of events handed to the handler so far."""
        return self._routed

    def listeners(self) -> tuple[tuple[SubscriptionFilter, RawCallback], ...]:
        """Build one (filter, callback) pair per table and operation."""
        schema = self._descriptor.schema
        return tuple(
            (SubscriptionFilter(table=table, operation=op, schema=schema), self._listener(table, op))
            for table in sorted(self._descriptor.tables)
            for op in OPERATIONS
        )

    def dispatch(self, table: str, operation: Operation, payload: dict[str, Any]) -> bool:
        """Normalize *payload* and call the handler.

        Returns:
            True if the handler was invoked.

        """
        if self._closed:
            return False

        named = payload_table(payload)
        if named is not None and named != table:
            return False

        event = normalize_payload(table, operation, payload)
        self._routed += 1
        if self._collector is not None:
            self._collector.record_routed(self._descriptor.channel_name, table, operation)
        self._descriptor.handler(table, event)
        return True

    def close(self) -> None:
        """Stop delivering.  Idempotent."""
        self._closed = True

    def _listener(self, table: str, operation: Operation) -> RawCallback:
        def _on_payload(payload: dict[str, Any]) -> None:
            self.dispatch(table, operation, payload)

        return _on_payload
