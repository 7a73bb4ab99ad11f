"""In-process change source.

Delivers notifications published from Python code to every channel whose
filters match, using the same raw payload shape as the hosted realtime
service.  Used by the test suite, demos, and local development without a
database.  Supports failure injection: rejected subscribes, withheld
acknowledgments, and connection drops.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ledgerline._errors import SubscribeError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ledgerline._types import Operation, Row
    from ledgerline.source.base import RawCallback, StatusCallback, SubscriptionFilter


@dataclass(slots=True)
class _Subscription:
    """One acknowledged channel inside the in-memory source."""

    name: str
    listeners: tuple[tuple[SubscriptionFilter, RawCallback], ...]
    on_status: StatusCallback
    delivered: int = field(default=0)


def build_payload(
    table: str,
    operation: Operation,
    row: Row | None,
    *,
    old_row: Row | None = None,
    schema: str = "public",
    commit_timestamp: str | None = None,
) -> dict[str, Any]:
    """Build a raw notification in the realtime wire shape."""
    return {
        "data": {
            "type": operation.upper(),
            "table": table,
            "schema": schema,
            "record": row,
            "old_record": old_row,
            "commit_timestamp": commit_timestamp or datetime.now(UTC).isoformat(),
        },
        "ids": [],
    }


class InMemoryChangeSource:
    """Change source backed by plain Python calls.

    One instance models one multiplexed transport: any number of channels
    may subscribe, and ``publish`` fans a row change out to every listener
    whose filter matches.

    Thread-safe: the subscription map is protected by a lock.

    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, _Subscription] = {}
        self._lock = threading.Lock()
        self._online = True
        self._reject: BaseException | None = None
        self._hold_acks = False

    # ----- Inspection -----

    @property
    def online(self) -> bool:
        """Whether the transport currently delivers notifications."""
        return self._online

    @property
    def channel_names(self) -> frozenset[str]:
        """Names of all acknowledged channels."""
        with self._lock:
            return frozenset(self._subscriptions)

    # ----- Failure injection -----

    def reject_next_subscribe(self, exc: BaseException | None = None) -> None:
        """Make the next subscribe call fail with *exc*."""
        self._reject = exc or ConnectionError("network unreachable")

    def hold_acks(self, hold: bool = True) -> None:
        """Never acknowledge subscribes while *hold* is set."""
        self._hold_acks = hold

    def disconnect(self, exc: BaseException | None = None) -> None:
        """Drop the transport: report a fault to every channel and stop delivery."""
        self._online = False
        for sub in self._snapshot():
            sub.on_status("closed" if exc is None else "error", exc)

    def reconnect(self) -> None:
        """Restore the transport and re-acknowledge every channel."""
        self._online = True
        for sub in self._snapshot():
            sub.on_status("subscribed", None)

    # ----- ChangeSource protocol -----

    async def subscribe(
        self,
        channel_name: str,
        listeners: Sequence[tuple[SubscriptionFilter, RawCallback]],
        on_status: StatusCallback,
    ) -> None:
        """Register a channel and acknowledge it on the next loop iteration."""
        if self._reject is not None:
            exc, self._reject = self._reject, None
            msg = f"Subscribe rejected for {channel_name}: {exc}"
            raise SubscribeError(msg) from exc
        if not self._online:
            msg = f"Subscribe failed for {channel_name}: transport offline"
            raise SubscribeError(msg)
        if self._hold_acks:
            # Models a source that never answers; callers bound this with a timeout.
            await asyncio.Event().wait()

        await asyncio.sleep(0)
        with self._lock:
            self._subscriptions[channel_name] = _Subscription(
                name=channel_name,
                listeners=tuple(listeners),
                on_status=on_status,
            )

    async def unsubscribe(self, channel_name: str) -> None:
        """Remove a channel."""
        with self._lock:
            self._subscriptions.pop(channel_name, None)

    # ----- Publishing -----

    def publish(
        self,
        table: str,
        operation: Operation,
        row: Row | None = None,
        *,
        old_row: Row | None = None,
        schema: str = "public",
    ) -> int:
        """Deliver a row change to every matching listener.

        Returns:
            Number of listener invocations (0 while offline).

        """
        if not self._online:
            return 0

        payload = build_payload(table, operation, row, old_row=old_row, schema=schema)
        count = 0
        for sub in self._snapshot():
            for flt, callback in sub.listeners:
                if flt.table == table and flt.operation == operation and flt.schema == schema:
                    callback(payload)
                    sub.delivered += 1
                    count += 1
        return count

    def publish_soon(
        self,
        table: str,
        operation: Operation,
        row: Row | None = None,
        *,
        old_row: Row | None = None,
        schema: str = "public",
    ) -> asyncio.Handle:
        """Schedule ``publish`` on the running loop (an in-flight notification)."""
        loop = asyncio.get_running_loop()
        return loop.call_soon(
            lambda: self.publish(table, operation, row, old_row=old_row, schema=schema)
        )

    def _snapshot(self) -> tuple[_Subscription, ...]:
        with self._lock:
            return tuple(self._subscriptions.values())
