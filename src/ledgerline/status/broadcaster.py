"""Status broadcaster — pushes Live / Offline flips to connected browsers.

Manages SSE connections for the status endpoint.  The channel manager
reports every connection flip; the broadcaster turns each into a
``ledgerline:status`` SSE event and enqueues it for every subscriber.
"""

from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable

    from ledgerline.sync.channel import ChannelHandle, ChannelManager

STATUS_EVENT = "ledgerline:status"


@dataclass(frozen=True, slots=True)
class StatusConnection:
    """A connected SSE client.

    Attributes:
        client_id: Unique identifier for this connection.
        queue: asyncio.Queue[Any] for pushing events to the client's generator.

    """

    client_id: str
    queue: asyncio.Queue[Any] = field(default_factory=asyncio.Queue, compare=False, hash=False)


def status_event(channel: str, connected: bool) -> Any:
    """Build the SSE event for one channel's state."""
    from chirp import SSEEvent

    data = json.dumps({
        "channel": channel,
        "connected": connected,
        "label": "Live" if connected else "Offline",
    })
    return SSEEvent(data=data, event=STATUS_EVENT)


class StatusBroadcaster:
    """Manages SSE connections and fans out connection-state events.

    Thread-safe: subscriber set protected by a lock.

    """

    def __init__(self) -> None:
        self._subscribers: set[StatusConnection] = set()
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        """Number of active SSE connections."""
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, conn: StatusConnection) -> None:
        """Register an SSE client."""
        with self._lock:
            self._subscribers.add(conn)

    def unsubscribe(self, conn: StatusConnection) -> None:
        """Remove an SSE client."""
        with self._lock:
            self._subscribers.discard(conn)

    def get_subscribers(self) -> frozenset[StatusConnection]:
        """Snapshot of all subscribers (no lock held on return)."""
        with self._lock:
            return frozenset(self._subscribers)

    def attach(self, manager: ChannelManager) -> Callable[[], None]:
        """Forward every connection flip of *manager* to subscribers.

        Returns:
            A function that detaches the broadcaster.

        """
        return manager.watch(self.push_status)

    def push_status(self, channel: str, connected: bool) -> int:
        """Enqueue a status event for every subscriber.

        Returns:
            Number of clients notified.

        """
        event = status_event(channel, connected)
        count = 0
        for conn in self.get_subscribers():
            try:
                conn.queue.put_nowait(event)
                count += 1
            except asyncio.QueueFull:
                pass  # Drop if client queue is full
        return count

    def push_snapshot(self, conn: StatusConnection, handles: Iterable[ChannelHandle]) -> int:
        """Enqueue the current state of every channel for one new client."""
        count = 0
        for handle in handles:
            conn.queue.put_nowait(status_event(handle.name, handle.connected))
            count += 1
        return count

    async def client_generator(self, conn: StatusConnection) -> AsyncIterator[Any]:
        """Async generator that yields events from a connection's queue.

        Used as the generator for Chirp's ``EventStream``.  Catches
        ``CancelledError`` (client disconnect) and ``GeneratorExit``
        (generator cleanup) so shutdown stays quiet.

        """
        try:
            while True:
                event = await conn.queue.get()
                yield event
        except (asyncio.CancelledError, GeneratorExit):
            return
