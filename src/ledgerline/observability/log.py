"""Event log — bounded history of sync events.

Keeps the most recent ``SyncEvent`` objects in a ring buffer so the status
server and tests can ask what happened on a channel: when it was
acknowledged, which changes it routed, and which refetches they caused.

Thread Safety:
    Guarded by a single ``threading.Lock``; the status server reads while
    the event loop writes.

"""

import threading
from collections import Counter, deque
from collections.abc import Iterable
from typing import Any

from ledgerline.observability.events import SyncEvent


def _label(event: SyncEvent) -> str:
    """Channel name or consumer label of *event*."""
    return getattr(event, "channel", None) or getattr(event, "consumer", None) or ""


class EventLog:
    """Ring buffer of sync events with filtered lookups.

    Once ``max_events`` is reached the oldest event is evicted on append.

    Args:
        max_events: Capacity of the buffer.

    """

    __slots__ = ("_buffer", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._buffer: deque[SyncEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    @property
    def max_events(self) -> int:
        """Capacity of the buffer."""
        return self._max_events

    def append(self, event: SyncEvent) -> None:
        """Store one event."""
        with self._lock:
            self._buffer.append(event)

    def append_many(self, events: Iterable[SyncEvent]) -> None:
        """Store several events under one lock acquisition."""
        with self._lock:
            self._buffer.extend(events)

    def query(
        self,
        *,
        event_type: type | None = None,
        since_ns: int = 0,
        channel: str | None = None,
        table: str | None = None,
        limit: int = 100,
    ) -> list[SyncEvent]:
        """Return matching events, newest first.

        Args:
            event_type: Keep only instances of this class.
            since_ns: Keep only events stamped at or after this time.
            channel: Keep only events whose channel name or consumer label
                contains this substring.
            table: Keep only events that name exactly this table.
            limit: Stop after this many matches.

        """
        with self._lock:
            snapshot = tuple(self._buffer)

        matches: list[SyncEvent] = []
        for event in reversed(snapshot):
            if len(matches) >= limit:
                break
            if event_type is not None and not isinstance(event, event_type):
                continue
            if since_ns and getattr(event, "timestamp_ns", 0) < since_ns:
                continue
            if channel is not None and channel not in _label(event):
                continue
            if table is not None and getattr(event, "table", None) != table:
                continue
            matches.append(event)
        return matches

    def recent(self, n: int = 20) -> list[SyncEvent]:
        """Return the last *n* events, oldest first."""
        with self._lock:
            snapshot = list(self._buffer)
        return snapshot[-n:]

    def by_channel(self) -> dict[str, int]:
        """Count stored events per channel name or consumer label."""
        with self._lock:
            snapshot = tuple(self._buffer)
        return dict(Counter(_label(e) for e in snapshot if _label(e)))

    def clear(self) -> int:
        """Drop every event; return how many were dropped."""
        with self._lock:
            dropped = len(self._buffer)
            self._buffer.clear()
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def stats(self) -> dict[str, Any]:
        """Summary for the stats endpoint: totals per event class and per channel."""
        with self._lock:
            snapshot = tuple(self._buffer)
        return {
            "total": len(snapshot),
            "max_events": self._max_events,
            "by_type": dict(Counter(type(e).__name__ for e in snapshot)),
            "by_channel": dict(Counter(_label(e) for e in snapshot if _label(e))),
        }
