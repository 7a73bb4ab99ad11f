"""Unified event model for sync observability.

Defines event types for the channel lifecycle, change routing, and the
refetch orchestrator.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


# ---------------------------------------------------------------------------
# Channel lifecycle events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChannelOpened:
    """A channel was created and its subscribe call issued.

    Attributes:
        channel: Unique channel name.
        tables: Tables multiplexed onto the channel.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    channel: str
    tables: tuple[str, ...]
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ChannelClosed:
    """A channel was detached by its consumer.

    Attributes:
        channel: Unique channel name.
        events_routed: Events delivered to the handler over the channel's life.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    channel: str
    events_routed: int
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ConnectionChanged:
    """A channel's connection state flipped.

    Attributes:
        channel: Unique channel name.
        connected: New state.
        reason: Lifecycle callback that caused the flip.
        detail: Error text for failures, empty otherwise.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    channel: str
    connected: bool
    reason: Literal["ack", "error", "timeout", "fault", "closed"]
    detail: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Routing events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChangeRouted:
    """A change notification was normalized and handed to a consumer.

    Attributes:
        channel: Channel the notification arrived on.
        table: Originating table.
        operation: ``insert``, ``update`` or ``delete``.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    channel: str
    table: str
    operation: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Refetch events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RefetchTriggered:
    """The orchestrator launched a refetch.

    Attributes:
        consumer: Consumer label (usually the channel name).
        table: Table whose change caused the refetch, empty for non-change triggers.
        reason: What requested the refetch.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    consumer: str
    table: str
    reason: Literal["mount", "change", "deps", "local", "reconcile"]
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class RefetchSkipped:
    """The orchestrator declined to launch a refetch.

    Attributes:
        consumer: Consumer label.
        table: Table whose change was absorbed.
        reason: Why no refetch was launched.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    consumer: str
    table: str
    reason: Literal["first_fetch_guard", "throttled", "coalesced", "cancelled"]
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class RefetchFailed:
    """A refetch raised.

    Attributes:
        consumer: Consumer label.
        error: ``repr`` of the exception.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    consumer: str
    error: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class RefetchProfile:
    """Timing of one completed refetch.

    Attributes:
        consumer: Consumer label.
        reason: What requested the refetch.
        duration_ms: Wall time of the fetch function.
        ok: False when the fetch raised.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    consumer: str
    reason: str
    duration_ms: float
    ok: bool
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type SyncEvent = (
    ChannelOpened
    | ChannelClosed
    | ConnectionChanged
    | ChangeRouted
    | RefetchTriggered
    | RefetchSkipped
    | RefetchFailed
    | RefetchProfile
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
