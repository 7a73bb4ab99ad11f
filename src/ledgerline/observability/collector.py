"""Sync collector — records channel, routing, and refetch events.

Implements Pounce's ``LifecycleCollector`` protocol so it can be passed
directly to the status server.  Also provides methods for recording
events from the channel manager, router, and refetch orchestrator.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.
    Safe for concurrent use from multiple threads.

"""

from __future__ import annotations

from typing import Any

from ledgerline.observability.events import (
    ChangeRouted,
    ChannelClosed,
    ChannelOpened,
    ConnectionChanged,
    RefetchFailed,
    RefetchProfile,
    RefetchSkipped,
    RefetchTriggered,
    now_ns,
)
from ledgerline.observability.log import EventLog


class SyncCollector:
    """Unified event collector for the sync runtime.

    Implements Pounce's ``LifecycleCollector`` protocol (duck-typed) so
    it can be injected into the status server as the lifecycle collector.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    # ----- Pounce LifecycleCollector protocol -----

    def record(self, event: Any) -> None:
        """Record a Pounce lifecycle event."""
        self._log.append(event)

    # ----- Channel lifecycle -----

    def record_channel_opened(self, channel: str, tables: tuple[str, ...]) -> None:
        """Record a channel creation."""
        self._log.append(
            ChannelOpened(channel=channel, tables=tables, timestamp_ns=now_ns())
        )

    def record_channel_closed(self, channel: str, *, events_routed: int = 0) -> None:
        """Record a channel teardown."""
        self._log.append(
            ChannelClosed(
                channel=channel,
                events_routed=events_routed,
                timestamp_ns=now_ns(),
            )
        )

    def record_connection(
        self,
        channel: str,
        connected: bool,
        *,
        reason: str,
        detail: str = "",
    ) -> None:
        """Record a connection state flip."""
        self._log.append(
            ConnectionChanged(
                channel=channel,
                connected=connected,
                reason=reason,  # type: ignore[arg-type]
                detail=detail,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Routing -----

    def record_routed(self, channel: str, table: str, operation: str) -> None:
        """Record a change notification handed to a consumer."""
        self._log.append(
            ChangeRouted(
                channel=channel,
                table=table,
                operation=operation,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Refetch -----

    def record_refetch(self, consumer: str, *, table: str = "", reason: str) -> None:
        """Record a launched refetch."""
        self._log.append(
            RefetchTriggered(
                consumer=consumer,
                table=table,
                reason=reason,  # type: ignore[arg-type]
                timestamp_ns=now_ns(),
            )
        )

    def record_refetch_skipped(self, consumer: str, *, table: str = "", reason: str) -> None:
        """Record a refetch request that was absorbed."""
        self._log.append(
            RefetchSkipped(
                consumer=consumer,
                table=table,
                reason=reason,  # type: ignore[arg-type]
                timestamp_ns=now_ns(),
            )
        )

    def record_refetch_failed(self, consumer: str, error: BaseException) -> None:
        """Record a refetch that raised."""
        self._log.append(
            RefetchFailed(consumer=consumer, error=repr(error), timestamp_ns=now_ns())
        )

    def record_refetch_profile(
        self,
        consumer: str,
        *,
        reason: str,
        duration_ms: float,
        ok: bool = True,
    ) -> None:
        """Record the timing of a completed refetch."""
        self._log.append(
            RefetchProfile(
                consumer=consumer,
                reason=reason,
                duration_ms=duration_ms,
                ok=ok,
                timestamp_ns=now_ns(),
            )
        )
