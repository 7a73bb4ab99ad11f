"""Channel manager — one logical realtime channel per consumer instance.

Owns the lifecycle of every channel: naming, listener registration via the
router, the subscribe handshake, connection state, and teardown.

Lifecycle:
    open()   → name channel → register listeners → await ack → connected
    (source) → fault → disconnected → re-ack → connected
    close()  → router stops delivering (synchronously) → unsubscribe (task)
"""

from __future__ import annotations

import asyncio
import itertools
import sys
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ledgerline._errors import ChannelError, SourceError, SubscribeError
from ledgerline.config import SyncConfig
from ledgerline.sync.router import ChangeRouter, SubscriptionDescriptor
from ledgerline.sync.state import ConnectionState

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ledgerline._types import ChangeHandler
    from ledgerline.observability.collector import SyncCollector
    from ledgerline.source.base import ChangeSource, SourceStatus


# Process-wide channel sequence; names never depend on wall-clock time.
_channel_seq = itertools.count(1)

_FAULT_REASONS: dict[str, str] = {
    "error": "fault",
    "timed_out": "timeout",
    "closed": "closed",
}


@dataclass(eq=False, slots=True)
class ChannelHandle:
    """Token returned by ``ChannelManager.open`` and passed back to ``close``.

    Attributes:
        descriptor: The consumer's subscription.
        router: Router delivering the channel's events.
        state: The channel's connection state.

    """

    descriptor: SubscriptionDescriptor
    router: ChangeRouter
    state: ConnectionState
    teardown: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def name(self) -> str:
        """Unique channel name."""
        return self.descriptor.channel_name

    @property
    def tables(self) -> frozenset[str]:
        """Tables multiplexed onto the channel."""
        return self.descriptor.tables

    @property
    def connected(self) -> bool:
        """Current connection state."""
        return self.state.connected

    @property
    def closed(self) -> bool:
        """Whether ``close`` has run."""
        return self.router.closed


class ChannelManager:
    """Opens, tracks, and closes channels on a change source.

    Each consumer gets its own channel even when several consumers watch the
    same table; closing one never affects another.  The underlying transport
    may still be shared by the source.

    Thread-safe: the handle registry is protected by a lock.

    Args:
        source: The change source to subscribe on.
        config: Sync configuration (schema, channel prefix, ack timeout).
        collector: Optional collector for lifecycle events.

    """

    def __init__(
        self,
        source: ChangeSource,
        *,
        config: SyncConfig | None = None,
        collector: SyncCollector | None = None,
    ) -> None:
        self._source = source
        self._config = config or SyncConfig()
        self._collector = collector
        self._handles: dict[str, ChannelHandle] = {}
        self._watchers: list[Callable[[str, bool], None]] = []
        self._teardowns: set[asyncio.Task[None]] = set()
        self._lock = threading.Lock()

    @property
    def config(self) -> SyncConfig:
        """The active sync configuration."""
        return self._config

    @property
    def collector(self) -> SyncCollector | None:
        """The lifecycle event collector, if any."""
        return self._collector

    @property
    def handles(self) -> tuple[ChannelHandle, ...]:
        """Snapshot of all open channels."""
        with self._lock:
            return tuple(self._handles.values())

    @property
    def connected_count(self) -> int:
        """Number of open channels currently acknowledged."""
        return sum(1 for h in self.handles if h.connected)

    def channel_name(self, tables: Iterable[str]) -> str:
        """Return a fresh, unique channel name for *tables*."""
        joined = "+".join(sorted(tables))
        return f"{self._config.channel_prefix}:{joined}:{next(_channel_seq)}"

    def watch(self, callback: Callable[[str, bool], None]) -> Callable[[], None]:
        """Observe every connection flip as ``(channel_name, connected)``.

        Returns:
            A function that removes the observer.

        """
        with self._lock:
            self._watchers.append(callback)

        def _unwatch() -> None:
            with self._lock:
                if callback in self._watchers:
                    self._watchers.remove(callback)

        return _unwatch

    async def open(self, tables: Iterable[str], on_event: ChangeHandler) -> ChannelHandle:
        """Open a channel delivering insert/update/delete events for *tables*.

        Suspends until the source acknowledges the subscription or the
        configured timeout elapses.  Subscribe failures never raise: the
        returned handle simply stays disconnected.

        Raises:
            ChannelError: If *tables* is empty.

        """
        table_set = frozenset(tables)
        if not table_set:
            msg = "Cannot open a channel without tables"
            raise ChannelError(msg)

        name = self.channel_name(table_set)
        descriptor = SubscriptionDescriptor(
            channel_name=name,
            tables=table_set,
            handler=on_event,
            schema=self._config.schema,
        )
        handle = ChannelHandle(
            descriptor=descriptor,
            router=ChangeRouter(descriptor, collector=self._collector),
            state=ConnectionState(name),
        )
        with self._lock:
            self._handles[name] = handle
        if self._collector is not None:
            self._collector.record_channel_opened(name, tuple(sorted(table_set)))

        def _on_status(status: SourceStatus, error: BaseException | None) -> None:
            self._on_status(handle, status, error)

        try:
            await asyncio.wait_for(
                self._source.subscribe(name, handle.router.listeners(), _on_status),
                timeout=self._config.subscribe_timeout,
            )
        except TimeoutError:
            self._record_failure(handle, "timeout", "no acknowledgment")
            return handle
        except (SubscribeError, SourceError, OSError) as exc:
            self._record_failure(handle, "error", str(exc))
            return handle
        except asyncio.CancelledError:
            self.close(handle)
            raise

        if handle.closed:
            # Consumer unmounted while the ack was pending.
            self._schedule_teardown(handle)
            return handle

        self._set_state(handle, True, reason="ack")
        return handle

    def close(self, handle: ChannelHandle) -> asyncio.Task[None] | None:
        """Detach *handle* and stop delivering its events.

        Delivery stops before this returns; events already in flight are
        dropped.  Source teardown runs as a task on the current loop.

        Returns:
            The teardown task, or None if already closed or no loop is running.

        """
        if handle.closed:
            return None

        handle.router.close()
        with self._lock:
            self._handles.pop(handle.name, None)
        self._set_state(handle, False, reason="closed")
        if self._collector is not None:
            self._collector.record_channel_closed(handle.name, events_routed=handle.router.routed)

        return self._schedule_teardown(handle)

    async def aclose(self, handle: ChannelHandle) -> None:
        """Close *handle* and wait for the source teardown."""
        task = self.close(handle)
        if task is not None:
            await task

    async def reopen(self, handle: ChannelHandle) -> ChannelHandle:
        """Replace *handle* with a fresh channel for the same tables and handler."""
        await self.aclose(handle)
        return await self.open(handle.tables, handle.descriptor.handler)

    async def shutdown(self) -> None:
        """Close every open channel and wait for all teardowns."""
        for handle in self.handles:
            self.close(handle)
        if self._teardowns:
            await asyncio.gather(*tuple(self._teardowns), return_exceptions=True)

    # ----- Internals -----

    def _on_status(
        self,
        handle: ChannelHandle,
        status: SourceStatus,
        error: BaseException | None,
    ) -> None:
        if handle.closed:
            return
        if status == "subscribed":
            self._set_state(handle, True, reason="ack")
        else:
            detail = str(error) if error is not None else ""
            self._set_state(handle, False, reason=_FAULT_REASONS.get(status, "fault"), detail=detail)

    def _set_state(
        self,
        handle: ChannelHandle,
        connected: bool,
        *,
        reason: str,
        detail: str = "",
    ) -> None:
        if not handle.state._set(connected):
            return
        if self._collector is not None:
            self._collector.record_connection(handle.name, connected, reason=reason, detail=detail)
        with self._lock:
            watchers = tuple(self._watchers)
        for callback in watchers:
            try:
                callback(handle.name, connected)
            except Exception as exc:
                print(f"  Channel watcher error ({handle.name}): {exc}", file=sys.stderr)

    def _record_failure(self, handle: ChannelHandle, reason: str, detail: str) -> None:
        """Record a failed initial subscribe; the state is already disconnected."""
        if self._collector is not None:
            self._collector.record_connection(handle.name, False, reason=reason, detail=detail)

    def _schedule_teardown(self, handle: ChannelHandle) -> asyncio.Task[None] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None

        task = loop.create_task(self._source.unsubscribe(handle.name))
        handle.teardown = task
        self._teardowns.add(task)
        task.add_done_callback(self._teardown_done)
        return task

    def _teardown_done(self, task: asyncio.Task[None]) -> None:
        self._teardowns.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            print(f"  Channel teardown error: {exc}", file=sys.stderr)
