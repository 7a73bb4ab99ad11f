"""Refetch orchestrator — decides when a consumer re-queries its working set.

Each consumer instance owns one orchestrator and therefore one First-Fetch
Guard.  The guard is a two-state machine:

    PRIMING --(first routed event, discarded)--> ACTIVE

In ``ACTIVE`` every routed event launches exactly one refetch.  Refetches
are fire-and-forget tasks: the orchestrator never awaits them, so refetches
from rapid successive events may overlap.

Two opt-in deviations exist:

- ``coalesce``: a single-slot "latest pending" queue.  A request made while
  a refetch is in flight only sets a pending flag; the in-flight run checks
  the flag on completion and runs once more.
- ``min_interval``: requests arriving within ``min_interval`` seconds of
  the previous launch are skipped.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import TYPE_CHECKING

from ledgerline.observability.profiler import RefetchProfiler

if TYPE_CHECKING:
    from collections.abc import Callable

    from ledgerline._types import FetchFunc
    from ledgerline.observability.collector import SyncCollector
    from ledgerline.sync.events import ChangeEvent


class GuardState(Enum):
    """First-Fetch Guard states."""

    PRIMING = "priming"
    ACTIVE = "active"


class RefetchOrchestrator:
    """Applies the First-Fetch Guard and launches consumer refetches.

    Args:
        fetch: The consumer's async refetch function.
        name: Consumer label used in observability events.
        coalesce: Collapse requests made during an in-flight refetch.
        min_interval: Minimum seconds between launches (0 disables).
        on_error: Receives exceptions raised by ``fetch``.  When omitted,
            exceptions go to the event loop's exception handler.
        collector: Optional collector for refetch events.

    """

    def __init__(
        self,
        fetch: FetchFunc,
        *,
        name: str = "",
        coalesce: bool = False,
        min_interval: float = 0.0,
        on_error: Callable[[BaseException], None] | None = None,
        collector: SyncCollector | None = None,
    ) -> None:
        self._fetch = fetch
        self._name = name
        self._coalesce = coalesce
        self._min_interval = min_interval
        self._on_error = on_error
        self._collector = collector
        self._state = GuardState.PRIMING
        self._cancelled = False
        self._pending = False
        self._running: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._last_launch = 0.0
        self._launched = 0

    @property
    def name(self) -> str:
        """Consumer label."""
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = value

    @property
    def state(self) -> GuardState:
        """Current guard state."""
        return self._state

    @property
    def launched(self) -> int:
        """Number of refetches launched by change events and other triggers."""
        return self._launched

    @property
    def in_flight(self) -> int:
        """Number of refetch tasks not yet finished."""
        return len(self._tasks)

    @property
    def cancelled(self) -> bool:
        """Whether ``cancel`` has run."""
        return self._cancelled

    def handle(self, table: str, event: ChangeEvent) -> asyncio.Task[None] | None:
        """Route target: apply the guard, then request a refetch.

        Matches the ``ChangeHandler`` signature so it can be passed directly
        to ``ChannelManager.open``.

        """
        if self._cancelled:
            self._record_skip(table, "cancelled")
            return None

        if self._state is GuardState.PRIMING:
            self._state = GuardState.ACTIVE
            self._record_skip(table, "first_fetch_guard")
            return None

        return self.request(reason="change", table=table)

    def request(
        self,
        *,
        reason: str = "change",
        table: str = "",
        force: bool = False,
    ) -> asyncio.Task[None] | None:
        """Request a refetch outside the guard (deps change, local event, reconnect).

        ``force`` bypasses the throttle and coalescing but not cancellation.

        Returns:
            The launched task, or None if the request was absorbed.

        """
        if self._cancelled:
            self._record_skip(table, "cancelled")
            return None

        if force:
            return self._launch(reason, table)

        if self._min_interval > 0:
            now = time.monotonic()
            if self._last_launch and now - self._last_launch < self._min_interval:
                self._record_skip(table, "throttled")
                return None

        if self._coalesce and self._running is not None and not self._running.done():
            self._pending = True
            self._record_skip(table, "coalesced")
            return None

        return self._launch(reason, table)

    async def fetch_now(self, *, reason: str = "mount") -> None:
        """Run the fetch inline and let its exception propagate to the caller."""
        if self._collector is not None:
            self._collector.record_refetch(self._name, reason=reason)
        profiler = RefetchProfiler(self._collector, self._name, reason=reason)
        profiler.begin()
        self._last_launch = time.monotonic()
        try:
            await self._fetch()
        except Exception as exc:
            profiler.finish(ok=False)
            if self._collector is not None:
                self._collector.record_refetch_failed(self._name, exc)
            raise
        profiler.finish()

    def cancel(self) -> None:
        """Stop launching refetches.  In-flight refetches run to completion."""
        self._cancelled = True
        self._pending = False

    async def drain(self) -> None:
        """Wait until no refetch task is in flight (used by tests and shutdown)."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    # ----- Internals -----

    def _launch(self, reason: str, table: str) -> asyncio.Task[None]:
        self._last_launch = time.monotonic()
        self._launched += 1
        if self._collector is not None:
            self._collector.record_refetch(self._name, table=table, reason=reason)

        task = asyncio.get_running_loop().create_task(self._run(reason))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        if self._coalesce:
            self._running = task
        return task

    async def _run(self, reason: str) -> None:
        while True:
            self._pending = False
            await self._run_once(reason)
            if not (self._coalesce and self._pending and not self._cancelled):
                return
            reason = "change"
            self._launched += 1
            if self._collector is not None:
                self._collector.record_refetch(self._name, reason=reason)

    async def _run_once(self, reason: str) -> None:
        profiler = RefetchProfiler(self._collector, self._name, reason=reason)
        profiler.begin()
        try:
            await self._fetch()
        except Exception as exc:
            profiler.finish(ok=False)
            self._report(exc)
            return
        profiler.finish()

    def _report(self, exc: Exception) -> None:
        if self._collector is not None:
            self._collector.record_refetch_failed(self._name, exc)
        if self._on_error is not None:
            self._on_error(exc)
            return
        asyncio.get_running_loop().call_exception_handler({
            "message": f"Refetch failed for {self._name or 'consumer'}",
            "exception": exc,
        })

    def _record_skip(self, table: str, reason: str) -> None:
        if self._collector is not None:
            self._collector.record_refetch_skipped(self._name, table=table, reason=reason)
