"""Consumer bindings — what a page or feature holds while it is mounted.

``ChangeSync`` attaches a handler to a channel.  ``SyncedQueryMulti`` and
``SyncedQuery`` add a fetch function: it runs once at mount, and every
qualifying change after the first routed event runs it again.

Bindings are mounted with ``await binding.mount()`` (or ``async with``) and
unmounted synchronously with ``binding.unmount()``.  After ``unmount``
returns no handler and no refetch can start.

Usage::

    async def load_customers() -> None:
        rows = await db.table("customers").select("*").execute()
        view.render(rows.data)

    query = await use_synced_query(manager, "customers", load_customers)
    print("Live" if query.connected else "Offline")
    ...
    query.unmount()
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Self

from ledgerline._errors import ChannelError
from ledgerline.sync.local import DATA_CHANGED
from ledgerline.sync.orchestrator import GuardState, RefetchOrchestrator

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ledgerline._types import ChangeHandler, FetchFunc
    from ledgerline.sync.channel import ChannelHandle, ChannelManager
    from ledgerline.sync.local import LocalEventBus


class ChangeSync:
    """A consumer's handler bound to one channel.

    Args:
        manager: Channel manager to open the channel on.
        tables: Tables to watch.
        on_change: Called with ``(table, event)`` for every routed change.

    """

    def __init__(
        self,
        manager: ChannelManager,
        tables: Iterable[str],
        on_change: ChangeHandler,
    ) -> None:
        self._manager = manager
        self._tables = frozenset(tables)
        self._on_change = on_change
        self._handle: ChannelHandle | None = None
        # Bumped by every unmount; an open that resumes under a newer
        # generation was unmounted while it waited for the ack.
        self._generation = 0

    @property
    def tables(self) -> frozenset[str]:
        """Tables watched by this binding."""
        return self._tables

    @property
    def handle(self) -> ChannelHandle | None:
        """The open channel, or None before mount and after unmount."""
        return self._handle

    @property
    def mounted(self) -> bool:
        """Whether the binding currently holds a channel."""
        return self._handle is not None

    @property
    def connected(self) -> bool:
        """Live / Offline indicator value.  Display only."""
        return self._handle is not None and self._handle.connected

    async def mount(self) -> Self:
        """Open the channel.

        If ``unmount`` runs while the open is waiting for the ack, the new
        channel is closed as soon as it is returned and the binding stays
        unmounted.

        Raises:
            ChannelError: If already mounted or no tables were given.

        """
        if self._handle is not None:
            msg = f"Binding for {sorted(self._tables)} is already mounted"
            raise ChannelError(msg)
        generation = self._generation
        handle = await self._manager.open(self._tables, self._on_change)
        self._adopt(handle, generation)
        return self

    def unmount(self) -> asyncio.Task[None] | None:
        """Close the channel.  Safe to call more than once.

        Returns:
            The source teardown task, if one was scheduled.

        """
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is None:
            return None
        return self._manager.close(handle)

    async def reopen(self) -> Self:
        """Replace the channel with a fresh one, e.g. after a failed subscribe.

        Listeners registered with ``watch`` stay on the old channel's state.
        """
        if self._handle is None:
            return await self.mount()
        generation = self._generation
        handle = await self._manager.reopen(self._handle)
        self._adopt(handle, generation)
        return self

    def _adopt(self, handle: ChannelHandle, generation: int) -> None:
        if generation != self._generation:
            self._manager.close(handle)
            return
        self._handle = handle

    def watch(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Observe Live / Offline flips of the current channel.

        Raises:
            ChannelError: If not mounted.

        """
        if self._handle is None:
            msg = "Cannot watch connection state before mount"
            raise ChannelError(msg)
        return self._handle.state.watch(callback)

    async def __aenter__(self) -> Self:
        return await self.mount()

    async def __aexit__(self, *exc_info: object) -> None:
        self.unmount()


class SyncedQueryMulti(ChangeSync):
    """A fetch function kept fresh by changes on several tables.

    The fetch runs at mount, then once per routed change after the first
    (which the First-Fetch Guard absorbs).

    Args:
        manager: Channel manager to open the channel on.
        tables: Tables whose changes invalidate the fetched data.
        fetch: Async function that re-queries and stores the working set.
        deps: Values the fetch depends on; see ``set_deps``.
        on_error: Receives exceptions raised by ``fetch``.  When omitted,
            a failing mount-time fetch raises from ``mount`` and failing
            refetches go to the loop's exception handler.
        local_events: Bus whose ``DATA_CHANGED`` notifications also refetch.
        coalesce: Override ``SyncConfig.coalesce_refetch``.
        min_interval: Override ``SyncConfig.min_refetch_interval``.
        reconcile_on_reconnect: Override ``SyncConfig.reconcile_on_reconnect``.

    """

    def __init__(
        self,
        manager: ChannelManager,
        tables: Iterable[str],
        fetch: FetchFunc,
        deps: Iterable[Any] = (),
        *,
        on_error: Callable[[BaseException], None] | None = None,
        local_events: LocalEventBus | None = None,
        coalesce: bool | None = None,
        min_interval: float | None = None,
        reconcile_on_reconnect: bool | None = None,
    ) -> None:
        config = manager.config
        table_set = frozenset(tables)
        self._orchestrator = RefetchOrchestrator(
            fetch,
            name="+".join(sorted(table_set)),
            coalesce=config.coalesce_refetch if coalesce is None else coalesce,
            min_interval=config.min_refetch_interval if min_interval is None else min_interval,
            on_error=on_error,
            collector=manager.collector,
        )
        super().__init__(manager, table_set, self._orchestrator.handle)
        self._deps = tuple(deps)
        self._on_error = on_error
        self._local_events = local_events
        self._reconcile = (
            config.reconcile_on_reconnect if reconcile_on_reconnect is None
            else reconcile_on_reconnect
        )
        self._cleanups: list[Callable[[], None]] = []

    @property
    def orchestrator(self) -> RefetchOrchestrator:
        """The orchestrator owning this consumer's guard."""
        return self._orchestrator

    @property
    def guard(self) -> GuardState:
        """Current First-Fetch Guard state."""
        return self._orchestrator.state

    @property
    def deps(self) -> tuple[Any, ...]:
        """Current dependency values."""
        return self._deps

    async def mount(self) -> Self:
        """Start the mount-time fetch, open the channel, and await both.

        An ``unmount`` that lands while either is pending wins: the channel
        is closed, the fetch is cancelled, and no listeners are attached.

        Raises:
            ChannelError: If the binding was already unmounted once.

        """
        if self._orchestrator.cancelled:
            msg = f"Binding for {sorted(self._tables)} was unmounted; create a new one"
            raise ChannelError(msg)
        initial = asyncio.get_running_loop().create_task(
            self._orchestrator.fetch_now(reason="mount")
        )
        try:
            await super().mount()
        except BaseException:
            initial.cancel()
            raise

        if self._handle is None:
            initial.cancel()
            await asyncio.gather(initial, return_exceptions=True)
            return self
        self._orchestrator.name = self._handle.name

        try:
            await initial
        except Exception as exc:
            if self._on_error is None:
                self.unmount()
                raise
            self._on_error(exc)

        if self._handle is not None:
            self._attach_extras()
        return self

    def unmount(self) -> asyncio.Task[None] | None:
        """Close the channel and stop all further refetches."""
        task = super().unmount()
        self._orchestrator.cancel()
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups.clear()
        return task

    async def reopen(self) -> Self:
        """Replace the channel; the guard keeps its state."""
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups.clear()
        await super().reopen()
        if self._handle is not None:
            self._orchestrator.name = self._handle.name
            self._attach_extras()
        return self

    def set_deps(self, *deps: Any) -> asyncio.Task[None] | None:
        """Re-run the fetch when the dependency values change.

        Returns:
            The refetch task, or None if the values are unchanged.

        """
        if deps == self._deps:
            return None
        self._deps = deps
        if not self.mounted:
            return None
        return self._orchestrator.request(reason="deps", force=True)

    def refetch(self) -> asyncio.Task[None] | None:
        """Request a refetch now, bypassing the guard."""
        return self._orchestrator.request(reason="change")

    async def settle(self) -> None:
        """Wait for in-flight refetches to finish."""
        await self._orchestrator.drain()

    def _attach_extras(self) -> None:
        if self._local_events is not None:
            self._cleanups.append(
                self._local_events.on(
                    DATA_CHANGED,
                    lambda: self._orchestrator.request(reason="local"),
                )
            )
        if self._reconcile and self._handle is not None:
            self._cleanups.append(self._handle.state.watch(self._on_connection))

    def _on_connection(self, connected: bool) -> None:
        if connected:
            self._orchestrator.request(reason="reconcile", force=True)


class SyncedQuery(SyncedQueryMulti):
    """A fetch function kept fresh by changes on a single table."""

    def __init__(
        self,
        manager: ChannelManager,
        table: str,
        fetch: FetchFunc,
        deps: Iterable[Any] = (),
        **options: Any,
    ) -> None:
        super().__init__(manager, (table,), fetch, deps, **options)
        self._table = table

    @property
    def table(self) -> str:
        """The watched table."""
        return self._table


async def use_change_sync(
    manager: ChannelManager,
    tables: Iterable[str],
    on_change: ChangeHandler,
) -> ChangeSync:
    """Mount a handler on a channel covering *tables*."""
    return await ChangeSync(manager, tables, on_change).mount()


async def use_synced_query(
    manager: ChannelManager,
    table: str,
    fetch: FetchFunc,
    deps: Iterable[Any] = (),
    **options: Any,
) -> SyncedQuery:
    """Mount a fetch kept fresh by changes on *table*."""
    return await SyncedQuery(manager, table, fetch, deps, **options).mount()


async def use_synced_query_multi(
    manager: ChannelManager,
    tables: Iterable[str],
    fetch: FetchFunc,
    deps: Iterable[Any] = (),
    **options: Any,
) -> SyncedQueryMulti:
    """Mount a fetch kept fresh by changes on any of *tables*."""
    return await SyncedQueryMulti(manager, tables, fetch, deps, **options).mount()
