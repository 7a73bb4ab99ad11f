"""Ledgerline runtime — wires config, source, channels, and the status server.

The two public functions (tail, serve) are the primary entry points used by
the CLI.  Both open one channel over the requested tables on the hosted
database and report every routed change and Live / Offline flip to stderr.
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

from ledgerline._types import KNOWN_TABLES
from ledgerline.config_loader import load_config

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ledgerline.config import SyncConfig
    from ledgerline.observability.collector import SyncCollector
    from ledgerline.sync.channel import ChannelHandle, ChannelManager
    from ledgerline.sync.events import ChangeEvent


def _print_change(table: str, event: ChangeEvent) -> None:
    """Print one routed change to stdout."""
    row_id = event.row.get("id", "?")
    stamp = event.commit_timestamp or "-"
    print(f"{stamp}  {table:<20} {event.operation:<6} id={row_id}", flush=True)


def _print_state(channel: str, connected: bool) -> None:
    """Print a Live / Offline flip to stderr."""
    label = "Live" if connected else "Offline"
    print(f"  [{label}] {channel}", file=sys.stderr)


def _table_warnings(tables: Iterable[str]) -> list[str]:
    """Warn about tables the bookkeeping schema does not define."""
    return [
        f"unknown table {t!r} (subscribing anyway)"
        for t in sorted(set(tables) - KNOWN_TABLES)
    ]


class SyncRuntime:
    """Owns the source, channel manager, and watch channel of one process.

    Created before the event loop runs; ``start`` and ``stop`` are called
    from inside it.

    Args:
        config: Resolved SyncConfig.
        tables: Tables to open the watch channel on.
        collector: Collector shared with the status server.

    """

    def __init__(
        self,
        config: SyncConfig,
        tables: Iterable[str],
        collector: SyncCollector,
    ) -> None:
        self._config = config
        self._tables = tuple(tables)
        self._collector = collector
        self._manager: ChannelManager | None = None
        self._handle: ChannelHandle | None = None

    @property
    def manager(self) -> ChannelManager | None:
        """The channel manager, once started."""
        return self._manager

    def handles(self) -> tuple[ChannelHandle, ...]:
        """Open channels (empty before start)."""
        if self._manager is None:
            return ()
        return self._manager.handles

    async def start(self) -> ChannelHandle:
        """Create the supabase source and open the watch channel."""
        from ledgerline.source.supabase import create_source
        from ledgerline.sync.channel import ChannelManager

        source = await create_source(self._config)
        self._manager = ChannelManager(source, config=self._config, collector=self._collector)
        self._manager.watch(_print_state)
        self._handle = await self._manager.open(self._tables, _print_change)
        if not self._handle.connected:
            print(
                f"  Subscribe failed for {self._handle.name}; live updates are off",
                file=sys.stderr,
            )
        return self._handle

    async def stop(self) -> None:
        """Close every channel."""
        if self._manager is not None:
            await self._manager.shutdown()


def _create_collector(config: SyncConfig) -> SyncCollector:
    from ledgerline.observability import EventLog, SyncCollector

    return SyncCollector(EventLog(max_events=config.max_events))


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def tail(tables: Iterable[str], root: str | Path = ".", **kwargs: object) -> None:
    """Print every change on *tables* until interrupted.

    Args:
        tables: Tables to watch.
        root: Directory holding ``ledgerline.yaml``.
        **kwargs: Override SyncConfig fields.

    """
    from ledgerline.banner import print_banner

    config = load_config(Path(root), **kwargs)
    tables = tuple(tables)
    collector = _create_collector(config)
    runtime = SyncRuntime(config, tables, collector)

    async def _run() -> None:
        t0 = time.perf_counter()
        handle = await runtime.start()
        print_banner(
            config, tables, mode="tail",
            connected=handle.connected,
            load_ms=(time.perf_counter() - t0) * 1000,
            warnings=_table_warnings(tables),
        )
        try:
            await asyncio.Event().wait()
        finally:
            await runtime.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


def serve(tables: Iterable[str], root: str | Path = ".", **kwargs: object) -> None:
    """Run the status server for a channel on *tables*.

    The channel opens when the server starts and closes on shutdown.

    Args:
        tables: Tables to watch.
        root: Directory holding ``ledgerline.yaml``.
        **kwargs: Override SyncConfig fields.

    """
    from ledgerline.banner import print_banner
    from ledgerline.status.broadcaster import StatusBroadcaster
    from ledgerline.status.server import create_status_app

    config = load_config(Path(root), **kwargs)
    tables = tuple(tables)
    collector = _create_collector(config)
    runtime = SyncRuntime(config, tables, collector)
    broadcaster = StatusBroadcaster()

    app = create_status_app(config, broadcaster, collector, runtime.handles)

    @app.on_startup
    async def _start_runtime() -> None:
        await runtime.start()
        assert runtime.manager is not None
        broadcaster.attach(runtime.manager)

    @app.on_shutdown
    async def _stop_runtime() -> None:
        await runtime.stop()

    print_banner(config, tables, mode="serve", warnings=_table_warnings(tables))

    # Collector doubles as Pounce's lifecycle collector so connection
    # events land in the same EventLog as sync events.
    app.run(host=config.host, port=config.port, lifecycle_collector=collector)
