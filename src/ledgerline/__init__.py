"""Ledgerline — realtime change sync for a bookkeeping app.

Keeps independent consumers (pages, features, devices), each holding its
own query results, consistent with a shared hosted database as rows are
inserted, updated, or deleted by any participant.

Quick start::

    from ledgerline import ChannelManager, use_synced_query
    from ledgerline.source import create_source

    source = await create_source(config)
    manager = ChannelManager(source, config=config)
    query = await use_synced_query(manager, "customers", load_customers)
    query.connected   # Live / Offline indicator
    query.unmount()

Layers, leaf first::

    source        Change source adapters   (supabase, in-memory)
    sync          Channel manager, router, refetch orchestrator, bindings
    observability Event log and refetch timing
    status        Live / Offline SSE and stats endpoints

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0-dev"
__all__ = [
    "ChannelManager",
    "InMemoryChangeSource",
    "LocalEventBus",
    "SyncConfig",
    "__version__",
    "load_config",
    "use_change_sync",
    "use_synced_query",
    "use_synced_query_multi",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import ledgerline`` fast while providing a clean top-level API.
    """
    if name == "SyncConfig":
        from ledgerline.config import SyncConfig

        return SyncConfig

    if name == "load_config":
        from ledgerline.config_loader import load_config

        return load_config

    if name == "ChannelManager":
        from ledgerline.sync.channel import ChannelManager

        return ChannelManager

    if name == "InMemoryChangeSource":
        from ledgerline.source.memory import InMemoryChangeSource

        return InMemoryChangeSource

    if name == "LocalEventBus":
        from ledgerline.sync.local import LocalEventBus

        return LocalEventBus

    if name in ("use_change_sync", "use_synced_query", "use_synced_query_multi"):
        from ledgerline.sync import bindings

        return getattr(bindings, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
