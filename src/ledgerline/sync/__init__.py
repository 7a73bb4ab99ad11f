"""Sync layer — change propagation from the database to consumers.

Connects the change source to consumer fetch functions through the channel
manager, change router, and refetch orchestrator.
"""

from ledgerline.sync.bindings import (
    ChangeSync,
    SyncedQuery,
    SyncedQueryMulti,
    use_change_sync,
    use_synced_query,
    use_synced_query_multi,
)
from ledgerline.sync.channel import ChannelHandle, ChannelManager
from ledgerline.sync.events import ChangeEvent, normalize_payload
from ledgerline.sync.local import DATA_CHANGED, LocalEventBus
from ledgerline.sync.orchestrator import GuardState, RefetchOrchestrator
from ledgerline.sync.router import ChangeRouter, SubscriptionDescriptor
from ledgerline.sync.state import ConnectionState

__all__ = [
    "DATA_CHANGED",
    "ChangeEvent",
    "ChangeRouter",
    "ChangeSync",
    "ChannelHandle",
    "ChannelManager",
    "ConnectionState",
    "GuardState",
    "LocalEventBus",
    "RefetchOrchestrator",
    "SubscriptionDescriptor",
    "SyncedQuery",
    "SyncedQueryMulti",
    "normalize_payload",
    "use_change_sync",
    "use_synced_query",
    "use_synced_query_multi",
]
