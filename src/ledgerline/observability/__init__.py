"""Sync observability — unified event model for the realtime layer.

Aggregates events from:
- **Channel manager**: open, close, connection flips
- **Router**: every change handed to a consumer
- **Orchestrator**: refetches launched, skipped, failed, and their timing

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from multiple threads.

Quick Start:
    >>> from ledgerline.observability import SyncCollector, EventLog
    >>> log = EventLog()
    >>> collector = SyncCollector(log)
    >>> # Pass collector to ChannelManager(source, collector=collector)

"""

from ledgerline.observability.collector import SyncCollector
from ledgerline.observability.events import (
    ChangeRouted,
    ChannelClosed,
    ChannelOpened,
    ConnectionChanged,
    RefetchFailed,
    RefetchProfile,
    RefetchSkipped,
    RefetchTriggered,
    SyncEvent,
    now_ns,
)
from ledgerline.observability.log import EventLog
from ledgerline.observability.profiler import RefetchProfiler, compute_refetch_stats

__all__ = [
    "ChangeRouted",
    "ChannelClosed",
    "ChannelOpened",
    "ConnectionChanged",
    "EventLog",
    "RefetchFailed",
    "RefetchProfile",
    "RefetchProfiler",
    "RefetchSkipped",
    "RefetchTriggered",
    "SyncCollector",
    "SyncEvent",
    "compute_refetch_stats",
    "now_ns",
]
