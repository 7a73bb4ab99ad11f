"""Change sources — adapters for the hosted database's push channel."""

from ledgerline.source.base import ChangeSource, SubscriptionFilter
from ledgerline.source.memory import InMemoryChangeSource
from ledgerline.source.supabase import SupabaseChangeSource, create_source

__all__ = [
    "ChangeSource",
    "InMemoryChangeSource",
    "SubscriptionFilter",
    "SupabaseChangeSource",
    "create_source",
]
