"""Shared type definitions for ledgerline."""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from ledgerline.sync.events import ChangeEvent

# Row-level change kind, lowercase as routed to handlers
type Operation = Literal["insert", "update", "delete"]

# Database table identifier (e.g., "customers", "transactions")
type TableName = str

# Unique name of one logical realtime channel
type ChannelName = str

# Raw row record as delivered by the source
type Row = dict[str, Any]

# Consumer handler: receives the originating table and the normalized event
type ChangeHandler = Callable[[TableName, ChangeEvent], None]

# Consumer refetch function
type FetchFunc = Callable[[], Awaitable[None]]

OPERATIONS: tuple[Operation, ...] = ("insert", "update", "delete")

# Tables of the bookkeeping application
KNOWN_TABLES: frozenset[str] = frozenset({
    "accounts_payable",
    "customers",
    "expense_presets",
    "expenses",
    "payment_reminders",
    "products",
    "suppliers",
    "transactions",
    "user_goals",
})
