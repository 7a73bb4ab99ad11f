"""Change source contract — the boundary to the hosted database.

A change source provides a push channel that emits row-level notifications
for rows matching a subscription filter.  Ledgerline never implements the
database; it only consumes this contract.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    from ledgerline._types import Operation

# Lifecycle status reported by a source after the initial acknowledgment
type SourceStatus = Literal["subscribed", "error", "timed_out", "closed"]

# Invoked by the source once per matching row change
type RawCallback = Callable[[dict[str, Any]], None]

# Invoked by the source on lifecycle changes after the initial ack
type StatusCallback = Callable[[SourceStatus, BaseException | None], None]


@dataclass(frozen=True, slots=True)
class SubscriptionFilter:
    """Which row changes a listener wants.

    Attributes:
        table: Table name.
        operation: Row change kind.
        schema: Database schema of the table.

    """

    table: str
    operation: Operation
    schema: str = "public"


class ChangeSource(Protocol):
    """Push channel of a hosted database.

    ``subscribe`` returns once the source acknowledges the channel and raises
    ``SubscribeError`` when the source rejects it or cannot be reached.
    Later faults and re-acknowledgments are reported through ``on_status``.
    """

    async def subscribe(
        self,
        channel_name: str,
        listeners: Sequence[tuple[SubscriptionFilter, RawCallback]],
        on_status: StatusCallback,
    ) -> None: ...

    async def unsubscribe(self, channel_name: str) -> None: ...
