"""Local event bus — in-app notifications for writes made by this process.

Realtime notifications cover writes from every participant, but a page that
just saved a sale wants its sibling views to refresh immediately, without a
round trip through the database's push channel.  Writers call
``notify_data_changed`` and bindings subscribed to the bus refetch.
"""

from __future__ import annotations

import sys
import threading
from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

SALE_ADDED = "sale_added"
EXPENSE_ADDED = "expense_added"
PAYMENT_COLLECTED = "payment_collected"
PAYMENT_REMINDER_UPDATED = "payment_reminder_updated"
PAYABLE_PAID = "payable_paid"
ACCOUNTS_PAYABLE_UPDATED = "accounts_payable_updated"
DATA_CHANGED = "data_changed"


class LocalEventBus:
    """Named-event emitter with unsubscribe handles.

    A callback that raises is reported to stderr; the remaining callbacks
    still run.

    Thread-safe: the listener map is protected by a lock.

    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def on(self, event: str, callback: Callable[[], None]) -> Callable[[], None]:
        """Subscribe *callback* to *event*.

        Returns:
            A function that removes the subscription.

        """
        with self._lock:
            self._listeners[event].append(callback)

        def _off() -> None:
            with self._lock:
                callbacks = self._listeners.get(event)
                if callbacks and callback in callbacks:
                    callbacks.remove(callback)
                    if not callbacks:
                        del self._listeners[event]

        return _off

    def emit(self, event: str) -> int:
        """Call every callback subscribed to *event*.

        Returns:
            Number of callbacks that ran without raising.

        """
        with self._lock:
            callbacks = tuple(self._listeners.get(event, ()))

        count = 0
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                print(f"  Local event callback error ({event}): {exc}", file=sys.stderr)
                continue
            count += 1
        return count

    def listener_count(self, event: str) -> int:
        """Number of callbacks subscribed to *event*."""
        with self._lock:
            return len(self._listeners.get(event, ()))

    def notify_data_changed(self) -> int:
        """Emit the generic ``DATA_CHANGED`` event."""
        return self.emit(DATA_CHANGED)
