"""Connection state — the observational Live / Offline flag.

One ``ConnectionState`` exists per open channel.  It is flipped only by the
channel manager's lifecycle callbacks and read by consumers for display.
Nothing in the refetch path consults it.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class ConnectionState:
    """Two-valued connection flag with change listeners.

    Args:
        channel: Name of the channel this state belongs to.

    """

    __slots__ = ("_channel", "_connected", "_listeners", "_was_connected")

    def __init__(self, channel: str) -> None:
        self._channel = channel
        self._connected = False
        self._was_connected = False
        self._listeners: list[Callable[[bool], None]] = []

    @property
    def channel(self) -> str:
        """Name of the owning channel."""
        return self._channel

    @property
    def connected(self) -> bool:
        """True while the source has acknowledged the channel."""
        return self._connected

    @property
    def label(self) -> str:
        """Indicator text for display."""
        return "Live" if self._connected else "Offline"

    @property
    def has_connected(self) -> bool:
        """Whether the channel was acknowledged at least once."""
        return self._was_connected

    def watch(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Call *callback* with the new value on every flip.

        Returns:
            A function that removes the listener.

        """
        self._listeners.append(callback)

        def _unwatch() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unwatch

    def _set(self, connected: bool) -> bool:
        """Flip the flag; return True if the value changed."""
        if connected == self._connected:
            return False
        self._connected = connected
        if connected:
            self._was_connected = True
        for callback in tuple(self._listeners):
            try:
                callback(connected)
            except Exception as exc:
                print(f"  Connection listener error ({self._channel}): {exc}", file=sys.stderr)
        return True

    def __bool__(self) -> bool:
        return self._connected

    def __repr__(self) -> str:
        return f"ConnectionState({self._channel!r}, connected={self._connected})"
