"""Status surface — Live / Offline indicator and stats over HTTP."""

from ledgerline.status.broadcaster import StatusBroadcaster, StatusConnection
from ledgerline.status.server import (
    CHANNELS_ENDPOINT,
    STATS_ENDPOINT,
    STATUS_ENDPOINT,
    create_status_app,
)

__all__ = [
    "CHANNELS_ENDPOINT",
    "STATS_ENDPOINT",
    "STATUS_ENDPOINT",
    "StatusBroadcaster",
    "StatusConnection",
    "create_status_app",
]
