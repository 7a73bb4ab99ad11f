"""Status server — exposes connection health and refetch stats over HTTP.

Registers three Chirp routes:

- ``/__ledgerline/status``: SSE stream of ``ledgerline:status`` events,
  starting with the current state of every open channel
- ``/__ledgerline/channels``: JSON list of open channels
- ``/__ledgerline/stats``: JSON refetch latency aggregates and event log summary
"""

from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from chirp import App, Request

    from ledgerline.config import SyncConfig
    from ledgerline.observability.collector import SyncCollector
    from ledgerline.status.broadcaster import StatusBroadcaster
    from ledgerline.sync.channel import ChannelHandle

STATUS_ENDPOINT = "/__ledgerline/status"
CHANNELS_ENDPOINT = "/__ledgerline/channels"
STATS_ENDPOINT = "/__ledgerline/stats"

type HandleSource = Callable[[], Iterable[ChannelHandle]]


def _json_response(payload: object) -> Any:
    from chirp.http.response import Response

    return Response(
        body=json.dumps(payload, indent=2),
        status=200,
        content_type="application/json",
    )


def register_status_endpoint(
    app: App,
    broadcaster: StatusBroadcaster,
    handles: HandleSource,
) -> None:
    """Register the ``/__ledgerline/status`` SSE endpoint.

    Each client first receives one event per open channel, then every flip
    reported by the channel manager.

    """
    from chirp import EventStream

    from ledgerline.status.broadcaster import StatusConnection

    async def status_handler(request: Request) -> Any:
        conn = StatusConnection(client_id=str(uuid.uuid4()))
        broadcaster.subscribe(conn)
        broadcaster.push_snapshot(conn, handles())

        async def generate():  # type: ignore[return]
            try:
                async for event in broadcaster.client_generator(conn):
                    yield event
            finally:
                broadcaster.unsubscribe(conn)

        return EventStream(generate())

    status_handler.__name__ = "ledgerline_status"
    status_handler.__qualname__ = "ledgerline_status"

    app.route(STATUS_ENDPOINT, name="ledgerline:status")(status_handler)


def register_channels_endpoint(app: App, handles: HandleSource) -> None:
    """Register the ``/__ledgerline/channels`` JSON endpoint."""

    async def channels_handler(request: Request) -> Any:
        return _json_response([
            {
                "channel": h.name,
                "tables": sorted(h.tables),
                "connected": h.connected,
                "events_routed": h.router.routed,
            }
            for h in handles()
        ])

    channels_handler.__name__ = "ledgerline_channels"
    channels_handler.__qualname__ = "ledgerline_channels"

    app.route(CHANNELS_ENDPOINT, name="ledgerline:channels")(channels_handler)


def register_stats_endpoint(app: App, collector: SyncCollector) -> None:
    """Register the ``/__ledgerline/stats`` JSON endpoint."""

    async def stats_handler(request: Request) -> Any:
        from ledgerline.observability.profiler import compute_refetch_stats

        return _json_response({
            "refetch": compute_refetch_stats(collector.log),
            "event_log": collector.log.stats(),
        })

    stats_handler.__name__ = "ledgerline_stats"
    stats_handler.__qualname__ = "ledgerline_stats"

    app.route(STATS_ENDPOINT, name="ledgerline:stats")(stats_handler)


def create_status_app(
    config: SyncConfig,
    broadcaster: StatusBroadcaster,
    collector: SyncCollector,
    handles: HandleSource,
    *,
    debug: bool = False,
) -> App:
    """Create a Chirp App with all status endpoints registered."""
    from chirp import App, AppConfig

    app = App(config=AppConfig(debug=debug, host=config.host, port=config.port))
    register_status_endpoint(app, broadcaster, handles)
    register_channels_endpoint(app, handles)
    register_stats_endpoint(app, collector)
    return app
