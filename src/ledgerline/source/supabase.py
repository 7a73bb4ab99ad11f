"""Supabase realtime change source.

Adapts the ``supabase`` client's realtime channels to the ``ChangeSource``
contract: one realtime channel per ledgerline channel, one
``postgres_changes`` listener per (table, operation) filter.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Any

from ledgerline._errors import ConfigError, SourceError, SubscribeError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ledgerline.config import SyncConfig
    from ledgerline.source.base import (
        RawCallback,
        SourceStatus,
        StatusCallback,
        SubscriptionFilter,
    )


# realtime's RealtimeSubscribeStates values -> source status
_STATUS_MAP: dict[str, SourceStatus] = {
    "SUBSCRIBED": "subscribed",
    "CHANNEL_ERROR": "error",
    "TIMED_OUT": "timed_out",
    "CLOSED": "closed",
}


def _status_of(state: Any) -> SourceStatus:
    raw = getattr(state, "value", state)
    return _STATUS_MAP.get(str(raw).upper(), "error")


class SupabaseChangeSource:
    """Change source backed by an async supabase client.

    Args:
        client: An ``AsyncClient`` from ``supabase.acreate_client``.  Any
            object exposing ``channel(name)`` and ``remove_channel(channel)``
            with the realtime channel API is accepted.

    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self._channels: dict[str, Any] = {}

    @property
    def channel_names(self) -> frozenset[str]:
        """Names of channels currently attached to the client."""
        return frozenset(self._channels)

    async def subscribe(
        self,
        channel_name: str,
        listeners: Sequence[tuple[SubscriptionFilter, RawCallback]],
        on_status: StatusCallback,
    ) -> None:
        """Create the realtime channel, attach listeners, and await the ack."""
        channel = self._client.channel(channel_name)
        for flt, callback in listeners:
            channel.on_postgres_changes(
                event=flt.operation.upper(),
                schema=flt.schema,
                table=flt.table,
                callback=callback,
            )

        acked: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _on_subscribe(state: Any, error: Exception | None = None) -> None:
            status = _status_of(state)
            if not acked.done():
                if status == "subscribed":
                    acked.set_result(None)
                else:
                    msg = f"Subscribe failed for {channel_name}: {status}"
                    exc = SubscribeError(msg)
                    exc.__cause__ = error
                    acked.set_exception(exc)
                return
            on_status(status, error)

        self._channels[channel_name] = channel
        try:
            await channel.subscribe(_on_subscribe)
            await acked
        except SubscribeError:
            await self._detach(channel_name)
            raise
        except OSError as exc:
            await self._detach(channel_name)
            msg = f"Subscribe failed for {channel_name}: {exc}"
            raise SubscribeError(msg) from exc
        except asyncio.CancelledError:
            try:
                await self._detach(channel_name)
            except SourceError as exc:
                print(f"  Channel teardown error: {exc}", file=sys.stderr)
            raise

    async def unsubscribe(self, channel_name: str) -> None:
        """Remove the realtime channel from the client.

        Raises:
            SourceError: If the client fails to remove the channel.

        """
        await self._detach(channel_name)

    async def _detach(self, channel_name: str) -> None:
        channel = self._channels.pop(channel_name, None)
        if channel is None:
            return
        try:
            await self._client.remove_channel(channel)
        except Exception as exc:
            msg = f"Failed to remove channel {channel_name}: {exc}"
            raise SourceError(msg) from exc


async def create_source(config: SyncConfig) -> SupabaseChangeSource:
    """Create an async supabase client from config and wrap it.

    Raises:
        ConfigError: If the project URL or API key is missing.

    """
    if not config.has_credentials:
        msg = (
            "Supabase credentials missing. Set supabase_url and supabase_key "
            "in ledgerline.yaml or SUPABASE_URL / SUPABASE_KEY in the environment."
        )
        raise ConfigError(msg)

    from supabase import acreate_client

    client = await acreate_client(config.supabase_url, config.supabase_key)
    return SupabaseChangeSource(client)
