"""Tests for ledgerline.sync.channel — channel lifecycle and connection state."""

from __future__ import annotations

import asyncio
import io
import re
import sys
from unittest.mock import patch

import pytest

from ledgerline._errors import ChannelError
from ledgerline.observability.events import ChannelClosed, ChannelOpened, ConnectionChanged
from ledgerline.sync.channel import ChannelManager


class TestChannelNames:
    def test_format(self, manager: ChannelManager) -> None:
        name = manager.channel_name({"expenses", "customers"})
        assert re.fullmatch(r"ledgerline:customers\+expenses:\d+", name)

    def test_unique(self, manager: ChannelManager) -> None:
        names = {manager.channel_name({"customers"}) for _ in range(50)}
        assert len(names) == 50


class TestOpen:
    @pytest.mark.asyncio
    async def test_empty_tables_rejected(self, manager: ChannelManager, recorder) -> None:
        with pytest.raises(ChannelError, match="without tables"):
            await manager.open([], recorder)

    @pytest.mark.asyncio
    async def test_ack_connects(self, manager, source, recorder, collector) -> None:
        handle = await manager.open(["customers"], recorder)
        assert handle.connected
        assert handle.state.label == "Live"
        assert handle.name in source.channel_names
        assert manager.handles == (handle,)
        assert manager.connected_count == 1

        opened = collector.log.query(event_type=ChannelOpened)
        assert opened[0].tables == ("customers",)
        changed = collector.log.query(event_type=ConnectionChanged)
        assert changed[0].connected is True
        assert changed[0].reason == "ack"

    @pytest.mark.asyncio
    async def test_delivers_all_operations(self, manager, source, recorder) -> None:
        await manager.open(["customers"], recorder)
        source.publish("customers", "insert", {"id": 1})
        source.publish("customers", "update", {"id": 1, "name": "B"})
        source.publish("customers", "delete", None, old_row={"id": 1})
        assert [e.operation for _, e in recorder.calls] == ["insert", "update", "delete"]

    @pytest.mark.asyncio
    async def test_multi_table_single_handler(self, manager, source, recorder) -> None:
        await manager.open(["customers", "transactions"], recorder)
        source.publish("customers", "insert", {"id": 1})
        source.publish("transactions", "insert", {"id": 2})
        source.publish("expenses", "insert", {"id": 3})
        assert recorder.tables == ["customers", "transactions"]

    @pytest.mark.asyncio
    async def test_subscribe_error_leaves_disconnected(self, manager, source, recorder, collector) -> None:
        source.reject_next_subscribe()
        handle = await manager.open(["customers"], recorder)
        assert not handle.connected
        assert not handle.closed
        assert handle.state.label == "Offline"

        changed = collector.log.query(event_type=ConnectionChanged)
        assert changed[0].reason == "error"
        assert "network unreachable" in changed[0].detail

        # Nothing is delivered on a channel that never subscribed.
        source.publish("customers", "insert", {"id": 1})
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_ack_timeout_leaves_disconnected(self, manager, source, recorder, collector) -> None:
        source.hold_acks()
        handle = await manager.open(["customers"], recorder)
        assert not handle.connected
        changed = collector.log.query(event_type=ConnectionChanged)
        assert changed[0].reason == "timeout"

    @pytest.mark.asyncio
    async def test_open_cancelled_closes(self, manager, source, recorder) -> None:
        source.hold_acks()
        task = asyncio.ensure_future(manager.open(["customers"], recorder))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert manager.handles == ()


class TestClose:
    @pytest.mark.asyncio
    async def test_close_stops_delivery(self, manager, source, recorder, collector) -> None:
        handle = await manager.open(["customers"], recorder)
        source.publish("customers", "insert", {"id": 1})
        task = manager.close(handle)
        source.publish("customers", "insert", {"id": 2})

        assert len(recorder.calls) == 1
        assert handle.closed
        assert not handle.connected
        assert manager.handles == ()

        assert task is not None
        await task
        assert handle.name not in source.channel_names

        closed = collector.log.query(event_type=ChannelClosed)
        assert closed[0].events_routed == 1

    @pytest.mark.asyncio
    async def test_in_flight_event_dropped(self, manager, source, recorder) -> None:
        handle = await manager.open(["customers"], recorder)
        source.publish_soon("customers", "insert", {"id": 1})
        manager.close(handle)
        await asyncio.sleep(0)
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_close_twice(self, manager, recorder) -> None:
        handle = await manager.open(["customers"], recorder)
        assert manager.close(handle) is not None
        assert manager.close(handle) is None

    @pytest.mark.asyncio
    async def test_close_one_keeps_other(self, manager, source, make_recorder) -> None:
        first, second = make_recorder(), make_recorder()
        h1 = await manager.open(["customers"], first)
        h2 = await manager.open(["customers"], second)
        assert h1.name != h2.name

        source.publish("customers", "update", {"id": 1})
        await manager.aclose(h1)
        source.publish("customers", "update", {"id": 1})

        assert len(first.calls) == 1
        assert len(second.calls) == 2
        assert h2.connected

    @pytest.mark.asyncio
    async def test_close_during_pending_ack(self, manager, source, recorder) -> None:
        task = asyncio.ensure_future(manager.open(["customers"], recorder))
        await asyncio.sleep(0)
        handle = manager.handles[0]
        manager.close(handle)

        await task
        await manager.shutdown()
        assert not handle.connected
        assert source.channel_names == frozenset()
        source.publish("customers", "insert", {"id": 1})
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_shutdown_closes_all(self, manager, source, make_recorder) -> None:
        await manager.open(["customers"], make_recorder())
        await manager.open(["expenses", "products"], make_recorder())
        await manager.shutdown()
        assert manager.handles == ()
        assert source.channel_names == frozenset()

    @pytest.mark.asyncio
    async def test_failing_watcher_does_not_block_close(self, manager, source, recorder, collector) -> None:
        def _explode(name: str, connected: bool) -> None:
            raise RuntimeError("indicator gone")

        manager.watch(_explode)
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            handle = await manager.open(["customers"], recorder)
            assert handle.connected
            await manager.aclose(handle)

        assert handle.closed
        assert manager.handles == ()
        assert source.channel_names == frozenset()
        assert "Channel watcher error" in buf.getvalue()
        assert "indicator gone" in buf.getvalue()
        closed = collector.log.query(event_type=ChannelClosed)
        assert [e.channel for e in closed] == [handle.name]

    def test_close_without_loop(self, manager, recorder) -> None:
        from ledgerline.sync.channel import ChannelHandle
        from ledgerline.sync.router import ChangeRouter, SubscriptionDescriptor
        from ledgerline.sync.state import ConnectionState

        descriptor = SubscriptionDescriptor("c", frozenset({"customers"}), recorder)
        handle = ChannelHandle(descriptor, ChangeRouter(descriptor), ConnectionState("c"))
        assert manager.close(handle) is None
        assert handle.closed


class TestReopen:
    @pytest.mark.asyncio
    async def test_reopen_after_failed_subscribe(self, manager, source, recorder) -> None:
        source.reject_next_subscribe()
        handle = await manager.open(["customers"], recorder)
        assert not handle.connected

        fresh = await manager.reopen(handle)
        assert fresh.connected
        assert fresh.name != handle.name
        assert handle.closed
        assert fresh.tables == handle.tables

        source.publish("customers", "insert", {"id": 1})
        assert len(recorder.calls) == 1


class TestConnectionFaults:
    @pytest.mark.asyncio
    async def test_fault_then_reack(self, manager, source, recorder, collector) -> None:
        handle = await manager.open(["customers"], recorder)
        source.disconnect(ConnectionError("socket reset"))
        assert not handle.connected

        # Events during the outage are lost, not replayed.
        source.publish("customers", "insert", {"id": 1})
        source.reconnect()
        assert handle.connected
        assert recorder.calls == []

        reasons = [e.reason for e in reversed(collector.log.query(event_type=ConnectionChanged))]
        assert reasons == ["ack", "fault", "ack"]

    @pytest.mark.asyncio
    async def test_clean_close_from_source(self, manager, source, recorder, collector) -> None:
        handle = await manager.open(["customers"], recorder)
        source.disconnect()
        assert not handle.connected
        last = collector.log.query(event_type=ConnectionChanged, limit=1)[0]
        assert last.reason == "closed"

    @pytest.mark.asyncio
    async def test_manager_watch(self, manager, source, recorder) -> None:
        seen: list[tuple[str, bool]] = []
        unwatch = manager.watch(lambda name, connected: seen.append((name, connected)))
        handle = await manager.open(["customers"], recorder)
        source.disconnect()
        source.reconnect()
        unwatch()
        manager.close(handle)
        assert seen == [(handle.name, True), (handle.name, False), (handle.name, True)]

    @pytest.mark.asyncio
    async def test_status_after_close_ignored(self, manager, source, recorder) -> None:
        handle = await manager.open(["customers"], recorder)
        manager.close(handle)
        source.reconnect()
        assert not handle.connected
