"""Tests for ledgerline.sync.bindings — consumer mount/unmount behaviour."""

from __future__ import annotations

import asyncio

import pytest

from ledgerline._errors import ChannelError
from ledgerline.observability.events import RefetchTriggered
from ledgerline.sync.bindings import (
    ChangeSync,
    SyncedQuery,
    SyncedQueryMulti,
    use_change_sync,
    use_synced_query,
    use_synced_query_multi,
)
from ledgerline.sync.local import DATA_CHANGED, LocalEventBus
from ledgerline.sync.orchestrator import GuardState


class TestChangeSync:
    @pytest.mark.asyncio
    async def test_mount_and_receive(self, manager, source, recorder) -> None:
        sync = await use_change_sync(manager, ["customers", "expenses"], recorder)
        assert sync.mounted
        assert sync.connected
        source.publish("expenses", "insert", {"id": 1})
        assert recorder.tables == ["expenses"]

    @pytest.mark.asyncio
    async def test_unmount_stops_handler(self, manager, source, recorder) -> None:
        sync = await use_change_sync(manager, ["customers"], recorder)
        sync.unmount()
        source.publish("customers", "insert", {"id": 1})
        assert recorder.calls == []
        assert not sync.mounted
        assert not sync.connected
        assert sync.unmount() is None

    @pytest.mark.asyncio
    async def test_double_mount_rejected(self, manager, recorder) -> None:
        sync = await use_change_sync(manager, ["customers"], recorder)
        with pytest.raises(ChannelError, match="already mounted"):
            await sync.mount()

    @pytest.mark.asyncio
    async def test_context_manager(self, manager, source, recorder) -> None:
        async with ChangeSync(manager, ["customers"], recorder) as sync:
            assert sync.connected
            source.publish("customers", "update", {"id": 1})
        source.publish("customers", "update", {"id": 1})
        assert len(recorder.calls) == 1

    @pytest.mark.asyncio
    async def test_watch(self, manager, source, recorder) -> None:
        sync = await use_change_sync(manager, ["customers"], recorder)
        seen: list[bool] = []
        sync.watch(seen.append)
        source.disconnect()
        source.reconnect()
        assert seen == [False, True]

    def test_watch_before_mount(self, manager, recorder) -> None:
        with pytest.raises(ChannelError):
            ChangeSync(manager, ["customers"], recorder).watch(lambda _: None)

    @pytest.mark.asyncio
    async def test_reopen_after_failure(self, manager, source, recorder) -> None:
        source.reject_next_subscribe()
        sync = await use_change_sync(manager, ["customers"], recorder)
        assert not sync.connected
        await sync.reopen()
        assert sync.connected
        source.publish("customers", "insert", {"id": 1})
        assert len(recorder.calls) == 1

    @pytest.mark.asyncio
    async def test_unmount_during_pending_mount(self, manager, source, recorder) -> None:
        sync = ChangeSync(manager, ["customers"], recorder)
        task = asyncio.ensure_future(sync.mount())
        await asyncio.sleep(0)
        sync.unmount()
        await task
        source.publish("customers", "insert", {"id": 1})
        assert recorder.calls == []
        assert not sync.mounted
        assert manager.handles == ()
        await manager.shutdown()
        assert source.channel_names == frozenset()


class TestSyncedQueryScenarios:
    """End-to-end behaviour of a fetch kept fresh by changes."""

    @pytest.mark.asyncio
    async def test_mount_then_single_insert(self, manager, source, make_fetch) -> None:
        fetch = make_fetch(rows=[{"id": i} for i in range(5)])
        query = await use_synced_query(manager, "orders", fetch)

        assert fetch.calls == 1
        assert len(fetch.result) == 5
        assert query.guard is GuardState.PRIMING
        assert query.connected

        source.publish("orders", "insert", {"id": 6})
        await query.settle()

        assert fetch.calls == 1
        assert query.guard is GuardState.ACTIVE
        assert query.connected

    @pytest.mark.parametrize("n", [1, 3, 10])
    @pytest.mark.asyncio
    async def test_n_events_after_mount(self, manager, source, fetch, n: int) -> None:
        query = await use_synced_query(manager, "customers", fetch)
        for i in range(n):
            source.publish("customers", "update", {"id": i})
        await query.settle()
        # One mount fetch, then N-1 refetches.
        assert fetch.calls == 1 + (n - 1)

    @pytest.mark.asyncio
    async def test_subscribe_failure_no_sync_refetch(self, manager, source, fetch) -> None:
        source.reject_next_subscribe()
        query = await use_synced_query(manager, "customers", fetch)
        assert not query.connected
        assert fetch.calls == 1

        source.publish("customers", "insert", {"id": 1})
        source.publish("customers", "insert", {"id": 2})
        await query.settle()
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_two_consumers_same_table(self, manager, source, make_fetch) -> None:
        fa, fb = make_fetch(), make_fetch()
        a = await use_synced_query(manager, "customers", fa)
        b = await use_synced_query(manager, "customers", fb)
        assert a.handle is not None and b.handle is not None
        assert a.handle.name != b.handle.name

        # Prime both guards, then one real update.
        source.publish("customers", "update", {"id": 1})
        source.publish("customers", "update", {"id": 1})
        await a.settle()
        await b.settle()
        assert fa.calls == 2
        assert fb.calls == 2

        a.unmount()
        source.publish("customers", "update", {"id": 1})
        await b.settle()
        assert fa.calls == 2
        assert fb.calls == 3
        assert b.connected

    @pytest.mark.asyncio
    async def test_no_refetch_after_unmount(self, manager, source, fetch) -> None:
        query = await use_synced_query(manager, "customers", fetch)
        source.publish("customers", "insert", {"id": 1})
        source.publish_soon("customers", "insert", {"id": 2})
        query.unmount()
        await asyncio.sleep(0)
        await query.settle()
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_duplicate_delivery_idempotent(self, manager, source, make_fetch) -> None:
        fetch = make_fetch(rows=[{"id": 1, "name": "Ama"}])
        query = await use_synced_query(manager, "customers", fetch)
        source.publish("customers", "insert", {"id": 1})
        source.publish("customers", "update", {"id": 1})
        await query.settle()
        once = list(fetch.result)
        source.publish("customers", "update", {"id": 1})
        await query.settle()
        assert fetch.result == once
        assert fetch.calls == 3

    @pytest.mark.asyncio
    async def test_multi_table_one_fetch(self, manager, source, fetch) -> None:
        query = await use_synced_query_multi(
            manager, ["customers", "transactions", "payment_reminders"], fetch,
        )
        source.publish("customers", "insert", {"id": 1})
        source.publish("transactions", "insert", {"id": 2})
        source.publish("payment_reminders", "delete", None, old_row={"id": 3})
        await query.settle()
        assert fetch.calls == 1 + 2
        assert query.tables == frozenset({"customers", "transactions", "payment_reminders"})

    @pytest.mark.asyncio
    async def test_orchestrator_named_after_channel(self, manager, fetch) -> None:
        query = await use_synced_query(manager, "customers", fetch)
        assert query.handle is not None
        assert query.orchestrator.name == query.handle.name

    @pytest.mark.asyncio
    async def test_table_property(self, manager, fetch) -> None:
        query = SyncedQuery(manager, "suppliers", fetch)
        assert query.table == "suppliers"
        assert query.tables == frozenset({"suppliers"})


class TestMountFetchErrors:
    @pytest.mark.asyncio
    async def test_mount_raises_without_on_error(self, manager, source, fetch) -> None:
        fetch.fail_with = RuntimeError("db down")
        query = SyncedQuery(manager, "customers", fetch)
        with pytest.raises(RuntimeError, match="db down"):
            await query.mount()
        assert not query.mounted
        await manager.shutdown()
        assert source.channel_names == frozenset()

    @pytest.mark.asyncio
    async def test_mount_reports_to_on_error(self, manager, fetch) -> None:
        errors: list[BaseException] = []
        fetch.fail_with = RuntimeError("db down")
        query = await use_synced_query(manager, "customers", fetch, on_error=errors.append)
        assert query.mounted
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_refetch_error_to_on_error(self, manager, source, fetch) -> None:
        errors: list[BaseException] = []
        query = await use_synced_query(manager, "customers", fetch, on_error=errors.append)
        fetch.fail_with = ValueError("bad")
        source.publish("customers", "insert", {"id": 1})
        source.publish("customers", "insert", {"id": 2})
        await query.settle()
        assert [type(e) for e in errors] == [ValueError]

    @pytest.mark.asyncio
    async def test_cannot_remount(self, manager, fetch) -> None:
        query = await use_synced_query(manager, "customers", fetch)
        query.unmount()
        with pytest.raises(ChannelError, match="unmounted"):
            await query.mount()


class TestDeps:
    @pytest.mark.asyncio
    async def test_changed_deps_refetch(self, manager, fetch, collector) -> None:
        query = await use_synced_query(manager, "transactions", fetch, deps=("2025-01",))
        assert query.set_deps("2025-01") is None
        task = query.set_deps("2025-02")
        assert task is not None
        await query.settle()
        assert fetch.calls == 2
        assert query.deps == ("2025-02",)
        reasons = [e.reason for e in collector.log.query(event_type=RefetchTriggered)]
        assert "deps" in reasons

    @pytest.mark.asyncio
    async def test_deps_before_mount(self, manager, fetch) -> None:
        query = SyncedQuery(manager, "transactions", fetch)
        assert query.set_deps("x") is None
        assert query.deps == ("x",)
        await query.mount()
        assert fetch.calls == 1


class TestLocalEvents:
    @pytest.mark.asyncio
    async def test_data_changed_refetches(self, manager, fetch) -> None:
        bus = LocalEventBus()
        query = await use_synced_query(manager, "expenses", fetch, local_events=bus)
        assert bus.notify_data_changed() == 1
        await query.settle()
        assert fetch.calls == 2
        # The guard only reacts to routed changes.
        assert query.guard is GuardState.PRIMING

    @pytest.mark.asyncio
    async def test_unmount_detaches(self, manager, fetch) -> None:
        bus = LocalEventBus()
        query = await use_synced_query(manager, "expenses", fetch, local_events=bus)
        query.unmount()
        assert bus.notify_data_changed() == 0
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_unmount_during_pending_mount(self, manager, source, fetch) -> None:
        bus = LocalEventBus()
        query = SyncedQuery(manager, "expenses", fetch, local_events=bus)
        task = asyncio.ensure_future(query.mount())
        await asyncio.sleep(0)
        query.unmount()
        await task
        fetched = fetch.calls
        assert fetched <= 1
        assert bus.listener_count(DATA_CHANGED) == 0
        assert bus.notify_data_changed() == 0
        source.publish("expenses", "insert", {"id": 1})
        source.publish("expenses", "insert", {"id": 2})
        await query.settle()
        assert fetch.calls == fetched
        assert not query.mounted


class TestReconcile:
    @pytest.mark.asyncio
    async def test_off_by_default(self, manager, source, fetch) -> None:
        query = await use_synced_query(manager, "customers", fetch)
        source.disconnect()
        source.reconnect()
        await query.settle()
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_refetch_on_reacknowledge(self, manager, source, fetch) -> None:
        query = await use_synced_query(
            manager, "customers", fetch, reconcile_on_reconnect=True,
        )
        source.disconnect()
        await query.settle()
        assert fetch.calls == 1
        source.reconnect()
        await query.settle()
        assert fetch.calls == 2


class TestOptionsFromConfig:
    @pytest.mark.asyncio
    async def test_coalesce_from_config(self, source, collector, fetch, tmp_path) -> None:
        from ledgerline.config import SyncConfig
        from ledgerline.sync.channel import ChannelManager

        manager = ChannelManager(
            source, config=SyncConfig(root=tmp_path, coalesce_refetch=True), collector=collector,
        )
        query = SyncedQueryMulti(manager, ["customers"], fetch)
        assert query.orchestrator._coalesce is True
        explicit = SyncedQueryMulti(manager, ["customers"], fetch, coalesce=False)
        assert explicit.orchestrator._coalesce is False
