"""Shared test fixtures for ledgerline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from ledgerline.config import SyncConfig
from ledgerline.observability import EventLog, SyncCollector
from ledgerline.source.memory import InMemoryChangeSource
from ledgerline.sync.channel import ChannelManager

if TYPE_CHECKING:
    from pathlib import Path

    from ledgerline.sync.events import ChangeEvent


@pytest.fixture
def source() -> InMemoryChangeSource:
    """An online in-memory change source."""
    return InMemoryChangeSource()


@pytest.fixture
def collector() -> SyncCollector:
    """A collector over a fresh event log."""
    return SyncCollector(EventLog(max_events=1_000))


@pytest.fixture
def config(tmp_path: Path) -> SyncConfig:
    """A config rooted in a temporary directory with a short ack timeout."""
    return SyncConfig(root=tmp_path, subscribe_timeout=0.05)


@pytest.fixture
def manager(
    source: InMemoryChangeSource,
    config: SyncConfig,
    collector: SyncCollector,
) -> ChannelManager:
    """A channel manager wired to the in-memory source."""
    return ChannelManager(source, config=config, collector=collector)


class Recorder:
    """Change handler that remembers every ``(table, event)`` it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ChangeEvent]] = []

    def __call__(self, table: str, event: ChangeEvent) -> None:
        self.calls.append((table, event))

    @property
    def tables(self) -> list[str]:
        return [table for table, _ in self.calls]


class CountingFetch:
    """Async fetch function that counts its calls and can be made to fail."""

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.calls = 0
        self.rows = rows or []
        self.result: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None

    async def __call__(self) -> None:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.result = list(self.rows)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def fetch() -> CountingFetch:
    return CountingFetch()


@pytest.fixture
def make_recorder() -> type[Recorder]:
    """Factory for additional recorders within one test."""
    return Recorder


@pytest.fixture
def make_fetch() -> type[CountingFetch]:
    """Factory for additional fetch functions within one test."""
    return CountingFetch
