"""Refetch profiler — measures how long consumer fetch functions take.

Wraps one refetch run, records a ``RefetchProfile`` event through the
collector, and optionally prints a one-line summary to stderr.

Thread Safety:
    A profiler instance measures a single run and is not shared.
    Aggregate queries are protected by the underlying ``EventLog`` lock.

"""

from __future__ import annotations

import sys
import time
from typing import TYPE_CHECKING, Any

from ledgerline.observability.events import RefetchProfile

if TYPE_CHECKING:
    from ledgerline.observability.collector import SyncCollector
    from ledgerline.observability.log import EventLog


class RefetchProfiler:
    """Records wall time for a single refetch.

    Usage::

        profiler = RefetchProfiler(collector, "customers:1", reason="change")
        profiler.begin()
        try:
            await fetch()
        except Exception:
            profiler.finish(ok=False)
            raise
        profiler.finish()

    """

    __slots__ = ("_collector", "_consumer", "_reason", "_t0", "_verbose")

    def __init__(
        self,
        collector: SyncCollector | None,
        consumer: str,
        *,
        reason: str,
        verbose: bool = False,
    ) -> None:
        self._collector = collector
        self._consumer = consumer
        self._reason = reason
        self._verbose = verbose
        self._t0 = 0.0

    def begin(self) -> None:
        """Start the clock."""
        self._t0 = time.perf_counter()

    def finish(self, *, ok: bool = True) -> float:
        """Stop the clock, record the profile, and return elapsed milliseconds."""
        elapsed_ms = (time.perf_counter() - self._t0) * 1000 if self._t0 > 0 else 0.0
        if self._collector is not None:
            self._collector.record_refetch_profile(
                self._consumer,
                reason=self._reason,
                duration_ms=elapsed_ms,
                ok=ok,
            )
        if self._verbose:
            status = "ok" if ok else "failed"
            print(
                f"  [{elapsed_ms:.0f}ms] {self._consumer} refetch ({self._reason}, {status})",
                file=sys.stderr,
            )
        return elapsed_ms


def compute_refetch_stats(
    log: EventLog,
    *,
    limit: int = 100,
) -> dict[str, Any]:
    """Compute aggregate latency statistics from recent ``RefetchProfile`` events.

    Returns a dict with p50, p95, p99, the failure count, and per-reason counts.

    """
    profiles = log.query(event_type=RefetchProfile, limit=limit)
    if not profiles:
        return {"count": 0}

    durations = sorted(p.duration_ms for p in profiles)
    count = len(durations)

    def percentile(data: list[float], pct: float) -> float:
        idx = int(len(data) * pct / 100)
        return data[min(idx, len(data) - 1)]

    by_reason: dict[str, int] = {}
    for p in profiles:
        by_reason[p.reason] = by_reason.get(p.reason, 0) + 1

    return {
        "count": count,
        "failed": sum(1 for p in profiles if not p.ok),
        "duration_ms": {
            "p50": round(percentile(durations, 50), 1),
            "p95": round(percentile(durations, 95), 1),
            "p99": round(percentile(durations, 99), 1),
            "min": round(durations[0], 1),
            "max": round(durations[-1], 1),
        },
        "by_reason": by_reason,
    }
