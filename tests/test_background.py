from __future__ import annotations

import asyncio

import pytest

from aduib_intercept.protocol.types import InvokeInterceptorResult
from aduib_intercept.server.background import MetadataSink, ObservabilityTaskTracker


def _result(**metadata) -> InvokeInterceptorResult:
    return InvokeInterceptorResult(metadata=metadata or None)


@pytest.mark.asyncio
async def test_spawn_before_start_is_refused_and_recorded():
    tracker = ObservabilityTaskTracker()
    calls = []

    async def factory():
        calls.append(1)
        return _result()

    assert tracker.spawn("audit", factory) is None
    assert calls == []
    [failure] = tracker.sink.failures("audit")
    assert failure.error == "task tracker is not running"


@pytest.mark.asyncio
async def test_metadata_and_failures_land_in_the_sink():
    tracker = ObservabilityTaskTracker()
    tracker.start()

    async def ok():
        return _result(span="s1")

    async def broken():
        raise ValueError("exporter offline")

    tracker.spawn("trace", ok)
    tracker.spawn("audit", broken)
    await tracker.wait_idle()

    assert tracker.sink.latest_metadata("trace") == {"span": "s1"}
    [failure] = tracker.sink.failures()
    assert failure.interceptor_id == "audit"
    assert failure.error == "ValueError: exporter offline"


@pytest.mark.asyncio
async def test_gauge_tracks_in_flight_tasks():
    tracker = ObservabilityTaskTracker()
    tracker.start()
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return _result()

    tracker.spawn("a", slow)
    tracker.spawn("b", slow)
    assert tracker.pending == 2
    assert tracker.metrics.background_tasks.get() == 2
    release.set()
    await tracker.wait_idle()
    assert tracker.pending == 0
    assert tracker.metrics.background_tasks.get() == 0


@pytest.mark.asyncio
async def test_drain_waits_for_quick_tasks():
    tracker = ObservabilityTaskTracker()
    tracker.start()
    done = []

    async def quick():
        await asyncio.sleep(0.01)
        done.append(1)
        return _result()

    tracker.spawn("quick", quick)
    await tracker.drain(timeout=2)
    assert done == [1]
    assert not tracker.shutdown_token.cancelled
    assert not tracker.running


@pytest.mark.asyncio
async def test_drain_cancels_stragglers_and_signals_the_shutdown_token():
    tracker = ObservabilityTaskTracker()
    tracker.start()
    observed = []

    async def stubborn():
        try:
            await asyncio.sleep(30)
        finally:
            observed.append(tracker.shutdown_token.cancelled)
        return _result()

    tracker.spawn("stubborn", stubborn)
    await tracker.drain(timeout=0.05)

    assert observed == [True]
    assert tracker.pending == 0
    assert tracker.sink.failures("stubborn")[0].error == "cancelled"
    assert tracker.spawn("late", stubborn) is None


@pytest.mark.asyncio
async def test_restart_after_drain_gets_a_fresh_token():
    tracker = ObservabilityTaskTracker()
    tracker.start()

    async def forever():
        await asyncio.sleep(30)

    tracker.spawn("x", forever)
    await tracker.drain(timeout=0.01)
    assert tracker.shutdown_token.cancelled
    tracker.start()
    assert not tracker.shutdown_token.cancelled


def test_sink_keeps_a_bounded_history_per_interceptor():
    sink = MetadataSink(max_entries_per_interceptor=2)
    for n in range(3):
        sink.record_metadata("trace", {"n": n})
    sink.record_failure("other", "boom")
    assert [e.metadata for e in sink.entries("trace")] == [{"n": 1}, {"n": 2}]
    assert sink.entries("missing") == []
    assert sink.latest_metadata("other") is None
    sink.clear()
    assert sink.failures() == []
