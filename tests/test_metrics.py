from __future__ import annotations

import pytest

from aduib_intercept.observability.metrics import Histogram, InterceptorMetrics, MetricLabels


@pytest.mark.asyncio
async def test_record_invocation_feeds_counter_and_histogram():
    metrics = InterceptorMetrics()
    for duration in (0.01, 0.02, 0.03, 0.5):
        await metrics.record_invocation("redact", "Mutation", "Request", "ok", duration)
    await metrics.record_invocation("redact", "Mutation", "Request", "error", 0.1)

    ok = MetricLabels(interceptor="redact", kind="Mutation", phase="Request", status="ok")
    assert metrics.invocations_total.get()[ok.key()] == 4
    assert metrics.invocations_total.total(interceptor="redact") == 5
    assert metrics.invocation_duration.count(ok) == 4
    assert await metrics.invocation_duration.get_percentile(ok, 50) == 0.03
    assert await metrics.invocation_duration.get_percentile(ok, 100) == 0.5
    assert await metrics.invocation_duration.get_percentile(MetricLabels(interceptor="other"), 99) == 0.0


def test_gauge_moves_both_ways():
    metrics = InterceptorMetrics()
    metrics.background_tasks.inc()
    metrics.background_tasks.inc(2)
    metrics.background_tasks.dec()
    assert metrics.background_tasks.get() == 2


@pytest.mark.asyncio
async def test_histogram_keeps_a_bounded_window_but_counts_everything():
    histogram = Histogram("latency", "test", max_samples=4)
    labels = MetricLabels(interceptor="redact")
    for value in range(10):
        await histogram.record(float(value), labels)

    assert histogram.count(labels) == 10
    assert histogram.retained(labels) == 4
    assert await histogram.get_percentile(labels, 0) == 6.0
    assert await histogram.get_percentile(labels, 100) == 9.0
