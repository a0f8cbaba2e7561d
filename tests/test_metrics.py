"""
Metrics Tests

Validates dispatch recording, aggregation, and the API report built from
the aggregates.
"""

import time

import pytest

from arena.metrics import DispatchMetric, MetricsReporter, MetricsStore


def metric(target="fal-ai/flux-dev", success=True, **overrides) -> DispatchMetric:
    values = dict(
        timestamp=time.time(),
        target=target,
        family="fal",
        served_by=target if success else None,
        success=success,
        error_code=None if success else "UPSTREAM_REJECTED",
        fallback_used=False,
        latency_ms=100.0,
        input_tokens=10,
        output_tokens=5,
    )
    values.update(overrides)
    return DispatchMetric(**values)


@pytest.fixture
def store():
    return MetricsStore()


class TestMetricsStore:
    def test_record_totals(self, store):
        store.record(metric())
        store.record(metric(success=False, latency_ms=300.0))
        store.record(metric("openai/gpt-4o-mini", family="chat", fallback_used=False))

        agg = store.get_aggregated()
        assert agg.total_requests == 3
        assert agg.total_successes == 2
        assert agg.total_input_tokens == 30
        assert agg.total_output_tokens == 15
        assert agg.requests_by_family == {"fal": 2, "chat": 1}
        assert agg.errors_by_code == {"UPSTREAM_REJECTED": 1}
        assert agg.requests_by_target["fal-ai/flux-dev"].count == 2
        assert agg.requests_by_target["fal-ai/flux-dev"].total_tokens == 30

    def test_snapshot_is_detached(self, store):
        store.record(metric())
        agg = store.get_aggregated()
        store.record(metric())

        assert agg.total_requests == 1
        assert len(agg.requests_by_target["fal-ai/flux-dev"].latencies) == 1

    def test_history_bounded(self):
        store = MetricsStore(max_history=5)
        for _ in range(8):
            store.record(metric())

        assert len(store.get_recent(100)) == 5
        assert len(store.get_aggregated().latencies) == 5
        assert store.get_aggregated().total_requests == 8

    def test_reset(self, store):
        store.record(metric(success=False))
        store.reset()

        agg = store.get_aggregated()
        assert agg.total_requests == 0
        assert agg.requests_by_target == {}
        assert agg.errors_by_code == {}


class TestMetricsReporter:
    def test_empty_report(self, store):
        report = MetricsReporter(store).generate_report()

        assert report.total_requests == 0
        assert report.success_rate_percent == 0.0
        assert report.avg_latency_ms == 0.0

    def test_report_rates_and_latency(self, store):
        store.record(metric(latency_ms=100.0, fallback_used=True, served_by="hf-black-forest-labs/flux.1-dev"))
        store.record(metric(latency_ms=200.0))
        store.record(metric(success=False, latency_ms=300.0))
        store.record(metric(success=False, latency_ms=400.0, error_code="NETWORK_FAILURE"))

        reporter = MetricsReporter(store)
        report = reporter.generate_report()

        assert report.success_rate_percent == 50.0
        assert report.avg_latency_ms == 250.0
        assert report.total_fallbacks == 1
        assert report.errors_by_code == {"UPSTREAM_REJECTED": 1, "NETWORK_FAILURE": 1}

        target = report.requests_by_target["fal-ai/flux-dev"]
        assert target.request_count == 4
        assert target.success_count == 2
        assert target.fallback_count == 1
        assert target.avg_latency_ms == 250.0

        assert reporter.get_fallback_rate() == 25.0
