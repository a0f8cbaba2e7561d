"""
Metrics Store for Dispatch Tracking

Aggregates per-dispatch outcomes for the /metrics endpoint: request counts
per target, failures by error code, fallback usage, latency and token
totals. Storage is in-memory and per-process.

The store is thread-safe using threading.Lock so it can be shared between
the event loop and any worker threads FastAPI uses for sync endpoints.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field


@dataclass
class DispatchMetric:
    """
    Individual dispatch record.

    Attributes:
        timestamp: Unix timestamp when the dispatch finished
        target: Requested target identifier
        family: Provider family of the requested target
        served_by: Target that produced the response (None on failure)
        success: Whether the dispatch produced an envelope
        error_code: DispatchError.code on failure
        fallback_used: Whether the fallback target served the response
        latency_ms: Wall-clock time for the whole dispatch
        input_tokens: Input units reported or estimated
        output_tokens: Output units reported or estimated
    """

    timestamp: float
    target: str
    family: str
    served_by: str | None
    success: bool
    error_code: str | None
    fallback_used: bool
    latency_ms: float
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class _TargetAggregate:
    """Internal aggregate for per-target metrics."""

    count: int = 0
    successes: int = 0
    fallbacks: int = 0
    total_tokens: int = 0
    latencies: list[float] = field(default_factory=list)
    errors: dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class AggregatedMetrics:
    """
    Aggregated metrics snapshot for reporting.

    All fields are copies captured under the store lock.
    """

    total_requests: int = 0
    total_successes: int = 0
    total_fallbacks: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    requests_by_target: dict[str, _TargetAggregate] = field(default_factory=dict)
    requests_by_family: dict[str, int] = field(default_factory=dict)
    errors_by_code: dict[str, int] = field(default_factory=dict)
    latencies: list[float] = field(default_factory=list)


class MetricsStore:
    """
    Thread-safe in-memory metrics storage.

    Example:
        store = MetricsStore()
        store.record(DispatchMetric(
            timestamp=time.time(),
            target="fal-ai/flux-dev",
            family="fal",
            ...
        ))
        print(store.get_aggregated().total_requests)
    """

    def __init__(self, max_history: int = 10000):
        """
        Args:
            max_history: Maximum individual records and latency samples
                         to retain. Totals are kept regardless.
        """
        self._lock = threading.Lock()
        self._metrics: list[DispatchMetric] = []
        self._max_history = max_history

        self._total_requests = 0
        self._total_successes = 0
        self._total_fallbacks = 0
        self._total_input_tokens = 0
        self._total_output_tokens = 0

        self._by_target: dict[str, _TargetAggregate] = defaultdict(_TargetAggregate)
        self._by_family: dict[str, int] = defaultdict(int)
        self._errors: dict[str, int] = defaultdict(int)
        self._latencies: list[float] = []

    def record(self, metric: DispatchMetric) -> None:
        """
        Record a dispatch outcome.

        Args:
            metric: The dispatch metric to record
        """
        with self._lock:
            self._metrics.append(metric)
            if len(self._metrics) > self._max_history:
                self._metrics = self._metrics[-self._max_history :]

            self._total_requests += 1
            self._total_input_tokens += metric.input_tokens
            self._total_output_tokens += metric.output_tokens
            self._by_family[metric.family] += 1

            target_agg = self._by_target[metric.target]
            target_agg.count += 1
            target_agg.total_tokens += metric.total_tokens
            target_agg.latencies.append(metric.latency_ms)
            if len(target_agg.latencies) > self._max_history:
                target_agg.latencies = target_agg.latencies[-self._max_history :]

            if metric.success:
                self._total_successes += 1
                target_agg.successes += 1
            elif metric.error_code:
                self._errors[metric.error_code] += 1
                target_agg.errors[metric.error_code] += 1

            if metric.fallback_used:
                self._total_fallbacks += 1
                target_agg.fallbacks += 1

            self._latencies.append(metric.latency_ms)
            if len(self._latencies) > self._max_history:
                self._latencies = self._latencies[-self._max_history :]

    def get_aggregated(self) -> AggregatedMetrics:
        """
        Get a snapshot of current aggregates.

        Returns:
            AggregatedMetrics copy, safe to use outside the lock
        """
        with self._lock:
            by_target_copy = {
                target: _TargetAggregate(
                    count=agg.count,
                    successes=agg.successes,
                    fallbacks=agg.fallbacks,
                    total_tokens=agg.total_tokens,
                    latencies=list(agg.latencies),
                    errors=dict(agg.errors),
                )
                for target, agg in self._by_target.items()
            }

            return AggregatedMetrics(
                total_requests=self._total_requests,
                total_successes=self._total_successes,
                total_fallbacks=self._total_fallbacks,
                total_input_tokens=self._total_input_tokens,
                total_output_tokens=self._total_output_tokens,
                requests_by_target=by_target_copy,
                requests_by_family=dict(self._by_family),
                errors_by_code=dict(self._errors),
                latencies=list(self._latencies),
            )

    def get_recent(self, count: int = 100) -> list[DispatchMetric]:
        with self._lock:
            return list(self._metrics[-count:])

    def reset(self) -> None:
        """Clear all stored data. Primarily used for testing."""
        with self._lock:
            self._metrics.clear()
            self._total_requests = 0
            self._total_successes = 0
            self._total_fallbacks = 0
            self._total_input_tokens = 0
            self._total_output_tokens = 0
            self._by_target.clear()
            self._by_family.clear()
            self._errors.clear()
            self._latencies.clear()


_store: MetricsStore | None = None


def get_metrics_store() -> MetricsStore:
    """
    Get the global metrics store instance.

    Returns:
        Singleton MetricsStore instance
    """
    global _store
    if _store is None:
        _store = MetricsStore()
    return _store
