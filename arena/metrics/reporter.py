"""
Metrics Reporter for API Responses

Turns the store's aggregates into the MetricsResponse schema, computing
success rates and average latencies on the way.
"""

from arena.metrics.store import MetricsStore, get_metrics_store
from arena.schemas.compare import MetricsResponse, TargetMetrics


def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class MetricsReporter:
    """
    Generate metrics reports from aggregated data.

    Example:
        reporter = MetricsReporter()
        return reporter.generate_report()
    """

    def __init__(self, store: MetricsStore | None = None):
        """
        Args:
            store: MetricsStore to report from. Defaults to the global singleton.
        """
        self._store = store or get_metrics_store()

    def generate_report(self) -> MetricsResponse:
        """
        Generate a complete metrics report.

        Returns:
            MetricsResponse ready for API serialization
        """
        agg = self._store.get_aggregated()

        targets: dict[str, TargetMetrics] = {}
        for target, data in agg.requests_by_target.items():
            targets[target] = TargetMetrics(
                target=target,
                request_count=data.count,
                success_count=data.successes,
                fallback_count=data.fallbacks,
                total_tokens=data.total_tokens,
                avg_latency_ms=round(_average(data.latencies), 2),
                errors_by_code=dict(data.errors),
            )

        success_rate = (
            agg.total_successes / agg.total_requests * 100 if agg.total_requests else 0.0
        )

        return MetricsResponse(
            total_requests=agg.total_requests,
            total_successes=agg.total_successes,
            total_fallbacks=agg.total_fallbacks,
            success_rate_percent=round(success_rate, 2),
            total_input_tokens=agg.total_input_tokens,
            total_output_tokens=agg.total_output_tokens,
            avg_latency_ms=round(_average(agg.latencies), 2),
            requests_by_family=agg.requests_by_family,
            requests_by_target=targets,
            errors_by_code=agg.errors_by_code,
        )

    def get_fallback_rate(self) -> float:
        """Percentage of dispatches served by a fallback target."""
        agg = self._store.get_aggregated()
        if agg.total_requests == 0:
            return 0.0
        return round(agg.total_fallbacks / agg.total_requests * 100, 1)


def get_reporter(store: MetricsStore | None = None) -> MetricsReporter:
    """
    Get a metrics reporter instance.

    Args:
        store: Optional MetricsStore to use. Defaults to global singleton.

    Returns:
        MetricsReporter instance
    """
    return MetricsReporter(store)
