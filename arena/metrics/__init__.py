from arena.metrics.reporter import MetricsReporter, get_reporter
from arena.metrics.store import DispatchMetric, MetricsStore, get_metrics_store

__all__ = [
    "DispatchMetric",
    "MetricsReporter",
    "MetricsStore",
    "get_metrics_store",
    "get_reporter",
]
