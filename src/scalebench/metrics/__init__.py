"""Latency metrics for scalebench."""

from .correlator import QUANTILE_DIMENSIONS, calculate_metrics, finalize_metrics, group_name_for
from .latency import LatencyQuantiles, NodeReadyMetric, latency_ms, new_latency_summary, percentile
from .storage import LatencyIndexer, LocalIndexer

__all__ = [
    # Records
    "NodeReadyMetric",
    "LatencyQuantiles",
    "latency_ms",
    "percentile",
    "new_latency_summary",
    # Correlation
    "QUANTILE_DIMENSIONS",
    "calculate_metrics",
    "finalize_metrics",
    "group_name_for",
    # Sinks
    "LatencyIndexer",
    "LocalIndexer",
]
