"""Node readiness measurement for scalebench."""

from .node_latency import NodeLatencyMeasurement, NodeReadySignal, NodeWatcher, signal_from_node

__all__ = [
    "NodeLatencyMeasurement",
    "NodeReadySignal",
    "NodeWatcher",
    "signal_from_node",
]
