"""Latency records and quantile summaries."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any


def latency_ms(ts: datetime, reference: datetime) -> int:
    """Whole milliseconds from ``reference`` to ``ts``, truncated toward zero.

    Negative values are returned as-is.
    """
    return int((ts - reference) / timedelta(milliseconds=1))


@dataclass
class NodeReadyMetric:
    """Scale-up latencies of one new machine and its node."""

    scale_event_timestamp: datetime
    machine_creation_timestamp: datetime
    machine_creation_latency: int
    machine_ready_timestamp: datetime | None
    machine_ready_latency: int | None
    node_creation_timestamp: datetime
    node_creation_latency: int
    node_ready_timestamp: datetime
    node_ready_latency: int
    metric_name: str
    uuid: str
    job_name: str
    ami_id: str = ""
    node_name: str = ""
    machine_name: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Indexed document. Raw timestamps are not part of it."""
        doc: dict[str, Any] = {
            "machineCreationLatency": self.machine_creation_latency,
            "machineReadyLatency": self.machine_ready_latency,
            "nodeCreationLatency": self.node_creation_latency,
            "nodeReadyLatency": self.node_ready_latency,
            "metricName": self.metric_name,
            "amiID": self.ami_id,
            "uuid": self.uuid,
            "jobName": self.job_name,
            "nodeName": self.node_name,
            "labels": self.labels,
        }
        if self.metadata:
            doc["metadata"] = self.metadata
        return doc


@dataclass
class LatencyQuantiles:
    """Summary of one latency dimension across a run."""

    quantile_name: str
    p50: int = 0
    p95: int = 0
    p99: int = 0
    min: int = 0
    max: int = 0
    avg: int = 0
    count: int = 0
    uuid: str = ""
    metric_name: str = ""
    job_name: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "quantileName": self.quantile_name,
            "uuid": self.uuid,
            "P99": self.p99,
            "P95": self.p95,
            "P50": self.p50,
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
            "count": self.count,
            "timestamp": self.timestamp.isoformat(),
            "metricName": self.metric_name,
            "jobName": self.job_name,
        }
        if self.metadata:
            doc["metadata"] = self.metadata
        return doc


def percentile(values: list[float], percent: float) -> float:
    """Percentile of ``values`` using the nearest-rank-with-interpolation rule.

    The rank is ``percent / 100 * n``. A whole rank selects that element; a
    fractional rank above 1 averages the two neighbouring elements; anything
    lower selects the smallest element.

    Raises:
        ValueError: If ``values`` is empty or ``percent`` is out of (0, 100]
    """
    if not values:
        raise ValueError("percentile of an empty sequence")
    if percent <= 0 or percent > 100:
        raise ValueError(f"percent must be in (0, 100], got {percent}")

    c = sorted(values)
    index = (percent / 100) * len(c)
    if index == int(index):
        return c[int(index) - 1]
    if index > 1:
        i = int(index)
        return (c[i - 1] + c[i]) / 2
    return c[0]


def new_latency_summary(values: list[float], name: str) -> LatencyQuantiles:
    """Summarise one latency dimension; an empty input gives all zeros."""
    summary = LatencyQuantiles(quantile_name=name, count=len(values))
    if not values:
        return summary
    summary.p50 = int(percentile(values, 50))
    summary.p95 = int(percentile(values, 95))
    summary.p99 = int(percentile(values, 99))
    summary.min = int(min(values))
    summary.max = int(max(values))
    mean = sum(values) / len(values)
    # Halves round away from zero
    summary.avg = int(math.copysign(math.floor(abs(mean) + 0.5), mean))
    return summary
