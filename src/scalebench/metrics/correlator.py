"""Correlate new machines with node readiness signals.

Each new machine is matched to its node (by node UID) and to the scale
event that created it: either the mutation time of its MachineSet, or a
single externally supplied epoch that applies to every machine.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from scalebench._constants import (
    JOB_NAME,
    NODE_READY_LATENCY_MEASUREMENT,
    NODE_READY_LATENCY_QUANTILES_MEASUREMENT,
)

from .latency import LatencyQuantiles, NodeReadyMetric, latency_ms, new_latency_summary

if TYPE_CHECKING:
    from scalebench.measurements.node_latency import NodeReadySignal
    from scalebench.workerscale.types import MachineRecord, MutationPlan

    from .storage import LatencyIndexer

logger = logging.getLogger(__name__)

QUANTILE_DIMENSIONS = ("MachineCreation", "MachineReady", "NodeCreation", "NodeReady")


def group_name_for(machine_name: str) -> str | None:
    """Derive the owning MachineSet name: everything before the last ``-``."""
    group, sep, _ = machine_name.rpartition("-")
    if not sep or not group:
        return None
    return group


def _reference_time(
    machine_name: str, plan: MutationPlan, epoch_time: datetime | None
) -> datetime | None:
    if epoch_time is not None:
        return epoch_time
    group = group_name_for(machine_name)
    mutation = plan.get(group) if group else None
    if mutation is None or mutation.last_mutation_time is None:
        logger.warning(
            "Machine %s does not map to a scaled MachineSet (derived %r), skipping",
            machine_name,
            group,
        )
        return None
    return mutation.last_mutation_time


def calculate_metrics(
    plan: MutationPlan,
    machines: dict[str, MachineRecord],
    signals: dict[str, NodeReadySignal],
    uuid: str,
    ami_id: str = "",
    scale_event_epoch: int = 0,
    job_name: str = JOB_NAME,
    metadata: dict[str, Any] | None = None,
) -> tuple[list[NodeReadyMetric], list[LatencyQuantiles]]:
    """Compute per-machine latencies and their quantiles.

    Args:
        plan: Mutation plan holding per-group mutation times
        machines: New machines (already diffed against the prior snapshot)
        signals: Node readiness signals keyed by node UID
        uuid: Run correlation ID
        ami_id: Image ID attached to every record
        scale_event_epoch: Unix seconds; when non-zero it is the reference
            time of every machine and ``plan`` is ignored
        job_name: Job name attached to every document
        metadata: Extra fields attached to every document

    Returns:
        Tuple of (records, one LatencyQuantiles per dimension)
    """
    metadata = metadata or {}
    epoch_time = datetime.fromtimestamp(scale_event_epoch, timezone.utc) if scale_event_epoch else None
    records: list[NodeReadyMetric] = []

    for name in sorted(machines):
        machine = machines[name]
        signal = signals.get(machine.node_uid)
        if signal is None or signal.ready is None:
            logger.debug("No node readiness signal for machine %s, skipping", name)
            continue

        reference = _reference_time(name, plan, epoch_time)
        if reference is None:
            continue

        records.append(
            NodeReadyMetric(
                scale_event_timestamp=reference,
                machine_creation_timestamp=machine.creation_time,
                machine_creation_latency=latency_ms(machine.creation_time, reference),
                machine_ready_timestamp=machine.ready_time,
                machine_ready_latency=(
                    latency_ms(machine.ready_time, reference) if machine.ready_time else None
                ),
                node_creation_timestamp=signal.created,
                node_creation_latency=latency_ms(signal.created, reference),
                node_ready_timestamp=signal.ready,
                node_ready_latency=latency_ms(signal.ready, reference),
                metric_name=NODE_READY_LATENCY_MEASUREMENT,
                uuid=uuid,
                job_name=job_name,
                ami_id=ami_id,
                node_name=signal.name,
                machine_name=name,
                labels=signal.labels,
                metadata=metadata,
            )
        )

    dimensions: dict[str, list[float]] = {
        "MachineCreation": [r.machine_creation_latency for r in records],
        "MachineReady": [r.machine_ready_latency for r in records if r.machine_ready_latency is not None],
        "NodeCreation": [r.node_creation_latency for r in records],
        "NodeReady": [r.node_ready_latency for r in records],
    }

    quantiles = []
    for dimension in QUANTILE_DIMENSIONS:
        summary = new_latency_summary(dimensions[dimension], dimension)
        summary.uuid = uuid
        summary.metric_name = NODE_READY_LATENCY_QUANTILES_MEASUREMENT
        summary.job_name = job_name
        summary.metadata = metadata
        quantiles.append(summary)

    return records, quantiles


def finalize_metrics(
    records: list[NodeReadyMetric],
    quantiles: list[LatencyQuantiles],
    indexer: LatencyIndexer,
    job_name: str = JOB_NAME,
) -> bool:
    """Log the quantile summaries and hand everything to the indexer.

    Returns:
        True if both collections were indexed
    """
    for q in quantiles:
        logger.info(
            "%s: %s 50th: %d 99th: %d max: %d avg: %d",
            job_name,
            q.quantile_name,
            q.p50,
            q.p99,
            q.max,
            q.avg,
        )

    documents = {
        NODE_READY_LATENCY_MEASUREMENT: [r.to_dict() for r in records],
        NODE_READY_LATENCY_QUANTILES_MEASUREMENT: [q.to_dict() for q in quantiles],
    }
    try:
        for metric_name, docs in documents.items():
            indexer.index(metric_name, job_name, docs)
    except OSError as e:
        logger.error("Indexing failed: %s", e)
        return False
    return True
