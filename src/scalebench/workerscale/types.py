"""Shared types for worker-scale operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from scalebench.k8s.wait import WaitResult
    from scalebench.metrics.latency import LatencyQuantiles, NodeReadyMetric


class ScenarioState(Enum):
    """Lifecycle of a single scale operation."""

    IDLE = "Idle"
    PLAN_COMPUTED = "PlanComputed"
    MUTATING = "Mutating"
    CONVERGING = "Converging"
    MEASURING = "Measuring"
    RESTORING = "Restoring"
    DONE = "Done"


@dataclass
class ScaleRequest:
    """Input of a worker-scale run."""

    uuid: str
    additional_worker_nodes: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    gc: bool = True
    scale_event_epoch: int = 0
    autoscaler_enabled: bool = False
    max_replicas_per_group: int | None = None

    @property
    def epoch_mode(self) -> bool:
        """True when measuring an external scale event instead of scaling."""
        return self.scale_event_epoch > 0

    def epoch_time(self) -> datetime:
        return datetime.fromtimestamp(self.scale_event_epoch, timezone.utc)


@dataclass
class MachineRecord:
    """A worker machine as read from the machine management API."""

    name: str
    node_uid: str
    creation_time: datetime
    ready_time: datetime | None = None


@dataclass
class GroupMutation:
    """Planned change of one provisioning group.

    ``last_mutation_time`` is written by exactly one worker thread, the one
    that owns this group during the concurrent apply phase.
    """

    previous_replicas: int
    target_replicas: int
    last_mutation_time: datetime | None = None

    @property
    def increment(self) -> int:
        return self.target_replicas - self.previous_replicas


MutationPlan = dict[str, GroupMutation]


def plan_total(plan: MutationPlan) -> int:
    """Number of individual +1 increments in a plan."""
    return sum(m.increment for m in plan.values())


def utc_now() -> datetime:
    """Current UTC time truncated to the second."""
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass
class ScaleResult:
    """Outcome of a worker-scale run."""

    uuid: str
    scenario: str
    records: list[NodeReadyMetric] = field(default_factory=list)
    quantiles: list[LatencyQuantiles] = field(default_factory=list)
    ami_id: str = ""
    plan: MutationPlan = field(default_factory=dict)
    group_results: dict[str, WaitResult] = field(default_factory=dict)
    nodes_result: WaitResult | None = None
    indexed: bool = False
    states: list[ScenarioState] = field(default_factory=list)

    @property
    def state(self) -> ScenarioState:
        return self.states[-1] if self.states else ScenarioState.IDLE

    def transition(self, state: ScenarioState) -> None:
        self.states.append(state)

    @property
    def converged(self) -> bool:
        """True when every group and the node list reached their targets."""
        groups_ok = all(r.ready for r in self.group_results.values())
        nodes_ok = self.nodes_result is None or self.nodes_result.ready
        return groups_ok and nodes_ok

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "uuid": self.uuid,
            "scenario": self.scenario,
            "ami_id": self.ami_id,
            "indexed": self.indexed,
            "converged": self.converged,
            "plan": {
                name: {
                    "previous_replicas": m.previous_replicas,
                    "target_replicas": m.target_replicas,
                    "last_mutation_time": (
                        m.last_mutation_time.isoformat() if m.last_mutation_time else None
                    ),
                }
                for name, m in self.plan.items()
            },
            "states": [s.value for s in self.states],
            "records": [r.to_dict() for r in self.records],
            "quantiles": [q.to_dict() for q in self.quantiles],
        }
