"""Scale driver: apply a mutation plan and wait for convergence.

Every planned group gets its own worker thread which issues the replica
update and then polls that one group until it converges or times out.
The driver joins on all workers before a second, cluster-wide wait for
every node to report Ready.

Each worker writes only the ``GroupMutation`` of the group it owns, and the
plan is read again only after the join, so no locking is needed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial

from scalebench.k8s.client import K8sClient, K8sError
from scalebench.k8s.wait import (
    WaitResult,
    WaitStatus,
    wait_for_machine_set_ready,
    wait_for_nodes_ready,
)

from .types import GroupMutation, MutationPlan, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Outcome of applying (or restoring) a mutation plan."""

    group_results: dict[str, WaitResult] = field(default_factory=dict)
    nodes_result: WaitResult | None = None

    @property
    def converged(self) -> bool:
        groups_ok = all(r.ready for r in self.group_results.values())
        return groups_ok and (self.nodes_result is None or self.nodes_result.ready)

    @property
    def failed_groups(self) -> list[str]:
        return sorted(name for name, r in self.group_results.items() if not r.ready)


class ScaleDriver:
    """Drives MachineSet replica changes and waits for them to converge."""

    def __init__(
        self,
        client: K8sClient,
        timeout_seconds: float = 4 * 3600,
        poll_interval: float = 1,
    ):
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.poll_interval = poll_interval

    # ------------------------------------------------------------------
    # Per-group workers
    # ------------------------------------------------------------------

    def _scale_group(
        self, name: str, mutation: GroupMutation, replicas: int, record_time: bool
    ) -> WaitResult:
        try:
            if record_time:
                mutation.last_mutation_time = utc_now()
            self.client.scale_machine_set(name, replicas)
        except Exception as e:
            logger.error("Failed to edit MachineSet %s: %s", name, e)
            return WaitResult(status=WaitStatus.FAILED, message=str(e), elapsed_seconds=0, attempts=0)
        return self._wait_group(name, replicas)

    def _wait_group(self, name: str, replicas: int) -> WaitResult:
        try:
            result = wait_for_machine_set_ready(
                self.client,
                name,
                replicas,
                timeout_seconds=self.timeout_seconds,
                poll_interval=self.poll_interval,
            )
        except K8sError as e:
            logger.error("Failed waiting for MachineSet %s: %s", name, e)
            return WaitResult(status=WaitStatus.FAILED, message=str(e), elapsed_seconds=0, attempts=0)

        if result.ready:
            logger.info("MachineSet %s updated to %d replicas", name, replicas)
        else:
            logger.warning("Timeout waiting for MachineSet %s: %s", name, result.message)
        return result

    def _fan_out(self, jobs: dict[str, Callable[[], WaitResult]]) -> dict[str, WaitResult]:
        """Run one worker per group and join on all of them."""
        results: dict[str, WaitResult] = {}
        with ThreadPoolExecutor(max_workers=len(jobs)) as executor:
            futures = {executor.submit(job): name for name, job in jobs.items()}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results

    def wait_nodes(self) -> WaitResult:
        """Wait for every node to report Ready.

        Raises:
            K8sNotFoundError: If nodes cannot be listed at all
        """
        result = wait_for_nodes_ready(
            self.client, timeout_seconds=self.timeout_seconds, poll_interval=self.poll_interval
        )
        if result.ready:
            logger.info(result.message)
        else:
            logger.warning("Error waiting for nodes: %s", result.message)
        return result

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def apply(self, plan: MutationPlan) -> ApplyResult:
        """Scale every planned group to its target and wait for convergence.

        ``last_mutation_time`` of each group is set just before its update
        call is issued. An empty plan performs no mutation and no wait.
        """
        if not plan:
            logger.info("Nothing to scale")
            return ApplyResult()

        jobs = {
            name: partial(self._scale_group, name, mutation, mutation.target_replicas, True)
            for name, mutation in plan.items()
        }
        group_results = self._fan_out(jobs)
        logger.info("All the machinesets have been edited")
        return ApplyResult(group_results=group_results, nodes_result=self.wait_nodes())

    def wait_for_groups(self, plan: MutationPlan, trigger_time: datetime) -> ApplyResult:
        """Wait for groups scaled by someone else (e.g. the autoscaler).

        Every group is anchored at ``trigger_time`` since the actual
        per-group mutation time is not observable.
        """
        if not plan:
            return ApplyResult()

        for mutation in plan.values():
            mutation.last_mutation_time = trigger_time
        jobs = {name: partial(self._wait_group, name, m.target_replicas) for name, m in plan.items()}
        group_results = self._fan_out(jobs)
        return ApplyResult(group_results=group_results, nodes_result=self.wait_nodes())

    def restore(self, plan: MutationPlan) -> ApplyResult:
        """Scale every planned group back to its previous replica count.

        Errors are logged and never raised.
        """
        if not plan:
            return ApplyResult()

        logger.info("Restoring machinesets to previous state")
        jobs = {
            name: partial(self._scale_group, name, mutation, mutation.previous_replicas, False)
            for name, mutation in plan.items()
        }
        group_results = self._fan_out(jobs)
        try:
            nodes_result = self.wait_nodes()
        except K8sError as e:
            logger.warning("Failed waiting for nodes after restore: %s", e)
            nodes_result = WaitResult(
                status=WaitStatus.FAILED, message=str(e), elapsed_seconds=0, attempts=0
            )
        return ApplyResult(group_results=group_results, nodes_result=nodes_result)
