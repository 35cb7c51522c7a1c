"""Worker-scale scenarios.

Three strategies share one lifecycle (``Idle -> PlanComputed -> Mutating ->
Converging -> Measuring -> Restoring -> Done``) and differ only in how the
cluster is mutated and which time anchors the latencies:

- ``BaseScenario``: scales MachineSets directly; anchored per MachineSet
  at its update time.
- ``AutoScalerScenario``: lets the cluster autoscaler scale in response to
  a saturating batch job; anchored at job creation.
- ``RosaScenario``: edits the managed worker pool through the ``rosa``
  CLI; anchored at the CLI invocation (or job creation when autoscaling).

When the request carries a scale event epoch, every strategy skips the
mutation and measures the machines created after that epoch.

Usage::

    from scalebench.workerscale.scenarios import build_request, get_scenario

    scenario = get_scenario(config, client, indexer)
    result = scenario.orchestrate(build_request(config, uuid))
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

from scalebench.config.schema import ScaleBenchConfig
from scalebench.k8s.client import K8sClient, K8sError, get_k8s_client
from scalebench.k8s.wait import (
    WaitResult,
    wait_for_capi_machine_sets,
    wait_for_worker_machine_sets,
)
from scalebench.measurements.node_latency import NodeLatencyMeasurement, NodeWatcher
from scalebench.metrics.correlator import calculate_metrics, finalize_metrics
from scalebench.metrics.storage import LatencyIndexer

from .autoscaler import AutoscalerResources
from .driver import ApplyResult, ScaleDriver
from .inventory import (
    CAPIInventory,
    MachineAPIInventory,
    MachineInventory,
    discard_previous_machines,
    get_hosted_cluster_namespace,
    get_machine_sets,
)
from .managed import ManagedCliError, ManagedPoolEditor, PoolBounds, RosaCli
from .planner import plan_allocation
from .types import MachineRecord, MutationPlan, ScaleRequest, ScaleResult, ScenarioState

logger = logging.getLogger(__name__)


class ScaleSetupError(Exception):
    """Raised when a scenario cannot start; nothing has been mutated yet."""

    pass


def build_request(config: ScaleBenchConfig, uuid: str) -> ScaleRequest:
    """Build a ScaleRequest from the resolved configuration."""
    return ScaleRequest(
        uuid=uuid,
        additional_worker_nodes=config.scale.additional_worker_nodes,
        metadata=dict(config.metadata),
        gc=config.scale.gc,
        scale_event_epoch=config.scale.scale_event_epoch,
        autoscaler_enabled=config.scale.autoscaler_enabled,
        max_replicas_per_group=config.scale.max_replicas_per_group,
    )


class Scenario(Protocol):
    """A worker-scale strategy."""

    name: str

    def orchestrate(self, request: ScaleRequest) -> ScaleResult: ...


class _ScenarioBase:
    """Plumbing shared by every strategy."""

    name = "base"

    def __init__(
        self,
        config: ScaleBenchConfig,
        client: K8sClient,
        indexer: LatencyIndexer,
        measurement: NodeLatencyMeasurement | None = None,
    ):
        self.config = config
        self.client = client
        self.indexer = indexer
        self.measurement = measurement or NodeWatcher(client)
        self.driver = ScaleDriver(
            client,
            timeout_seconds=config.timeouts.max_wait_seconds,
            poll_interval=config.timeouts.poll_interval_seconds,
        )

    def _new_result(self, request: ScaleRequest) -> ScaleResult:
        result = ScaleResult(uuid=request.uuid, scenario=self.name)
        result.transition(ScenarioState.IDLE)
        return result

    def _plan(self, request: ScaleRequest, result: ScaleResult) -> MutationPlan:
        plan = plan_allocation(
            get_machine_sets(self.client),
            request.additional_worker_nodes,
            request.max_replicas_per_group,
        )
        for name, mutation in sorted(plan.items()):
            logger.info(
                "MachineSet %s: %d -> %d replicas",
                name,
                mutation.previous_replicas,
                mutation.target_replicas,
            )
        result.plan = plan
        result.transition(ScenarioState.PLAN_COMPUTED)
        return plan

    def _record_apply(self, result: ScaleResult, applied: ApplyResult) -> None:
        result.group_results = applied.group_results
        result.nodes_result = applied.nodes_result
        if applied.failed_groups:
            logger.warning("MachineSets that did not converge: %s", ", ".join(applied.failed_groups))

    def _measure(
        self,
        request: ScaleRequest,
        result: ScaleResult,
        machines: dict[str, MachineRecord],
        ami_id: str,
        scale_event_epoch: int = 0,
    ) -> None:
        """Correlate new machines with node signals and index the results."""
        result.transition(ScenarioState.MEASURING)
        result.ami_id = ami_id
        records, quantiles = calculate_metrics(
            result.plan,
            machines,
            self.measurement.get_metrics(),
            uuid=request.uuid,
            ami_id=ami_id,
            scale_event_epoch=scale_event_epoch,
            job_name=self.config.output.job_name,
            metadata=request.metadata,
        )
        logger.info("Measured %d of %d new machines", len(records), len(machines))
        result.records = records
        result.quantiles = quantiles
        result.indexed = finalize_metrics(records, quantiles, self.indexer, self.config.output.job_name)

    def _nothing_to_scale(self, result: ScaleResult) -> ScaleResult:
        logger.info("No additional workers planned, nothing to scale")
        result.transition(ScenarioState.DONE)
        return result

    def _measure_epoch(
        self,
        request: ScaleRequest,
        result: ScaleResult,
        inventory: MachineInventory,
        wait_fn: Callable[[], WaitResult] | None = None,
    ) -> ScaleResult:
        """Measure an external scale event without mutating anything."""
        logger.info(
            "Scale event epoch %d specified, calculating node latencies without scaling",
            request.scale_event_epoch,
        )
        result.transition(ScenarioState.PLAN_COMPUTED)
        self.measurement.start()
        try:
            result.transition(ScenarioState.CONVERGING)
            result.nodes_result = (wait_fn or self.driver.wait_nodes)()
            machines, ami_id = inventory.list_machines(request.scale_event_epoch)
        finally:
            self.measurement.stop()
        self._measure(request, result, machines, ami_id, request.scale_event_epoch)
        result.transition(ScenarioState.DONE)
        return result


class BaseScenario(_ScenarioBase):
    """Scales MachineSets directly."""

    name = "base"

    def orchestrate(self, request: ScaleRequest) -> ScaleResult:
        result = self._new_result(request)
        inventory = MachineAPIInventory(self.client)
        if request.epoch_mode:
            return self._measure_epoch(request, result, inventory)

        plan = self._plan(request, result)
        if not plan:
            return self._nothing_to_scale(result)
        previous, _ = inventory.list_machines()

        self.measurement.start()
        try:
            result.transition(ScenarioState.MUTATING)
            try:
                applied = self.driver.apply(plan)
            finally:
                self.measurement.stop()
            result.transition(ScenarioState.CONVERGING)
            self._record_apply(result, applied)

            scaled, ami_id = inventory.list_machines()
            self._measure(request, result, discard_previous_machines(previous, scaled), ami_id)
        finally:
            if request.gc:
                result.transition(ScenarioState.RESTORING)
                self.driver.restore(plan)
        result.transition(ScenarioState.DONE)
        return result


class AutoScalerScenario(_ScenarioBase):
    """Lets the cluster autoscaler scale MachineSets under synthetic load."""

    name = "autoscaler"

    def __init__(
        self,
        config: ScaleBenchConfig,
        client: K8sClient,
        indexer: LatencyIndexer,
        measurement: NodeLatencyMeasurement | None = None,
        resources: AutoscalerResources | None = None,
    ):
        super().__init__(config, client, indexer, measurement)
        self.resources = resources or AutoscalerResources(client, config.autoscaler)

    def _cleanup(self, plan: MutationPlan, job_name: str) -> None:
        self.resources.delete_cluster_autoscaler()
        self.resources.delete_machine_autoscalers(plan)
        if job_name:
            self.resources.delete_batch_job(job_name)

    def orchestrate(self, request: ScaleRequest) -> ScaleResult:
        result = self._new_result(request)
        inventory = MachineAPIInventory(self.client)
        if request.epoch_mode:
            return self._measure_epoch(request, result, inventory)

        plan = self._plan(request, result)
        if not plan:
            return self._nothing_to_scale(result)
        previous, _ = inventory.list_machines()

        job_name = ""
        self.measurement.start()
        try:
            result.transition(ScenarioState.MUTATING)
            try:
                self.resources.create_machine_autoscalers(plan)
                self.resources.create_cluster_autoscaler(
                    len(previous) + request.additional_worker_nodes
                )
                job_name, trigger_time = self.resources.create_batch_job()
                logger.info(
                    "Waiting %ds for the autoscaler to react",
                    self.config.timeouts.autoscaler_warmup_seconds,
                )
                time.sleep(self.config.timeouts.autoscaler_warmup_seconds)
                result.transition(ScenarioState.CONVERGING)
                applied = self.driver.wait_for_groups(plan, trigger_time)
            finally:
                self.measurement.stop()
            self._record_apply(result, applied)

            scaled, ami_id = inventory.list_machines()
            self._measure(request, result, discard_previous_machines(previous, scaled), ami_id)
        finally:
            # Autoscaler objects and the job are removed on every exit
            result.transition(ScenarioState.RESTORING)
            self._cleanup(plan, job_name)
            if request.gc:
                self.driver.restore(plan)
        result.transition(ScenarioState.DONE)
        return result


class RosaScenario(_ScenarioBase):
    """Scales the managed worker pool through the ``rosa`` CLI."""

    name = "rosa"

    def __init__(
        self,
        config: ScaleBenchConfig,
        client: K8sClient,
        indexer: LatencyIndexer,
        measurement: NodeLatencyMeasurement | None = None,
        cli: ManagedPoolEditor | None = None,
        mc_client: K8sClient | None = None,
        resources: AutoscalerResources | None = None,
    ):
        super().__init__(config, client, indexer, measurement)
        self.cli = cli or RosaCli(login_env=config.managed.login_env)
        self.mc_client = mc_client
        self.resources = resources or AutoscalerResources(client, config.autoscaler)

    def _resolve_cluster(self) -> tuple[str, MachineInventory, Callable[[], WaitResult]]:
        """Find the cluster ID, its machine inventory and its worker wait.

        Raises:
            ScaleSetupError: If the hosted cluster namespace cannot be found
        """
        timeouts = self.config.timeouts
        cluster_id = self.client.get_cluster_id()

        if not self.config.managed.hcp:

            def wait_workers() -> WaitResult:
                return wait_for_worker_machine_sets(
                    self.client, timeouts.max_wait_seconds, timeouts.poll_interval_seconds
                )

            return cluster_id, MachineAPIInventory(self.client), wait_workers

        # Hosted control plane: ClusterVersion carries the external ID
        cluster_id = self.cli.describe_cluster_id(cluster_id)
        mc_client = self.mc_client or get_k8s_client(kubeconfig=self.config.managed.mc_kubeconfig)
        namespace = get_hosted_cluster_namespace(mc_client, cluster_id)
        if not namespace:
            raise ScaleSetupError(f"No hosted cluster namespace for {cluster_id} on the management cluster")
        logger.info("Hosted cluster %s found in namespace %s", cluster_id, namespace)

        def wait_capi() -> WaitResult:
            return wait_for_capi_machine_sets(
                mc_client, cluster_id, namespace, timeouts.max_wait_seconds, timeouts.poll_interval_seconds
            )

        return cluster_id, CAPIInventory(mc_client, cluster_id, namespace), wait_capi

    def _wait_workers(self, wait_fn: Callable[[], WaitResult], what: str) -> WaitResult:
        logger.info("Waiting for the machinesets to %s", what)
        outcome = wait_fn()
        if outcome.ready:
            logger.info(outcome.message)
        else:
            logger.warning("Error waiting for MachineSets to %s: %s", what, outcome.message)
        return outcome

    def orchestrate(self, request: ScaleRequest) -> ScaleResult:
        result = self._new_result(request)
        self.cli.verify()
        cluster_id, inventory, wait_fn = self._resolve_cluster()
        if request.epoch_mode:
            return self._measure_epoch(request, result, inventory, wait_fn)

        timeouts = self.config.timeouts
        pool = self.config.managed.machine_pool
        autoscaling = request.autoscaler_enabled

        # The managed service decides which MachineSets grow: the plan stays empty
        result.transition(ScenarioState.PLAN_COMPUTED)
        if request.additional_worker_nodes == 0:
            return self._nothing_to_scale(result)
        previous, _ = inventory.list_machines()
        prev_count = len(previous)

        job_name = ""
        edited = False
        self.measurement.start()
        try:
            result.transition(ScenarioState.MUTATING)
            try:
                trigger_time = self.cli.edit_machine_pool(
                    cluster_id,
                    pool,
                    PoolBounds(prev_count, prev_count + request.additional_worker_nodes, autoscaling),
                )
                edited = True
                time.sleep(timeouts.managed_settle_seconds)
                if autoscaling:
                    job_name, trigger_time = self.resources.create_batch_job()
                    time.sleep(timeouts.managed_autoscaler_warmup_seconds)
                result.transition(ScenarioState.CONVERGING)
                result.group_results[pool] = self._wait_workers(wait_fn, "be ready")
            finally:
                self.measurement.stop()

            scaled, ami_id = inventory.list_machines()
            self._measure(
                request,
                result,
                discard_previous_machines(previous, scaled),
                ami_id,
                int(trigger_time.timestamp()),
            )
        finally:
            if request.gc and edited:
                result.transition(ScenarioState.RESTORING)
                self._restore(cluster_id, pool, prev_count, autoscaling, job_name, wait_fn)
            elif job_name:
                self.resources.delete_batch_job(job_name)
        result.transition(ScenarioState.DONE)
        return result

    def _restore(
        self,
        cluster_id: str,
        pool: str,
        prev_count: int,
        autoscaling: bool,
        job_name: str,
        wait_fn: Callable[[], WaitResult],
    ) -> None:
        logger.info("Restoring machine pool to previous state")
        edited = True
        try:
            self.cli.edit_machine_pool(cluster_id, pool, PoolBounds(prev_count, prev_count, autoscaling))
            time.sleep(self.config.timeouts.managed_settle_seconds)
        except ManagedCliError as e:
            logger.warning("Failed to restore machine pool %s: %s", pool, e)
            edited = False
        if job_name:
            self.resources.delete_batch_job(job_name)
            if edited:
                time.sleep(self.config.timeouts.managed_autoscaler_warmup_seconds)
        if edited:
            try:
                self._wait_workers(wait_fn, "scale down")
            except K8sError as e:
                logger.warning("Failed waiting for the machine pool to scale down: %s", e)


def get_scenario(
    config: ScaleBenchConfig,
    client: K8sClient,
    indexer: LatencyIndexer,
    measurement: NodeLatencyMeasurement | None = None,
) -> Scenario:
    """Factory: return the scenario selected by the configuration.

    Managed clusters always go through the managed CLI, even when the
    autoscaler is requested; otherwise the autoscaler flag picks between
    the autoscaler and direct strategies.
    """
    name = config.scenario_name()
    if name == "rosa":
        return RosaScenario(config, client, indexer, measurement)
    elif name == "autoscaler":
        return AutoScalerScenario(config, client, indexer, measurement)
    elif name == "base":
        return BaseScenario(config, client, indexer, measurement)
    else:
        raise ValueError(f"Unknown scenario: {name}")
