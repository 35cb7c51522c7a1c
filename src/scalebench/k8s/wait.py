"""Wait-for-ready logic for nodes and machine sets.

Every wait polls at a fixed interval until its condition holds or the
timeout elapses; a timeout is reported in the result, never raised.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from scalebench._constants import (
    CAPI_CLUSTER_NAME_LABEL,
    CAPI_GROUP,
    CAPI_VERSION,
    WORKER_POOL_LABEL,
)

from .client import K8sClient, K8sNotFoundError

logger = logging.getLogger(__name__)


class WaitStatus(Enum):
    """Status of a wait operation."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class WaitResult:
    """Result of a wait operation."""

    status: WaitStatus
    message: str
    elapsed_seconds: float
    attempts: int

    @property
    def ready(self) -> bool:
        return self.status == WaitStatus.READY


def wait_for_condition(
    check_fn: Callable[[], tuple[bool, str]],
    timeout_seconds: float = 300,
    poll_interval: float = 5,
    description: str = "condition",
    fatal: tuple[type[BaseException], ...] = (),
) -> WaitResult:
    """Generic wait for a condition to be true.

    Args:
        check_fn: Function that returns (success, message)
        timeout_seconds: Maximum time to wait
        poll_interval: Seconds between checks
        description: Description for logging
        fatal: Exception types that abort the wait instead of being retried

    Returns:
        WaitResult with outcome
    """
    start_time = time.time()
    attempts = 0

    while True:
        attempts += 1
        elapsed = time.time() - start_time

        try:
            success, message = check_fn()
            if success:
                return WaitResult(
                    status=WaitStatus.READY,
                    message=message,
                    elapsed_seconds=elapsed,
                    attempts=attempts,
                )
        except fatal:
            raise
        except Exception as e:
            message = str(e)

        logger.debug("Waiting for %s: %s", description, message)

        if elapsed >= timeout_seconds:
            return WaitResult(
                status=WaitStatus.TIMEOUT,
                message=f"Timeout after {int(elapsed)}s waiting for {description}: {message}",
                elapsed_seconds=elapsed,
                attempts=attempts,
            )

        time.sleep(poll_interval)


def wait_for_machine_set_ready(
    client: K8sClient,
    name: str,
    replicas: int,
    timeout_seconds: float = 4 * 3600,
    poll_interval: float = 1,
) -> WaitResult:
    """Wait for a MachineSet to report ``replicas`` total and ready replicas.

    Raises:
        K8sNotFoundError: If the MachineSet disappears
    """

    def check() -> tuple[bool, str]:
        ms = client.get_machine_set(name)
        status = ms.get("status", {})
        current = status.get("replicas", 0) or 0
        ready = status.get("readyReplicas", 0) or 0
        if current == ready == replicas:
            return True, f"MachineSet {name} ready ({ready}/{replicas} replicas)"
        return False, f"MachineSet {name} not ready ({ready}/{replicas} replicas, {current} total)"

    return wait_for_condition(
        check,
        timeout_seconds=timeout_seconds,
        poll_interval=poll_interval,
        description=f"machineset {name}",
        fatal=(K8sNotFoundError,),
    )


def wait_for_nodes_ready(
    client: K8sClient,
    timeout_seconds: float = 4 * 3600,
    poll_interval: float = 1,
) -> WaitResult:
    """Wait for every node in the cluster to report Ready.

    Raises:
        K8sNotFoundError: If nodes cannot be listed at all
    """

    def check() -> tuple[bool, str]:
        nodes = client.list_nodes()
        not_ready = [n.metadata.name for n in nodes if not client.is_node_ready(n)]
        if not_ready:
            return False, f"{len(not_ready)}/{len(nodes)} nodes not ready: {', '.join(not_ready[:5])}"
        return True, f"All {len(nodes)} nodes are ready"

    return wait_for_condition(
        check,
        timeout_seconds=timeout_seconds,
        poll_interval=poll_interval,
        description="all nodes ready",
        fatal=(K8sNotFoundError,),
    )


def _all_replicas_ready(machine_sets: list[dict]) -> tuple[bool, str]:
    for ms in machine_sets:
        status = ms.get("status", {})
        current = status.get("replicas", 0) or 0
        ready = status.get("readyReplicas", 0) or 0
        if current != ready:
            name = ms.get("metadata", {}).get("name", "")
            return False, f"MachineSet {name} has {ready}/{current} replicas ready"
    return True, f"All {len(machine_sets)} worker MachineSets reached their replica count"


def wait_for_worker_machine_sets(
    client: K8sClient,
    timeout_seconds: float = 4 * 3600,
    poll_interval: float = 1,
) -> WaitResult:
    """Wait for every worker-pool MachineSet to have all replicas ready."""
    return wait_for_condition(
        lambda: _all_replicas_ready(client.list_machine_sets(label_selector=WORKER_POOL_LABEL)),
        timeout_seconds=timeout_seconds,
        poll_interval=poll_interval,
        description="worker machinesets",
        fatal=(K8sNotFoundError,),
    )


def wait_for_capi_machine_sets(
    client: K8sClient,
    cluster_id: str,
    namespace: str,
    timeout_seconds: float = 4 * 3600,
    poll_interval: float = 1,
) -> WaitResult:
    """Wait for every Cluster API MachineSet of a hosted cluster to be ready.

    Args:
        client: K8sClient connected to the management cluster
        cluster_id: Hosted cluster ID
        namespace: Hosted cluster namespace on the management cluster
    """
    return wait_for_condition(
        lambda: _all_replicas_ready(
            client.list_custom_objects(
                CAPI_GROUP,
                CAPI_VERSION,
                "machinesets",
                namespace=namespace,
                label_selector=f"{CAPI_CLUSTER_NAME_LABEL}={cluster_id}",
            )
        ),
        timeout_seconds=timeout_seconds,
        poll_interval=poll_interval,
        description=f"CAPI machinesets of {cluster_id}",
        fatal=(K8sNotFoundError,),
    )
