"""Kubernetes client module for scalebench."""

from .client import (
    K8sClient,
    K8sConnectionError,
    K8sContext,
    K8sError,
    K8sNotFoundError,
    K8sResourceError,
    get_k8s_client,
)
from .wait import (
    WaitResult,
    WaitStatus,
    wait_for_capi_machine_sets,
    wait_for_condition,
    wait_for_machine_set_ready,
    wait_for_nodes_ready,
    wait_for_worker_machine_sets,
)

__all__ = [
    # Client
    "K8sClient",
    "K8sContext",
    "get_k8s_client",
    # Errors
    "K8sError",
    "K8sConnectionError",
    "K8sResourceError",
    "K8sNotFoundError",
    # Wait
    "WaitResult",
    "WaitStatus",
    "wait_for_condition",
    "wait_for_machine_set_ready",
    "wait_for_nodes_ready",
    "wait_for_worker_machine_sets",
    "wait_for_capi_machine_sets",
]
