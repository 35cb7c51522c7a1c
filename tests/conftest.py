"""Shared fixtures for the scalebench test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from scalebench.config import ScaleBenchConfig

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_config(**overrides) -> ScaleBenchConfig:
    """Create a ScaleBenchConfig with fast timeouts for testing.

    This is the canonical config factory for tests. Prefer this over
    hand-building dicts so that new required fields are handled in one place.
    """
    base: dict = {
        "name": "test-fixture",
        "timeouts": {
            "max_wait_seconds": 5,
            "poll_interval_seconds": 0.01,
            "autoscaler_warmup_seconds": 0,
            "managed_settle_seconds": 0,
            "managed_autoscaler_warmup_seconds": 0,
        },
    }
    base.update(overrides)
    return ScaleBenchConfig(**base)


def machine_set(name: str, replicas: int, ready: int | None = None, role: str = "worker") -> dict:
    """Build a MachineSet dict as returned by CustomObjectsApi."""
    ready = replicas if ready is None else ready
    return {
        "metadata": {
            "name": name,
            "labels": {"machine.openshift.io/cluster-api-machine-role": role},
        },
        "spec": {"replicas": replicas},
        "status": {"replicas": replicas, "readyReplicas": ready},
    }


def machine(
    name: str,
    node_uid: str,
    created: str = "2024-05-01T12:00:30Z",
    ready: str | None = "2024-05-01T12:02:00Z",
    role: str = "worker",
    phase: str = "Running",
    ami: str = "ami-0123",
) -> dict:
    """Build a Machine API Machine dict."""
    conditions = []
    if ready:
        conditions.append({"type": "MachineCreation", "status": "True", "lastTransitionTime": ready})
    return {
        "metadata": {
            "name": name,
            "creationTimestamp": created,
            "labels": {"machine.openshift.io/cluster-api-machine-role": role},
        },
        "spec": {"providerSpec": {"value": {"ami": {"id": ami}}}},
        "status": {
            "phase": phase,
            "nodeRef": {"uid": node_uid, "name": f"node-{node_uid}"},
            "providerStatus": {"conditions": conditions},
        },
    }


@pytest.fixture
def default_config() -> ScaleBenchConfig:
    """A default ScaleBenchConfig for tests that don't care about specifics."""
    return make_config()


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for tests that exercise rosa calls."""
    with patch("subprocess.run") as m:
        m.return_value = MagicMock(
            returncode=0,
            stdout="",
            stderr="",
        )
        yield m


@pytest.fixture
def mock_k8s_client():
    """Pre-configured mock K8sClient for unit tests."""
    client = MagicMock()
    client.test_connectivity.return_value = (True, "Connected")
    client.list_machine_sets.return_value = []
    client.list_machines.return_value = []
    client.list_nodes.return_value = []
    client.is_node_ready.return_value = True
    client.create_custom_object.return_value = True
    client.delete_custom_object.return_value = True
    client.create_job.return_value = "work-queue-abcde"
    client.delete_job.return_value = True
    return client
