"""Tests for MachineSet and Machine inventory."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

from tests.conftest import machine, machine_set

from scalebench.k8s.client import K8sResourceError
from scalebench.workerscale.inventory import (
    CAPIInventory,
    MachineAPIInventory,
    discard_previous_machines,
    get_hosted_cluster_namespace,
    get_machine_sets,
    parse_timestamp,
)


class TestParseTimestamp:
    """Tests for parse_timestamp()."""

    def test_rfc3339(self):
        assert parse_timestamp("2024-05-01T12:00:30Z") == datetime(
            2024, 5, 1, 12, 0, 30, tzinfo=timezone.utc
        )

    def test_fractional_seconds(self):
        ts = parse_timestamp("2024-05-01T12:00:30.250000Z")
        assert ts is not None
        assert ts.microsecond == 250000

    def test_empty_and_garbage(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
        assert parse_timestamp("yesterday") is None


class TestGetMachineSets:
    """Tests for get_machine_sets()."""

    def test_groups_by_replicas(self, mock_k8s_client):
        mock_k8s_client.list_machine_sets.return_value = [
            machine_set("ms-b", 2),
            machine_set("ms-a", 2),
            machine_set("ms-c", 3),
        ]
        assert get_machine_sets(mock_k8s_client) == {2: ["ms-a", "ms-b"], 3: ["ms-c"]}

    def test_excludes_infra_and_workload(self, mock_k8s_client):
        mock_k8s_client.list_machine_sets.return_value = [
            machine_set("ms-worker", 1),
            machine_set("ms-infra", 3, role="infra"),
            machine_set("ms-workload", 1, role="workload"),
        ]
        assert get_machine_sets(mock_k8s_client) == {1: ["ms-worker"]}


class TestMachineAPIInventory:
    """Tests for MachineAPIInventory.list_machines()."""

    def test_lists_running_workers(self, mock_k8s_client):
        mock_k8s_client.list_machines.return_value = [
            machine("ms-a-x1", "uid-1"),
            machine("master-0", "uid-m", role="master"),
            machine("ms-infra-1", "uid-i", role="infra"),
            machine("ms-a-x2", "uid-2", phase="Provisioning"),
        ]
        machines, ami_id = MachineAPIInventory(mock_k8s_client).list_machines()

        assert list(machines) == ["ms-a-x1"]
        record = machines["ms-a-x1"]
        assert record.node_uid == "uid-1"
        assert record.creation_time == datetime(2024, 5, 1, 12, 0, 30, tzinfo=timezone.utc)
        assert record.ready_time == datetime(2024, 5, 1, 12, 2, 0, tzinfo=timezone.utc)
        assert ami_id == "ami-0123"

    def test_machine_without_role_label_skipped(self, mock_k8s_client):
        m = machine("ms-a-x1", "uid-1")
        m["metadata"]["labels"] = {}
        mock_k8s_client.list_machines.return_value = [m]

        machines, _ = MachineAPIInventory(mock_k8s_client).list_machines()
        assert machines == {}

    def test_since_epoch_is_strict(self, mock_k8s_client):
        created = datetime(2024, 5, 1, 12, 0, 30, tzinfo=timezone.utc)
        mock_k8s_client.list_machines.return_value = [machine("ms-a-x1", "uid-1")]
        inventory = MachineAPIInventory(mock_k8s_client)

        at, _ = inventory.list_machines(int(created.timestamp()))
        before, _ = inventory.list_machines(int(created.timestamp()) - 1)
        assert at == {}
        assert list(before) == ["ms-a-x1"]

    def test_provider_blobs_as_json_strings(self, mock_k8s_client):
        m = machine("ms-a-x1", "uid-1")
        m["spec"]["providerSpec"]["value"] = json.dumps({"ami": {"id": "ami-json"}})
        m["status"]["providerStatus"] = json.dumps(
            {
                "conditions": [
                    {
                        "type": "MachineCreation",
                        "status": "True",
                        "lastTransitionTime": "2024-05-01T12:01:00Z",
                    }
                ]
            }
        )
        mock_k8s_client.list_machines.return_value = [m]

        machines, ami_id = MachineAPIInventory(mock_k8s_client).list_machines()
        assert ami_id == "ami-json"
        assert machines["ms-a-x1"].ready_time == datetime(2024, 5, 1, 12, 1, 0, tzinfo=timezone.utc)

    def test_missing_ready_condition(self, mock_k8s_client):
        """Ready time is per machine and not carried over from the previous one."""
        mock_k8s_client.list_machines.return_value = [
            machine("ms-a-x1", "uid-1"),
            machine("ms-a-x2", "uid-2", ready=None),
        ]
        machines, _ = MachineAPIInventory(mock_k8s_client).list_machines()

        assert machines["ms-a-x1"].ready_time is not None
        assert machines["ms-a-x2"].ready_time is None

    def test_no_node_ref_skipped(self, mock_k8s_client):
        m = machine("ms-a-x1", "uid-1")
        del m["status"]["nodeRef"]
        mock_k8s_client.list_machines.return_value = [m]

        machines, _ = MachineAPIInventory(mock_k8s_client).list_machines()
        assert machines == {}


class TestDiscardPreviousMachines:
    """Tests for discard_previous_machines()."""

    def test_keeps_only_new(self):
        old = MagicMock()
        new = MagicMock()
        result = discard_previous_machines({"m-1": old}, {"m-1": old, "m-2": new})
        assert result == {"m-2": new}


class TestHostedCluster:
    """Tests for hosted control plane lookups."""

    def test_longest_namespace_wins(self, mock_k8s_client):
        mock_k8s_client.list_namespaces.return_value = [
            "default",
            "ocm-staging-abc123",
            "ocm-staging-abc123-my-cluster",
        ]
        assert get_hosted_cluster_namespace(mock_k8s_client, "abc123") == "ocm-staging-abc123-my-cluster"

    def test_no_match(self, mock_k8s_client):
        mock_k8s_client.list_namespaces.return_value = ["default"]
        assert get_hosted_cluster_namespace(mock_k8s_client, "abc123") == ""

    def test_capi_machines(self, mock_k8s_client):
        template = {"spec": {"template": {"spec": {"ami": {"id": "ami-capi"}}}}}
        capi_machine = {
            "metadata": {"name": "workers-x1", "creationTimestamp": "2024-05-01T12:00:30Z"},
            "status": {
                "phase": "Running",
                "nodeRef": {"uid": "uid-1"},
                "conditions": [
                    {"type": "Ready", "status": "True", "lastTransitionTime": "2024-05-01T12:03:00Z"}
                ],
            },
        }

        def list_objects(group, version, plural, namespace=None, label_selector=""):
            return {"awsmachinetemplates": [template], "machines": [capi_machine]}[plural]

        mock_k8s_client.list_custom_objects.side_effect = list_objects
        machines, ami_id = CAPIInventory(mock_k8s_client, "abc123", "ns-abc123").list_machines()

        assert ami_id == "ami-capi"
        assert machines["workers-x1"].ready_time == datetime(2024, 5, 1, 12, 3, 0, tzinfo=timezone.utc)
        machine_call = mock_k8s_client.list_custom_objects.call_args_list[-1]
        assert machine_call.kwargs["label_selector"] == "cluster.x-k8s.io/cluster-name=abc123"

    def test_capi_ami_lookup_failure_is_not_fatal(self, mock_k8s_client):
        def list_objects(group, version, plural, namespace=None, label_selector=""):
            if plural == "awsmachinetemplates":
                raise K8sResourceError("forbidden")
            return []

        mock_k8s_client.list_custom_objects.side_effect = list_objects
        machines, ami_id = CAPIInventory(mock_k8s_client, "abc123", "ns").list_machines()
        assert machines == {}
        assert ami_id == ""
