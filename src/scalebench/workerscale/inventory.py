"""Resource inspector: provisioning groups and worker machines.

Two machine sources are supported:

- the OpenShift Machine API (``machine.openshift.io``) on the scaled
  cluster itself, and
- the Cluster API (``cluster.x-k8s.io``) on the management cluster of a
  hosted control plane, where the hosted cluster's machines live.

Both return machines as ``{machine name: MachineRecord}`` plus the image ID
of the first machine seen, so that snapshots can be diffed by name.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from scalebench._constants import (
    CAPI_AWS_GROUP,
    CAPI_AWS_VERSION,
    CAPI_CLUSTER_NAME_LABEL,
    CAPI_GROUP,
    CAPI_VERSION,
    MACHINE_ROLE_LABEL,
)
from scalebench.k8s.client import K8sClient, K8sResourceError

from .types import MachineRecord

logger = logging.getLogger(__name__)

# Roles that are never counted as scalable worker capacity
_EXCLUDED_GROUP_ROLES = ("infra", "workload")
_EXCLUDED_MACHINE_ROLES = ("master", "infra", "workload")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Kubernetes RFC 3339 timestamp into an aware UTC datetime."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _decode_blob(blob: Any, what: str) -> dict[str, Any]:
    """Decode an opaque provider payload, which may arrive as a dict or JSON text."""
    if blob is None:
        return {}
    if isinstance(blob, dict):
        return blob
    if isinstance(blob, (str, bytes)):
        try:
            decoded = json.loads(blob)
        except json.JSONDecodeError as e:
            logger.error("Error decoding %s: %s", what, e)
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _condition_time(conditions: list[dict[str, Any]] | None, cond_type: str) -> datetime | None:
    for condition in conditions or []:
        if condition.get("type") == cond_type and condition.get("status") == "True":
            return parse_timestamp(condition.get("lastTransitionTime"))
    return None


def _after_epoch(created: datetime | None, since_epoch: int) -> bool:
    return created is not None and int(created.timestamp()) > since_epoch


def get_machine_sets(client: K8sClient) -> dict[int, list[str]]:
    """Read worker MachineSets grouped by their desired replica count.

    Returns:
        Replica count -> sorted MachineSet names
    """
    groups: dict[int, list[str]] = {}
    for ms in client.list_machine_sets():
        metadata = ms.get("metadata", {})
        role = metadata.get("labels", {}).get(MACHINE_ROLE_LABEL)
        if role in _EXCLUDED_GROUP_ROLES:
            continue
        replicas = int(ms.get("spec", {}).get("replicas", 0) or 0)
        groups.setdefault(replicas, []).append(metadata.get("name", ""))

    for names in groups.values():
        names.sort()
    logger.debug("MachineSets by replica count: %s", groups)
    return groups


def discard_previous_machines(
    previous: dict[str, MachineRecord], current: dict[str, MachineRecord]
) -> dict[str, MachineRecord]:
    """Return the machines in ``current`` that were not in ``previous``."""
    return {name: m for name, m in current.items() if name not in previous}


class MachineInventory(Protocol):
    """Source of worker machine snapshots."""

    def list_machines(self, since_epoch: int = 0) -> tuple[dict[str, MachineRecord], str]: ...


class MachineAPIInventory:
    """Worker machines from the OpenShift Machine API."""

    def __init__(self, client: K8sClient):
        self.client = client

    def list_machines(self, since_epoch: int = 0) -> tuple[dict[str, MachineRecord], str]:
        """List running worker machines created after ``since_epoch``.

        Args:
            since_epoch: Unix seconds; only machines created strictly later
                are returned

        Returns:
            Tuple of (machine name -> MachineRecord, AMI ID)

        Raises:
            K8sResourceError: If machines cannot be listed
        """
        machines: dict[str, MachineRecord] = {}
        ami_id = ""

        for machine in self.client.list_machines():
            metadata = machine.get("metadata", {})
            name = metadata.get("name", "")
            labels = metadata.get("labels", {}) or {}
            if MACHINE_ROLE_LABEL not in labels or labels[MACHINE_ROLE_LABEL] in _EXCLUDED_MACHINE_ROLES:
                continue

            status = machine.get("status", {}) or {}
            created = parse_timestamp(metadata.get("creationTimestamp"))
            if status.get("phase") != "Running" or not _after_epoch(created, since_epoch):
                continue

            node_uid = (status.get("nodeRef") or {}).get("uid", "")
            if not node_uid:
                logger.debug("Machine %s has no node reference yet, skipping", name)
                continue

            if not ami_id:
                provider_spec = _decode_blob(
                    machine.get("spec", {}).get("providerSpec", {}).get("value"),
                    f"providerSpec of {name}",
                )
                ami_id = (provider_spec.get("ami") or {}).get("id", "") or ""

            provider_status = _decode_blob(status.get("providerStatus"), f"providerStatus of {name}")
            machines[name] = MachineRecord(
                name=name,
                node_uid=node_uid,
                creation_time=created,  # type: ignore[arg-type]
                ready_time=_condition_time(provider_status.get("conditions"), "MachineCreation"),
            )

        logger.debug("Machines: %s with amiID: %s", sorted(machines), ami_id)
        return machines, ami_id


def get_hosted_cluster_namespace(client: K8sClient, cluster_id: str) -> str:
    """Find a hosted cluster's namespace on its management cluster.

    Several namespaces may embed the cluster ID; the control plane namespace
    is the longest of them.
    """
    namespace = ""
    for name in client.list_namespaces():
        if cluster_id in name and len(name) > len(namespace):
            namespace = name
    return namespace


class CAPIInventory:
    """Worker machines of a hosted cluster, read from its management cluster."""

    def __init__(self, client: K8sClient, cluster_id: str, namespace: str):
        """Initialize CAPI inventory.

        Args:
            client: K8sClient connected to the management cluster
            cluster_id: Hosted cluster ID (``cluster.x-k8s.io/cluster-name``)
            namespace: Hosted cluster namespace on the management cluster
        """
        self.client = client
        self.cluster_id = cluster_id
        self.namespace = namespace

    def get_ami_id(self) -> str:
        """Image ID from the first AWSMachineTemplate in the namespace."""
        try:
            templates = self.client.list_custom_objects(
                CAPI_AWS_GROUP, CAPI_AWS_VERSION, "awsmachinetemplates", namespace=self.namespace
            )
        except K8sResourceError as e:
            logger.error("Error getting AMI ID from AWSMachineTemplates: %s", e)
            return ""
        if not templates:
            logger.error("No AWSMachineTemplates found in namespace %s", self.namespace)
            return ""
        spec = templates[0].get("spec", {}).get("template", {}).get("spec", {})
        return (spec.get("ami") or {}).get("id", "") or ""

    def list_machines(self, since_epoch: int = 0) -> tuple[dict[str, MachineRecord], str]:
        """List running CAPI machines of the hosted cluster created after ``since_epoch``."""
        ami_id = self.get_ami_id()
        machines: dict[str, MachineRecord] = {}

        items = self.client.list_custom_objects(
            CAPI_GROUP,
            CAPI_VERSION,
            "machines",
            namespace=self.namespace,
            label_selector=f"{CAPI_CLUSTER_NAME_LABEL}={self.cluster_id}",
        )
        for machine in items:
            metadata = machine.get("metadata", {})
            name = metadata.get("name", "")
            status = machine.get("status", {}) or {}
            created = parse_timestamp(metadata.get("creationTimestamp"))
            # CAPI reports phases in either case depending on version
            if str(status.get("phase", "")).lower() != "running":
                continue
            if not _after_epoch(created, since_epoch):
                continue
            node_uid = (status.get("nodeRef") or {}).get("uid", "")
            if not node_uid:
                continue
            machines[name] = MachineRecord(
                name=name,
                node_uid=node_uid,
                creation_time=created,  # type: ignore[arg-type]
                ready_time=_condition_time(status.get("conditions"), "Ready"),
            )

        logger.debug("CAPI machines: %s with amiID: %s", sorted(machines), ami_id)
        return machines, ami_id
