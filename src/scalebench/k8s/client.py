"""Kubernetes client for scalebench.

Wraps the official kubernetes-client. Machine API, Cluster API and
autoscaler objects are served by CRDs, so they go through
``CustomObjectsApi`` and come back as plain dicts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from scalebench._constants import MACHINE_API_GROUP, MACHINE_API_VERSION, MACHINE_NAMESPACE

logger = logging.getLogger(__name__)


class K8sError(Exception):
    """Base exception for Kubernetes errors."""

    pass


class K8sConnectionError(K8sError):
    """Raised when Kubernetes cluster is unreachable."""

    pass


class K8sResourceError(K8sError):
    """Raised when resource operations fail."""

    pass


class K8sNotFoundError(K8sResourceError):
    """Raised when the resource, or the API serving it, does not exist."""

    pass


@dataclass
class K8sContext:
    """Kubernetes context information."""

    name: str
    cluster: str
    user: str
    namespace: str | None


def _resource_error(e: ApiException, what: str) -> K8sResourceError:
    """Translate an ApiException, keeping 404 distinguishable from transient errors."""
    if e.status == 404:
        return K8sNotFoundError(f"{what}: not found")
    return K8sResourceError(f"{what}: {e.reason or e}")


class K8sClient:
    """Kubernetes client for node, machine and autoscaler operations."""

    def __init__(self, context: str = "", kubeconfig: str = ""):
        """Initialize Kubernetes client.

        Args:
            context: Kubernetes context (empty = current)
            kubeconfig: Path to a kubeconfig file. When set, the client gets
                its own ApiClient so that two clusters (e.g. a hosted cluster
                and its management cluster) can be used side by side.
        """
        self.context_name = context
        self.kubeconfig = kubeconfig
        api_client = None

        try:
            if kubeconfig:
                api_client = config.new_client_from_config(
                    config_file=kubeconfig, context=context or None
                )
            elif context:
                config.load_kube_config(context=context)
            else:
                # Try in-cluster config first, fall back to kubeconfig
                try:
                    config.load_incluster_config()
                except config.ConfigException:
                    config.load_kube_config()
        except Exception as e:
            raise K8sConnectionError(f"Failed to load Kubernetes config: {e}")  # noqa: B904

        self._api_client = api_client
        self._core_v1 = client.CoreV1Api(api_client)
        self._batch_v1 = client.BatchV1Api(api_client)
        self._custom = client.CustomObjectsApi(api_client)

    @property
    def core_v1(self) -> client.CoreV1Api:
        """CoreV1Api bound to this client's cluster (used by node watches)."""
        return self._core_v1

    def get_current_context(self) -> K8sContext | None:
        """Get information about the current context."""
        try:
            contexts, active = config.list_kube_config_contexts(
                config_file=self.kubeconfig or None
            )
            if active:
                ctx = active.get("context", {})
                return K8sContext(
                    name=active.get("name", ""),
                    cluster=ctx.get("cluster", ""),
                    user=ctx.get("user", ""),
                    namespace=ctx.get("namespace"),
                )
        except Exception:
            logger.debug("Could not read kubeconfig contexts", exc_info=True)
        return None

    def test_connectivity(self) -> tuple[bool, str]:
        """Test connectivity to the Kubernetes cluster.

        Returns:
            Tuple of (success, message)
        """
        try:
            version = client.VersionApi(self._api_client).get_code()
            return True, f"Connected to Kubernetes {version.git_version}"
        except ApiException as e:
            return False, f"API error: {e.reason}"
        except Exception as e:
            return False, f"Connection error: {e}"

    # ------------------------------------------------------------------
    # Nodes and namespaces
    # ------------------------------------------------------------------

    def list_nodes(self) -> list[Any]:
        """List all nodes.

        Raises:
            K8sNotFoundError: If the nodes API is not served
            K8sResourceError: On any other API error
        """
        try:
            return list(self._core_v1.list_node().items)
        except ApiException as e:
            raise _resource_error(e, "Error listing nodes")  # noqa: B904

    @staticmethod
    def is_node_ready(node: Any) -> bool:
        """Check whether a node reports Ready=True."""
        for condition in node.status.conditions or []:
            if condition.type == "Ready" and condition.status == "True":
                return True
        return False

    def list_namespaces(self) -> list[str]:
        """List all namespace names."""
        try:
            return [ns.metadata.name for ns in self._core_v1.list_namespace().items]
        except ApiException as e:
            raise _resource_error(e, "Error listing namespaces")  # noqa: B904

    # ------------------------------------------------------------------
    # Machine API
    # ------------------------------------------------------------------

    def list_machine_sets(self, label_selector: str = "") -> list[dict[str, Any]]:
        """List MachineSets in the machine API namespace."""
        return self.list_custom_objects(
            MACHINE_API_GROUP,
            MACHINE_API_VERSION,
            "machinesets",
            namespace=MACHINE_NAMESPACE,
            label_selector=label_selector,
        )

    def get_machine_set(self, name: str) -> dict[str, Any]:
        """Read a single MachineSet."""
        try:
            return self._custom.get_namespaced_custom_object(
                group=MACHINE_API_GROUP,
                version=MACHINE_API_VERSION,
                namespace=MACHINE_NAMESPACE,
                plural="machinesets",
                name=name,
            )
        except ApiException as e:
            raise _resource_error(e, f"Error getting machineset {name}")  # noqa: B904

    def scale_machine_set(self, name: str, replicas: int) -> None:
        """Set the desired replica count of a MachineSet."""
        try:
            self._custom.patch_namespaced_custom_object(
                group=MACHINE_API_GROUP,
                version=MACHINE_API_VERSION,
                namespace=MACHINE_NAMESPACE,
                plural="machinesets",
                name=name,
                body={"spec": {"replicas": replicas}},
            )
        except ApiException as e:
            raise _resource_error(e, f"Error updating machineset {name}")  # noqa: B904

    def list_machines(self) -> list[dict[str, Any]]:
        """List Machines in the machine API namespace."""
        return self.list_custom_objects(
            MACHINE_API_GROUP,
            MACHINE_API_VERSION,
            "machines",
            namespace=MACHINE_NAMESPACE,
        )

    # ------------------------------------------------------------------
    # Generic custom objects
    # ------------------------------------------------------------------

    def list_custom_objects(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str | None = None,
        label_selector: str = "",
    ) -> list[dict[str, Any]]:
        """List custom objects, namespaced or cluster-scoped."""
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            if namespace:
                result = self._custom.list_namespaced_custom_object(
                    group=group,
                    version=version,
                    namespace=namespace,
                    plural=plural,
                    **kwargs,
                )
            else:
                result = self._custom.list_cluster_custom_object(
                    group=group, version=version, plural=plural, **kwargs
                )
        except ApiException as e:
            raise _resource_error(e, f"Error listing {plural}.{group}")  # noqa: B904
        return list(result.get("items", []))

    def create_custom_object(self, manifest: dict[str, Any]) -> bool:
        """Create a custom object from a manifest.

        The object is namespaced when ``metadata.namespace`` is set and
        cluster-scoped otherwise.

        Returns:
            True if created, False if it already existed
        """
        api_version = manifest.get("apiVersion", "")
        kind = manifest.get("kind", "")
        metadata = manifest.get("metadata", {})
        name = metadata.get("name", "")
        namespace = metadata.get("namespace")

        if "/" not in api_version:
            raise K8sResourceError(f"Invalid apiVersion for custom resource: {api_version}")
        group, version = api_version.split("/", 1)
        plural = self._plural_for(kind)

        try:
            if namespace:
                self._custom.create_namespaced_custom_object(
                    group=group,
                    version=version,
                    namespace=namespace,
                    plural=plural,
                    body=manifest,
                )
            else:
                self._custom.create_cluster_custom_object(
                    group=group, version=version, plural=plural, body=manifest
                )
            return True
        except ApiException as e:
            if e.status == 409:  # Already exists
                return False
            raise K8sResourceError(f"Failed to create {kind}/{name}: {e.reason}")  # noqa: B904

    def delete_custom_object(
        self,
        group: str,
        version: str,
        plural: str,
        name: str,
        namespace: str | None = None,
    ) -> bool:
        """Delete a custom object.

        Returns:
            True if deleted, False if not found
        """
        try:
            if namespace:
                self._custom.delete_namespaced_custom_object(
                    group=group,
                    version=version,
                    namespace=namespace,
                    plural=plural,
                    name=name,
                )
            else:
                self._custom.delete_cluster_custom_object(
                    group=group, version=version, plural=plural, name=name
                )
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(  # noqa: B904
                f"Failed to delete {group}/{version}/{plural}/{name}: {e.reason}"
            )

    @staticmethod
    def _plural_for(kind: str) -> str:
        """Simple pluralization of a resource kind."""
        kind_lower = kind.lower()
        if kind_lower.endswith("s"):
            return kind_lower + "es"
        return kind_lower + "s"

    def get_cluster_id(self) -> str:
        """Read ``spec.clusterID`` of the OpenShift ClusterVersion object."""
        try:
            version = self._custom.get_cluster_custom_object(
                group="config.openshift.io",
                version="v1",
                plural="clusterversions",
                name="version",
            )
        except ApiException as e:
            raise _resource_error(e, "Error fetching cluster version")  # noqa: B904
        cluster_id = version.get("spec", {}).get("clusterID", "")
        if not cluster_id:
            raise K8sResourceError("ClusterVersion 'version' has no spec.clusterID")
        return cluster_id

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(self, manifest: dict[str, Any]) -> str:
        """Create a Job and return its (possibly generated) name."""
        namespace = manifest.get("metadata", {}).get("namespace") or "default"
        try:
            created = self._batch_v1.create_namespaced_job(namespace, manifest)
        except ApiException as e:
            raise K8sResourceError(f"Failed to create job: {e.reason}")  # noqa: B904
        return created.metadata.name

    def delete_job(self, name: str, namespace: str) -> bool:
        """Delete a Job and its pods.

        Returns:
            True if deleted, False if not found
        """
        try:
            self._batch_v1.delete_namespaced_job(
                name,
                namespace,
                body=client.V1DeleteOptions(propagation_policy="Foreground"),
            )
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise K8sResourceError(f"Failed to delete job {name}: {e.reason}")  # noqa: B904


def get_k8s_client(context: str = "", kubeconfig: str = "") -> K8sClient:
    """Create a Kubernetes client.

    Args:
        context: Kubernetes context (empty = current)
        kubeconfig: Kubeconfig path (empty = default loading rules)

    Returns:
        K8sClient instance
    """
    return K8sClient(context=context, kubeconfig=kubeconfig)
