"""Cluster autoscaler resources and the demand-generating batch job.

The autoscaler strategy does not scale MachineSets itself. It creates a
MachineAutoscaler per planned MachineSet (bounded by the planned target),
a ClusterAutoscaler capping the total node count, and then a large batch
job whose pending pods make the autoscaler add capacity.

Manifests are rendered from the Jinja2 templates shipped in
``scalebench/templates``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, select_autoescape

from scalebench._constants import (
    AUTOSCALING_GROUP,
    CLUSTER_AUTOSCALER_VERSION,
    MACHINE_AUTOSCALER_VERSION,
    MACHINE_NAMESPACE,
)
from scalebench.config.schema import AutoscalerConfig
from scalebench.k8s.client import K8sClient, K8sError

from .types import MutationPlan, utc_now

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


class ManifestRenderer:
    """Renders Jinja2 templates into Kubernetes manifest dicts."""

    def __init__(self, template_dir: Path | None = None):
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATES_DIR)),
            autoescape=select_autoescape(["yaml", "yml", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, template_name: str, context: dict[str, Any]) -> str:
        """Render a template to YAML text."""
        return self.env.get_template(template_name).render(**context)

    def render_manifest(self, template_name: str, context: dict[str, Any]) -> dict[str, Any]:
        """Render a template and parse it into a manifest dict."""
        return yaml.safe_load(self.render(template_name, context))


class AutoscalerResources:
    """Creates and deletes the autoscaler objects and the batch job."""

    def __init__(
        self,
        client: K8sClient,
        settings: AutoscalerConfig | None = None,
        renderer: ManifestRenderer | None = None,
    ):
        self.client = client
        self.settings = settings or AutoscalerConfig()
        self.renderer = renderer or ManifestRenderer()

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def machine_autoscaler_manifest(self, machine_set: str, max_replicas: int) -> dict[str, Any]:
        return self.renderer.render_manifest(
            "machineautoscaler.yaml.j2",
            {
                "machine_set": machine_set,
                "namespace": MACHINE_NAMESPACE,
                "min_replicas": self.settings.min_replicas,
                "max_replicas": max_replicas,
            },
        )

    def cluster_autoscaler_manifest(self, max_nodes_total: int) -> dict[str, Any]:
        return self.renderer.render_manifest(
            "clusterautoscaler.yaml.j2",
            {"name": self.settings.cluster_autoscaler_name, "max_nodes_total": max_nodes_total},
        )

    def batch_job_manifest(self) -> dict[str, Any]:
        s = self.settings
        return self.renderer.render_manifest(
            "batch-job.yaml.j2",
            {
                "namespace": s.job_namespace,
                "completions": s.job_parallelism,
                "parallelism": s.job_parallelism,
                "backoff_limit": s.job_backoff_limit,
                "image": s.job_image,
                "sleep_seconds": s.job_sleep_seconds,
                "cpu": s.job_cpu,
                "memory": s.job_memory,
            },
        )

    # ------------------------------------------------------------------
    # Setup (errors propagate)
    # ------------------------------------------------------------------

    def create_machine_autoscalers(self, plan: MutationPlan) -> None:
        """Create one MachineAutoscaler per planned MachineSet.

        Raises:
            K8sResourceError: If a MachineAutoscaler cannot be created
        """
        for name in sorted(plan):
            manifest = self.machine_autoscaler_manifest(name, plan[name].target_replicas)
            if self.client.create_custom_object(manifest):
                logger.info("MachineAutoscaler created: %s", name)
            else:
                logger.info("MachineAutoscaler %s already exists", name)

    def create_cluster_autoscaler(self, max_nodes_total: int) -> None:
        """Create the ClusterAutoscaler.

        Raises:
            K8sResourceError: If it cannot be created
        """
        name = self.settings.cluster_autoscaler_name
        if self.client.create_custom_object(self.cluster_autoscaler_manifest(max_nodes_total)):
            logger.info("ClusterAutoscaler created: %s (maxNodesTotal=%d)", name, max_nodes_total)
        else:
            logger.info("ClusterAutoscaler %s already exists", name)

    def create_batch_job(self) -> tuple[str, datetime]:
        """Create the demand-generating batch job.

        Returns:
            Tuple of (job name, trigger time). The trigger time is taken just
            before the create call and truncated to the second.

        Raises:
            K8sResourceError: If the job cannot be created
        """
        manifest = self.batch_job_manifest()
        trigger_time = utc_now()
        job_name = self.client.create_job(manifest)
        logger.info("Job created: %s", job_name)
        return job_name, trigger_time

    # ------------------------------------------------------------------
    # Cleanup (errors logged)
    # ------------------------------------------------------------------

    def delete_machine_autoscalers(self, plan: MutationPlan) -> None:
        for name in sorted(plan):
            try:
                deleted = self.client.delete_custom_object(
                    AUTOSCALING_GROUP,
                    MACHINE_AUTOSCALER_VERSION,
                    "machineautoscalers",
                    name,
                    namespace=MACHINE_NAMESPACE,
                )
            except K8sError as e:
                logger.warning("Failed to delete MachineAutoscaler %s: %s", name, e)
                continue
            if deleted:
                logger.info("MachineAutoscaler %s deleted", name)
            else:
                logger.info("MachineAutoscaler %s not found", name)

    def delete_cluster_autoscaler(self) -> None:
        name = self.settings.cluster_autoscaler_name
        try:
            deleted = self.client.delete_custom_object(
                AUTOSCALING_GROUP, CLUSTER_AUTOSCALER_VERSION, "clusterautoscalers", name
            )
        except K8sError as e:
            logger.warning("Failed to delete ClusterAutoscaler %s: %s", name, e)
            return
        if deleted:
            logger.info("ClusterAutoscaler %s deleted", name)
        else:
            logger.info("ClusterAutoscaler %s not found", name)

    def delete_batch_job(self, job_name: str) -> None:
        namespace = self.settings.job_namespace
        try:
            deleted = self.client.delete_job(job_name, namespace)
        except K8sError as e:
            logger.warning("Error deleting Job %s: %s", job_name, e)
            return
        if deleted:
            logger.info("Job %s deleted in namespace %s", job_name, namespace)
        else:
            logger.info("Job %s not found in namespace %s", job_name, namespace)
