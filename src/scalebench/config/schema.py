"""Pydantic models for scalebench configuration.

The configuration mirrors the ``workers-scale`` command line: every field
here has a matching CLI flag that overrides the file value.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from scalebench._constants import DEFAULT_METRICS_DIRECTORY, JOB_NAME

# =============================================================================
# Cluster access
# =============================================================================


class KubernetesConfig(BaseModel):
    """Kubernetes connection configuration for the scaled cluster."""

    context: str = ""  # Empty = use current context
    kubeconfig: str = ""  # Empty = default loading rules


# =============================================================================
# Scale request
# =============================================================================


class ScaleSettings(BaseModel):
    """What to scale and how."""

    additional_worker_nodes: int = Field(default=3, ge=0)
    max_replicas_per_group: int | None = Field(
        default=None,
        ge=1,
        description="Never grow a provisioning group past this replica count",
    )
    gc: bool = Field(default=True, description="Restore the cluster to its prior size afterward")
    scale_event_epoch: int = Field(
        default=0,
        ge=0,
        description="Unix seconds of an external scale event; measures without scaling",
    )
    autoscaler_enabled: bool = False


class TimeoutsConfig(BaseModel):
    """Polling bounds and fixed delays for eventually-consistent control loops."""

    max_wait_seconds: int = Field(default=4 * 3600, ge=1)
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    autoscaler_warmup_seconds: int = Field(default=300, ge=0)
    managed_settle_seconds: int = Field(default=60, ge=0)
    managed_autoscaler_warmup_seconds: int = Field(default=120, ge=0)


class AutoscalerConfig(BaseModel):
    """Cluster autoscaler resources and the saturating batch job."""

    min_replicas: int = Field(default=0, ge=0)
    cluster_autoscaler_name: str = "default"
    job_namespace: str = "default"
    job_image: str = "quay.io/quay/busybox:latest"
    job_parallelism: int = Field(default=1000, ge=1)
    job_sleep_seconds: int = Field(default=300, ge=1)
    job_cpu: str = "1000m"
    job_memory: str = "1000Mi"
    job_backoff_limit: int = Field(default=4, ge=0)


class ManagedConfig(BaseModel):
    """Managed control plane (ROSA) settings."""

    enabled: bool = False
    hcp: bool = Field(default=False, description="Hosted control plane cluster")
    mc_kubeconfig: str = Field(default="", description="Management cluster kubeconfig (HCP only)")
    login_env: str = "staging"

    @property
    def machine_pool(self) -> str:
        """Name of the managed worker pool edited through the CLI."""
        return "workers" if self.hcp else "worker"


class OutputConfig(BaseModel):
    """Where latency documents go."""

    metrics_directory: str = DEFAULT_METRICS_DIRECTORY
    job_name: str = JOB_NAME


# =============================================================================
# Root configuration
# =============================================================================


class ScaleBenchConfig(BaseModel):
    """Root scalebench configuration."""

    model_config = ConfigDict(extra="forbid")

    name: str = "workers-scale"
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    scale: ScaleSettings = Field(default_factory=ScaleSettings)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    autoscaler: AutoscalerConfig = Field(default_factory=AutoscalerConfig)
    managed: ManagedConfig = Field(default_factory=ManagedConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be empty")
        return v

    @model_validator(mode="after")
    def validate_managed(self) -> ScaleBenchConfig:
        if self.managed.hcp and not self.managed.enabled:
            raise ValueError("managed.hcp requires managed.enabled")
        if self.managed.hcp and not self.managed.mc_kubeconfig:
            raise ValueError("managed.mc_kubeconfig is required for hosted control plane clusters")
        return self

    def scenario_name(self) -> str:
        """Return the scale strategy this configuration selects."""
        if self.managed.enabled:
            return "rosa"
        if self.scale.autoscaler_enabled:
            return "autoscaler"
        return "base"
