"""Configuration loader for scalebench."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .schema import ScaleBenchConfig


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileNotFoundError(ConfigError):
    """Raised when configuration file is not found."""

    pass


class ConfigParseError(ConfigError):
    """Raised when configuration file cannot be parsed."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return as dictionary.

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails
    """
    if not path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML: {e}")  # noqa: B904

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigParseError(f"Expected a mapping at the top of {path}")
    return content


def validate_config(data: dict[str, Any]) -> ScaleBenchConfig:
    """Validate a raw mapping into a ScaleBenchConfig.

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        return ScaleBenchConfig.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        error_messages = []
        for err in errors:
            loc = ".".join(str(x) for x in err["loc"])
            msg = err["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(  # noqa: B904
            "Configuration validation failed:\n" + "\n".join(error_messages),
            errors=[dict(e) for e in errors],  # type: ignore[call-overload]
        )


def load_config(path: str | Path) -> ScaleBenchConfig:
    """Load and validate scalebench configuration from file.

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails
        ConfigValidationError: If validation fails
    """
    return validate_config(load_yaml(Path(path)))


def save_config(config: ScaleBenchConfig, path: str | Path) -> None:
    """Save configuration to YAML file."""
    path = Path(path)
    data = config.model_dump(mode="json", exclude_defaults=False)

    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, indent=2)


def generate_default_config(
    name: str = "workers-scale",
    additional_worker_nodes: int = 3,
    autoscaler_enabled: bool = False,
    rosa: bool = False,
) -> ScaleBenchConfig:
    """Generate a configuration with the common values pre-filled."""
    config_dict: dict[str, Any] = {
        "name": name,
        "scale": {
            "additional_worker_nodes": additional_worker_nodes,
            "autoscaler_enabled": autoscaler_enabled,
        },
    }
    if rosa:
        config_dict["managed"] = {"enabled": True}
    return validate_config(config_dict)


def generate_example_config_yaml() -> str:
    """Generate example configuration YAML with comments.

    Only the request itself is uncommented; every other option is shown
    commented-out with its default.
    """
    return """# Scalebench Configuration
# ========================
# Measures worker scale-up latency: machine created -> machine ready ->
# node created -> node ready, summarised as P50/P95/P99/min/max/avg.
#
# Commented fields show their DEFAULT value, which is active when omitted.

name: workers-scale

# Free-form metadata attached to every indexed document
# metadata: {}

scale:
  # Worker nodes to add, spread evenly across worker MachineSets
  additional_worker_nodes: 3
  # Never grow a single MachineSet past this many replicas
  # max_replicas_per_group: null
  # Restore MachineSets / managed pool to their previous size afterward
  # gc: true
  # Unix seconds of a scale event that already happened. When set, nothing
  # is scaled; only the latencies of machines created after it are measured.
  # scale_event_epoch: 0
  # Let the cluster autoscaler do the scaling (batch job creates demand)
  # autoscaler_enabled: false

## Cluster access
# kubernetes:
#   context: ""
#   kubeconfig: ""

## Polling bounds and fixed delays
# timeouts:
#   max_wait_seconds: 14400
#   poll_interval_seconds: 1.0
#   autoscaler_warmup_seconds: 300
#   managed_settle_seconds: 60
#   managed_autoscaler_warmup_seconds: 120

## Autoscaler resources and the saturating batch job
# autoscaler:
#   min_replicas: 0
#   cluster_autoscaler_name: default
#   job_namespace: default
#   job_image: quay.io/quay/busybox:latest
#   job_parallelism: 1000
#   job_sleep_seconds: 300
#   job_cpu: 1000m
#   job_memory: 1000Mi
#   job_backoff_limit: 4

## Managed (ROSA) clusters: scaling goes through the rosa CLI
# managed:
#   enabled: false
#   hcp: false
#   mc_kubeconfig: ""
#   login_env: staging

## Local indexing
# output:
#   metrics_directory: collected-metrics
#   job_name: workers-scale
"""
