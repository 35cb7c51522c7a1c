"""Scalebench configuration module."""

from .loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    generate_default_config,
    generate_example_config_yaml,
    load_config,
    save_config,
    validate_config,
)
from .schema import (
    AutoscalerConfig,
    KubernetesConfig,
    ManagedConfig,
    OutputConfig,
    ScaleBenchConfig,
    ScaleSettings,
    TimeoutsConfig,
)

__all__ = [
    # Config classes
    "ScaleBenchConfig",
    "KubernetesConfig",
    "ScaleSettings",
    "TimeoutsConfig",
    "AutoscalerConfig",
    "ManagedConfig",
    "OutputConfig",
    # Loader functions
    "load_config",
    "save_config",
    "validate_config",
    "generate_default_config",
    "generate_example_config_yaml",
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
]
