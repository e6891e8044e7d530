"""Configuration management with Pydantic validation."""

from kube_relay.core.config.models import (
    CONFIG_DIR,
    CONFIG_FILE,
    RelayConfig,
    RelayDefaults,
    load_config,
)

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "RelayConfig",
    "RelayDefaults",
    "load_config",
]
