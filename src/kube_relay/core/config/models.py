"""Configuration file models.

The optional file lives at ~/.config/kube-relay/config.yaml. Values there
replace model defaults; CLI flags and KUBE_RELAY_* environment variables
replace values from the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kube_relay.integrations.kubernetes.config import KubernetesConfig
from kube_relay.relay.controller import DEFAULT_READY_TIMEOUT
from kube_relay.relay.exceptions import ConfigurationError
from kube_relay.relay.models import DEFAULT_CLUSTER_PORT, DEFAULT_LOCAL_PORT
from kube_relay.services.kubernetes.relay_pod_manager import DEFAULT_RELAY_IMAGE

CONFIG_DIR = Path.home() / ".config" / "kube-relay"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

_YAML_HEADER = """\
# kube-relay configuration
#
# kubernetes: how to reach the cluster (context, kubeconfig, namespace)
# relay:      defaults for `kube-relay start` flags
"""


class RelayDefaults(BaseModel):
    """Default values for relay flags."""

    model_config = ConfigDict(extra="forbid")

    local_port: int = Field(default=DEFAULT_LOCAL_PORT, ge=1, le=65535)
    cluster_port: int = Field(default=DEFAULT_CLUSTER_PORT, ge=1, le=65535)
    image: str = DEFAULT_RELAY_IMAGE
    address: str = "127.0.0.1"
    ready_timeout: float = DEFAULT_READY_TIMEOUT

    @field_validator("ready_timeout")
    @classmethod
    def validate_ready_timeout(cls, v: float) -> float:
        """Validate ready_timeout is positive."""
        if v <= 0:
            raise ValueError("ready_timeout must be positive")
        return v


class RelayConfig(BaseModel):
    """Complete kube-relay configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = "1.0"
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    relay: RelayDefaults = Field(default_factory=RelayDefaults)

    def to_yaml(self) -> str:
        """Render the configuration as commented YAML."""
        data = self.model_dump(mode="json", exclude_none=True)
        return _YAML_HEADER + "\n" + yaml.safe_dump(data, default_flow_style=False, sort_keys=False)

    def with_env_overrides(self) -> RelayConfig:
        """Return a copy whose Kubernetes settings include KUBE_RELAY_* overrides."""
        kubernetes = KubernetesConfig.from_env(self.kubernetes.model_dump(exclude_none=True))
        return self.model_copy(update={"kubernetes": kubernetes})


def load_config(path: Path | None = None) -> RelayConfig | None:
    """Load the configuration file.

    Args:
        path: File to read. Defaults to CONFIG_FILE.

    Returns:
        The parsed configuration, or None if the file does not exist.

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation.
    """
    config_path = path or CONFIG_FILE
    if not config_path.exists():
        return None

    try:
        data: Any = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid configuration in {config_path}: expected a mapping")

    try:
        return RelayConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e
