"""Kubernetes connection configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

ENV_PREFIX = "KUBE_RELAY_"


class KubernetesConfig(BaseModel):
    """How to reach the cluster that hosts the relay pod.

    ``context`` and ``kubeconfig`` select the kubeconfig entry; when both are
    unset the client falls back to kubeconfig auto-detection and then to
    in-cluster service account credentials. ``namespace`` overrides the
    namespace of the active kubeconfig context.
    """

    model_config = ConfigDict(extra="forbid")

    context: str | None = None
    kubeconfig: str | None = None
    namespace: str | None = None
    request_timeout: int = 30
    retry_attempts: int = 3

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if v is None:
            return v
        return str(Path(v).expanduser())

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: int) -> int:
        """Validate request_timeout is positive."""
        if v <= 0:
            raise ValueError("request_timeout must be positive")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        """Validate retry_attempts allows at least one attempt."""
        if v < 1:
            raise ValueError("retry_attempts must be at least 1")
        return v

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> KubernetesConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            KUBE_RELAY_CONTEXT: kubeconfig context to use
            KUBE_RELAY_KUBECONFIG: kubeconfig file path
            KUBE_RELAY_NAMESPACE: namespace for the relay pod
            KUBE_RELAY_REQUEST_TIMEOUT: per-request API timeout in seconds
            KUBE_RELAY_RETRY_ATTEMPTS: attempts for the teardown delete call
        """
        config_dict = dict(base_config) if base_config else {}

        if context := os.environ.get(f"{ENV_PREFIX}CONTEXT"):
            config_dict["context"] = context
        if kubeconfig := os.environ.get(f"{ENV_PREFIX}KUBECONFIG"):
            config_dict["kubeconfig"] = kubeconfig
        if namespace := os.environ.get(f"{ENV_PREFIX}NAMESPACE"):
            config_dict["namespace"] = namespace
        if timeout := os.environ.get(f"{ENV_PREFIX}REQUEST_TIMEOUT"):
            config_dict["request_timeout"] = int(timeout)
        if attempts := os.environ.get(f"{ENV_PREFIX}RETRY_ATTEMPTS"):
            config_dict["retry_attempts"] = int(attempts)

        return cls.model_validate(config_dict)
