"""Kubernetes integration - API client, configuration and port-forward transport."""

from kube_relay.integrations.kubernetes.client import KubernetesClient
from kube_relay.integrations.kubernetes.config import KubernetesConfig
from kube_relay.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesValidationError,
)
from kube_relay.integrations.kubernetes.portforward import PortForwardTunnel

__all__ = [
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConfig",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesTimeoutError",
    "KubernetesValidationError",
    "PortForwardTunnel",
]
