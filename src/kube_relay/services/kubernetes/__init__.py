"""Kubernetes resource managers used by the relay."""

from kube_relay.services.kubernetes.base import K8sBaseManager
from kube_relay.services.kubernetes.relay_pod_manager import (
    DEFAULT_RELAY_IMAGE,
    RELAY_CONTAINER_PORT,
    RELAY_POD_NAME,
    RelayPodManager,
)

__all__ = [
    "DEFAULT_RELAY_IMAGE",
    "RELAY_CONTAINER_PORT",
    "RELAY_POD_NAME",
    "K8sBaseManager",
    "RelayPodManager",
]
