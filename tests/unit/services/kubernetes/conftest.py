"""Shared fixtures for Kubernetes service tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from kube_relay.integrations.kubernetes.client import KubernetesClient


@pytest.fixture
def translating_client(mock_k8s_client: MagicMock) -> MagicMock:
    """Mock client whose error translation is the real one."""
    mock_k8s_client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return mock_k8s_client


@pytest.fixture
def make_pod() -> Callable[..., Any]:
    """Factory for V1Pod objects in a given phase."""
    from kubernetes.client import V1ObjectMeta, V1Pod, V1PodStatus

    def _make(name: str = "kube-relay", phase: str | None = "Pending") -> V1Pod:
        return V1Pod(
            metadata=V1ObjectMeta(name=name),
            status=V1PodStatus(phase=phase) if phase is not None else None,
        )

    return _make
