"""Relay lifecycle: request/session models, cancellation and the controller."""

from kube_relay.relay.cancellation import CancellationToken, InterruptWatcher
from kube_relay.relay.controller import RelayController
from kube_relay.relay.exceptions import (
    ConfigurationError,
    ProvisioningError,
    ReadinessError,
    RelayError,
    RelayInterruptedError,
    TunnelError,
)
from kube_relay.relay.models import LifecycleState, RelayRequest, RelaySession

__all__ = [
    "CancellationToken",
    "ConfigurationError",
    "InterruptWatcher",
    "LifecycleState",
    "ProvisioningError",
    "ReadinessError",
    "RelayController",
    "RelayError",
    "RelayInterruptedError",
    "RelayRequest",
    "RelaySession",
    "TunnelError",
]
