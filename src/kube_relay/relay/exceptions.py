"""Errors raised by a relay session.

Every error is terminal for the session. By the time one reaches the caller
of ``RelayController.run`` the relay pod teardown has already been attempted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kube_relay.relay.models import LifecycleState


class RelayError(Exception):
    """Base exception for relay sessions.

    Attributes:
        message: Human-readable cause.
        state: Lifecycle state the session was in when the error occurred.
        exit_code: Process exit status the CLI uses for this error.
        teardown_error: Set when deleting the relay pod afterwards also failed.
    """

    exit_code: int = 1

    def __init__(self, message: str, state: LifecycleState | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.state = state
        self.teardown_error: Exception | None = None

    def __str__(self) -> str:
        return self.message


class ConfigurationError(RelayError):
    """Missing or invalid input, detected before any cluster call."""


class ProvisioningError(RelayError):
    """The relay pod could not be created."""


class ReadinessError(RelayError):
    """The relay pod never reached Running (watch failed, ended or timed out)."""


class TunnelError(RelayError):
    """The tunnel failed or the API server reported a port-forward error."""


class RelayInterruptedError(RelayError):
    """The session was stopped by SIGINT or SIGTERM."""

    exit_code = 130

    def __init__(
        self,
        signal_name: str = "SIGINT",
        state: LifecycleState | None = None,
    ) -> None:
        super().__init__(f"interrupted by {signal_name}", state=state)
        self.signal_name = signal_name
