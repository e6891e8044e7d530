"""Relay request, session and lifecycle state models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kube_relay.relay.exceptions import ConfigurationError, RelayError
from kube_relay.services.kubernetes.relay_pod_manager import (
    DEFAULT_RELAY_IMAGE,
    RELAY_POD_NAME,
)

DEFAULT_LOCAL_PORT = 1999
DEFAULT_CLUSTER_PORT = 80


class LifecycleState(str, Enum):
    """State of a relay session."""

    IDLE = "idle"
    PROVISIONING = "provisioning"
    AWAITING_READY = "awaiting_ready"
    BRIDGING = "bridging"
    TERMINATING = "terminating"
    TERMINATED = "terminated"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleState.TERMINATED, LifecycleState.FAILED)

    @property
    def resource_may_exist(self) -> bool:
        """Whether the relay pod may exist in the cluster in this state."""
        return self in (
            LifecycleState.PROVISIONING,
            LifecycleState.AWAITING_READY,
            LifecycleState.BRIDGING,
            LifecycleState.TERMINATING,
        )


# Every failure and interrupt goes through TERMINATING so teardown is
# attempted before a terminal state is reached.
_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.IDLE: frozenset({LifecycleState.PROVISIONING, LifecycleState.TERMINATING}),
    LifecycleState.PROVISIONING: frozenset(
        {LifecycleState.AWAITING_READY, LifecycleState.TERMINATING}
    ),
    LifecycleState.AWAITING_READY: frozenset(
        {LifecycleState.BRIDGING, LifecycleState.TERMINATING}
    ),
    LifecycleState.BRIDGING: frozenset({LifecycleState.TERMINATING}),
    LifecycleState.TERMINATING: frozenset({LifecycleState.TERMINATED, LifecycleState.FAILED}),
    LifecycleState.TERMINATED: frozenset(),
    LifecycleState.FAILED: frozenset(),
}


class RelayRequest(BaseModel):
    """Immutable input for one relay session."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    local_port: int = Field(default=DEFAULT_LOCAL_PORT, ge=1, le=65535)
    destination_host: str = Field(min_length=1)
    destination_port: int = Field(default=DEFAULT_CLUSTER_PORT, ge=1, le=65535)
    image: str = Field(default=DEFAULT_RELAY_IMAGE, min_length=1)
    namespace: str = Field(min_length=1)
    resource_name: str = Field(default=RELAY_POD_NAME, min_length=1)

    @classmethod
    def build(cls, **fields: Any) -> RelayRequest:
        """Validate ``fields`` into a request.

        Raises:
            ConfigurationError: If any field is missing or invalid.
        """
        try:
            return cls(**fields)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(f"invalid relay request: {problems}") from e

    @property
    def destination(self) -> str:
        return f"{self.destination_host}:{self.destination_port}"


@dataclass
class RelaySession:
    """Mutable record of one ``RelayController.run`` invocation.

    Only the controller's calling thread mutates it.
    """

    name: str
    namespace: str
    state: LifecycleState = LifecycleState.IDLE
    last_error: RelayError | None = None
    teardown_attempted: bool = False
    teardown_error: Exception | None = None
    tunnel_ready: bool = False
    history: list[LifecycleState] = field(default_factory=lambda: [LifecycleState.IDLE])

    def transition(self, new_state: LifecycleState) -> None:
        """Move to ``new_state``.

        Raises:
            ValueError: If the transition is not allowed from the current state.
        """
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"invalid relay transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
