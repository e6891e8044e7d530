"""Relay lifecycle controller.

Runs one relay session end to end: create the relay pod, wait for it to be
Running, bridge a local port to it, and delete the pod exactly once however
the session ends.

Three units of work cooperate through a single event queue:

- the lifecycle worker thread (create -> watch -> tunnel), which reports
  state changes and its final outcome,
- the tunnel's own threads, which report "ready" and error-channel text,
- the calling thread, which waits on the queue, picks the first terminal
  event and is the only place teardown runs from.
"""

from __future__ import annotations

import enum
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from kube_relay.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesTimeoutError,
)
from kube_relay.relay.exceptions import (
    ProvisioningError,
    ReadinessError,
    RelayError,
    RelayInterruptedError,
    TunnelError,
)
from kube_relay.relay.models import LifecycleState, RelayRequest, RelaySession
from kube_relay.services.kubernetes.relay_pod_manager import RELAY_CONTAINER_PORT

if TYPE_CHECKING:
    from kube_relay.relay.cancellation import CancellationToken
    from kube_relay.services.kubernetes.relay_pod_manager import RelayPodManager

logger = structlog.get_logger()

DEFAULT_READY_TIMEOUT = 120.0


class Tunnel(Protocol):
    """Transport that bridges a local port into the relay pod."""

    def open(
        self,
        pod_name: str,
        namespace: str,
        *,
        local_port: int,
        remote_port: int,
        on_ready: Callable[[], None],
        on_diagnostic: Callable[[str], None],
        stop: threading.Event,
    ) -> None: ...


class _EventKind(enum.IntEnum):
    # Terminal kinds are ordered by priority: a lower value wins when
    # several arrive together.
    DIAGNOSTIC = 0
    INTERRUPT = 1
    FINISHED = 2
    READY = 10
    STATE = 11

    @property
    def is_terminal(self) -> bool:
        return self < _EventKind.READY


@dataclass(frozen=True)
class _Event:
    kind: _EventKind
    payload: Any = None


class RelayController:
    """State machine for a single relay session at a time.

    The cancellation token is subscribed to once, at construction. Cancelling
    it (for example from ``InterruptWatcher``) makes a running ``run`` tear
    the relay pod down and raise ``RelayInterruptedError``.
    """

    def __init__(
        self,
        pod_manager: RelayPodManager,
        tunnel: Tunnel,
        cancellation: CancellationToken,
        *,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
        provision_grace: float = 30.0,
        shutdown_grace: float = 2.0,
        poll_interval: float = 0.2,
        on_ready: Callable[[RelayRequest], None] | None = None,
        on_interrupt: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            pod_manager: Creates, watches and deletes the relay pod.
            tunnel: Bridges the local port into the pod.
            cancellation: Token whose cancellation interrupts ``run``.
            ready_timeout: Seconds to wait for the relay pod to be Running.
            provision_grace: Seconds teardown waits for an in-flight create
                to resolve, so a pod created after an interrupt is not orphaned.
            shutdown_grace: Seconds to wait for the worker after teardown.
            poll_interval: Upper bound on how long the calling thread blocks
                between checks of the event queue.
            on_ready: Called once the local listener accepts connections.
            on_interrupt: Called with the signal name before interrupt teardown.
        """
        self._pods = pod_manager
        self._tunnel = tunnel
        self._cancellation = cancellation
        self._ready_timeout = ready_timeout
        self._provision_grace = provision_grace
        self._shutdown_grace = shutdown_grace
        self._poll_interval = poll_interval
        self._on_ready = on_ready
        self._on_interrupt = on_interrupt
        # SimpleQueue.put is reentrant, so the token callback may run inside
        # a signal handler that interrupted a get() on this queue.
        self._events: queue.SimpleQueue[_Event] = queue.SimpleQueue()
        self._active = False
        self._log = logger.bind(entity="relay")
        cancellation.subscribe(self._on_cancelled)

    def _on_cancelled(self, reason: str) -> None:
        self._events.put(_Event(_EventKind.INTERRUPT, reason))

    def _post(self, kind: _EventKind, payload: Any = None) -> None:
        self._events.put(_Event(kind, payload))

    # =========================================================================
    # Run
    # =========================================================================

    def run(self, request: RelayRequest) -> RelaySession:
        """Run one relay session until the tunnel closes, fails or is interrupted.

        Returns:
            The finished session (state TERMINATED) on a clean close.

        Raises:
            ProvisioningError: The relay pod could not be created.
            ReadinessError: The relay pod never became Running.
            TunnelError: The tunnel failed or reported an error.
            RelayInterruptedError: The cancellation token was cancelled.
            RuntimeError: If a session is already running on this controller.
        """
        if self._active:
            raise RuntimeError("a relay session is already running on this controller")
        self._active = True
        self._discard_pending_events()

        session = RelaySession(name=request.resource_name, namespace=request.namespace)
        log = self._log.bind(pod=session.name, namespace=session.namespace)
        stop = threading.Event()
        worker: threading.Thread | None = None
        error: RelayError | None = None

        try:
            if self._cancellation.is_cancelled:
                error = RelayInterruptedError(self._cancellation.reason or "SIGINT", session.state)
            else:
                session.transition(LifecycleState.PROVISIONING)
                log.info("relay_starting", destination=request.destination, image=request.image)
                worker = threading.Thread(
                    target=self._lifecycle,
                    args=(request, stop),
                    name="kube-relay-lifecycle",
                    daemon=True,
                )
                worker.start()
                error = self._await_outcome(session, request)
        except KeyboardInterrupt:
            error = RelayInterruptedError("SIGINT", session.state)
        finally:
            if isinstance(error, RelayInterruptedError) and self._on_interrupt:
                self._on_interrupt(error.signal_name)
            self._settle_provisioning(session, worker)
            stop.set()
            self.teardown(session, error)
            if worker is not None:
                worker.join(timeout=self._shutdown_grace)
            self._active = False

        if error is not None:
            error.teardown_error = session.teardown_error
            raise error
        log.info("relay_finished", state=session.state.value)
        return session

    def _discard_pending_events(self) -> None:
        while True:
            try:
                self._events.get_nowait()
            except queue.Empty:
                return

    def _next_events(self) -> list[_Event]:
        """Block until at least one event is queued, then drain the queue."""
        while True:
            try:
                first = self._events.get(timeout=self._poll_interval)
                break
            except queue.Empty:
                continue
        events = [first]
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events

    def _await_outcome(self, session: RelaySession, request: RelayRequest) -> RelayError | None:
        """Apply progress events until a terminal event decides the outcome."""
        while True:
            terminal: _Event | None = None
            for event in self._next_events():
                if event.kind is _EventKind.STATE:
                    session.transition(event.payload)
                    self._log.debug("relay_state", state=event.payload.value)
                elif event.kind is _EventKind.READY:
                    session.tunnel_ready = True
                    self._log.info("tunnel_ready", local_port=request.local_port)
                    if self._on_ready:
                        self._on_ready(request)
                elif terminal is None or event.kind < terminal.kind:
                    terminal = event
            if terminal is not None:
                return self._outcome(terminal, session)

    def _outcome(self, event: _Event, session: RelaySession) -> RelayError | None:
        if event.kind is _EventKind.DIAGNOSTIC:
            return TunnelError(f"tunnel reported an error: {event.payload}", session.state)
        if event.kind is _EventKind.INTERRUPT:
            self._log.warning("relay_interrupted", signal=event.payload, state=session.state.value)
            return RelayInterruptedError(event.payload, session.state)
        result: RelayError | None = event.payload
        return result

    def _settle_provisioning(self, session: RelaySession, worker: threading.Thread | None) -> None:
        """Wait for an in-flight create call so the pod it creates gets deleted."""
        if worker is None or session.state is not LifecycleState.PROVISIONING:
            return
        deadline = time.monotonic() + self._provision_grace
        while worker.is_alive() and time.monotonic() < deadline:
            try:
                event = self._events.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            if event.kind is _EventKind.STATE:
                session.transition(event.payload)
                return
            if event.kind is _EventKind.FINISHED:
                return

    # =========================================================================
    # Teardown
    # =========================================================================

    def teardown(self, session: RelaySession, error: RelayError | None = None) -> None:
        """Delete the relay pod and move the session to its terminal state.

        Runs at most once per session; later calls do nothing. Delete
        failures are recorded on the session, never raised.
        """
        if session.teardown_attempted:
            return
        session.teardown_attempted = True
        session.last_error = error
        session.transition(LifecycleState.TERMINATING)

        log = self._log.bind(pod=session.name, namespace=session.namespace)
        log.info("teardown_started", reason=str(error) if error else "tunnel closed")
        try:
            deleted = self._pods.delete_relay_pod(session.namespace, session.name)
            log.info("teardown_finished", deleted=deleted)
        except KubernetesError as e:
            session.teardown_error = e
            log.error("teardown_failed", error=str(e))

        if error is None or isinstance(error, RelayInterruptedError):
            session.transition(LifecycleState.TERMINATED)
        else:
            session.transition(LifecycleState.FAILED)

    # =========================================================================
    # Lifecycle worker
    # =========================================================================

    def _lifecycle(self, request: RelayRequest, stop: threading.Event) -> None:
        try:
            self._provision(request)
            self._post(_EventKind.STATE, LifecycleState.AWAITING_READY)
            if not self._await_ready(request, stop):
                return
            self._post(_EventKind.STATE, LifecycleState.BRIDGING)
            self._bridge(request, stop)
        except RelayError as e:
            self._post(_EventKind.FINISHED, e)
        except Exception as e:
            self._log.exception("relay_worker_crashed")
            self._post(_EventKind.FINISHED, RelayError(f"unexpected relay failure: {e}"))
        else:
            self._post(_EventKind.FINISHED, None)

    def _provision(self, request: RelayRequest) -> None:
        try:
            self._pods.create_relay_pod(
                request.namespace,
                image=request.image,
                destination_host=request.destination_host,
                destination_port=request.destination_port,
                name=request.resource_name,
            )
        except KubernetesError as e:
            raise ProvisioningError(
                f"failed to create relay pod: {e}", LifecycleState.PROVISIONING
            ) from e

    def _await_ready(self, request: RelayRequest, stop: threading.Event) -> bool:
        try:
            pod = self._pods.wait_until_running(
                request.resource_name,
                request.namespace,
                timeout=self._ready_timeout,
                stop=stop,
            )
        except KubernetesTimeoutError as e:
            raise ReadinessError(
                f"relay pod did not become ready: {e}", LifecycleState.AWAITING_READY
            ) from e
        except KubernetesError as e:
            raise ReadinessError(
                f"failed waiting for relay pod: {e}", LifecycleState.AWAITING_READY
            ) from e
        return pod is not None

    def _bridge(self, request: RelayRequest, stop: threading.Event) -> None:
        try:
            self._tunnel.open(
                request.resource_name,
                request.namespace,
                local_port=request.local_port,
                remote_port=RELAY_CONTAINER_PORT,
                on_ready=lambda: self._post(_EventKind.READY),
                on_diagnostic=lambda text: self._post(_EventKind.DIAGNOSTIC, text),
                stop=stop,
            )
        except Exception as e:
            raise TunnelError(f"tunnel failed: {e}", LifecycleState.BRIDGING) from e
