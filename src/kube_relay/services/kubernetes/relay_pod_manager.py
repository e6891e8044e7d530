"""Relay pod manager.

Creates, watches and deletes the single socat pod that accepts connections
on a fixed port and forwards each one to the private destination.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Any

from kube_relay.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
)
from kube_relay.services.kubernetes.base import K8sBaseManager

if TYPE_CHECKING:
    from kubernetes.client import V1Pod

RELAY_POD_NAME = "kube-relay"
RELAY_CONTAINER_NAME = "socat"
RELAY_CONTAINER_PORT = 9000
DEFAULT_RELAY_IMAGE = "alpine/socat:1.8.0.0"

RELAY_LABELS = {
    "app.kubernetes.io/name": "kube-relay",
    "app.kubernetes.io/managed-by": "kube-relay",
}

# Phases after which the pod will never reach Running (restartPolicy Never).
_TERMINAL_PHASES = frozenset({"Succeeded", "Failed"})

# The API server closes a timed-out watch on whole seconds.
_WATCH_DEADLINE_SLACK = 1.0


def build_relay_pod(
    name: str,
    *,
    image: str,
    destination_host: str,
    destination_port: int,
    listen_port: int = RELAY_CONTAINER_PORT,
) -> V1Pod:
    """Build the relay pod manifest.

    The container runs socat as ``TCP-LISTEN:<listen_port>,fork`` so every
    accepted connection is forked and spliced to ``destination_host:port``.
    """
    from kubernetes import client

    # socat needs IPv6 literals in brackets.
    host = destination_host
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    container = client.V1Container(
        name=RELAY_CONTAINER_NAME,
        image=image,
        args=[
            f"TCP-LISTEN:{listen_port},fork",
            f"TCP:{host}:{destination_port}",
        ],
        ports=[client.V1ContainerPort(container_port=listen_port, name="relay")],
    )
    return client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=client.V1ObjectMeta(name=name, labels=dict(RELAY_LABELS)),
        spec=client.V1PodSpec(
            containers=[container],
            restart_policy="Never",
        ),
    )


class RelayPodManager(K8sBaseManager):
    """Lifecycle operations for the relay pod."""

    _entity_name = "relay_pod"

    def create_relay_pod(
        self,
        namespace: str | None = None,
        *,
        image: str,
        destination_host: str,
        destination_port: int,
        name: str = RELAY_POD_NAME,
    ) -> str:
        """Create the relay pod.

        Returns:
            The name of the created pod.

        Raises:
            KubernetesConflictError: If a pod with the same name already exists.
            KubernetesError: For any other API failure.
        """
        ns = self._resolve_namespace(namespace)
        manifest = build_relay_pod(
            name,
            image=image,
            destination_host=destination_host,
            destination_port=destination_port,
        )
        self._log.debug("creating_relay_pod", name=name, namespace=ns, image=image)
        try:
            result = self._client.core_v1.create_namespaced_pod(
                namespace=ns,
                body=manifest,
                _request_timeout=self._client.request_timeout,
            )
        except Exception as e:
            self._handle_api_error(e, "Pod", name, ns)

        created: str = result.metadata.name
        self._log.info("relay_pod_created", name=created, namespace=ns)
        return created

    def delete_relay_pod(self, namespace: str | None = None, name: str = RELAY_POD_NAME) -> bool:
        """Delete the relay pod.

        Deleting a pod that does not exist is not an error. Transient
        connection failures are retried.

        Returns:
            True if a pod was deleted, False if none existed.
        """
        ns = self._resolve_namespace(namespace)

        @self._client.make_retry_decorator()
        def _delete() -> None:
            try:
                self._client.core_v1.delete_namespaced_pod(
                    name=name,
                    namespace=ns,
                    _request_timeout=self._client.request_timeout,
                )
            except Exception as e:
                self._handle_api_error(e, "Pod", name, ns)

        self._log.info("deleting_relay_pod", name=name, namespace=ns)
        try:
            _delete()
        except KubernetesNotFoundError:
            self._log.debug("relay_pod_already_absent", name=name, namespace=ns)
            return False
        self._log.info("deleted_relay_pod", name=name, namespace=ns)
        return True

    def find_relay_pod(self, namespace: str | None = None, name: str = RELAY_POD_NAME) -> V1Pod | None:
        """Return the relay pod if one exists, else None."""
        ns = self._resolve_namespace(namespace)
        try:
            pod: V1Pod = self._client.core_v1.read_namespaced_pod(
                name=name,
                namespace=ns,
                _request_timeout=self._client.request_timeout,
            )
        except Exception as e:
            try:
                self._handle_api_error(e, "Pod", name, ns)
            except KubernetesNotFoundError:
                return None
        return pod

    def wait_until_running(
        self,
        name: str,
        namespace: str | None = None,
        *,
        timeout: float,
        stop: threading.Event | None = None,
    ) -> V1Pod | None:
        """Block until the pod reports phase Running.

        Uses a watch on ``metadata.name=<name>``. Events for other phases
        (Pending, ...) are ignored.

        Args:
            name: Pod name.
            namespace: Pod namespace.
            timeout: Seconds to wait before giving up.
            stop: When set, the wait is abandoned at the next event.

        Returns:
            The running pod, or None if ``stop`` was set.

        Raises:
            KubernetesTimeoutError: If the pod is not running within ``timeout``.
            KubernetesError: If the watch fails, delivers an unexpected
                object, reports the pod deleted or terminated, or ends early.
        """
        from kubernetes import watch
        from kubernetes.client import V1Pod

        ns = self._resolve_namespace(namespace)
        self._log.debug("waiting_for_relay_pod", name=name, namespace=ns, timeout=timeout)

        started = time.monotonic()
        w = watch.Watch()
        try:
            for event in w.stream(
                self._client.core_v1.list_namespaced_pod,
                namespace=ns,
                field_selector=f"metadata.name={name}",
                timeout_seconds=max(1, int(timeout)),
                _request_timeout=timeout + self._client.request_timeout,
            ):
                if stop is not None and stop.is_set():
                    return None

                pod = event.get("object") if isinstance(event, dict) else None
                if not isinstance(pod, V1Pod):
                    raise KubernetesError(
                        message=f"Unexpected watch event for pod '{name}': {_describe(event)}",
                        resource_type="Pod",
                        resource_name=name,
                        namespace=ns,
                    )

                if event.get("type") == "DELETED":
                    raise KubernetesError(
                        message=f"Pod '{name}' was deleted before it was running",
                        resource_type="Pod",
                        resource_name=name,
                        namespace=ns,
                    )

                phase = pod.status.phase if pod.status else None
                self._log.debug("relay_pod_phase", name=name, phase=phase)
                if phase == "Running":
                    self._log.info("relay_pod_running", name=name, namespace=ns)
                    return pod
                if phase in _TERMINAL_PHASES:
                    raise KubernetesError(
                        message=f"Pod '{name}' reached phase {phase} before it was running",
                        resource_type="Pod",
                        resource_name=name,
                        namespace=ns,
                    )
        except KubernetesError:
            raise
        except Exception as e:
            self._handle_api_error(e, "Pod", name, ns)
        finally:
            w.stop()

        if stop is not None and stop.is_set():
            return None
        if time.monotonic() - started >= timeout - _WATCH_DEADLINE_SLACK:
            raise KubernetesTimeoutError(
                message=f"Pod '{name}' did not reach Running",
                timeout_seconds=timeout,
            )
        raise KubernetesError(
            message=f"Watch for pod '{name}' ended before it was running",
            resource_type="Pod",
            resource_name=name,
            namespace=ns,
        )


def _describe(event: Any) -> str:
    if isinstance(event, dict):
        obj = event.get("object")
        return f"type={event.get('type')} object={type(obj).__name__}"
    return type(event).__name__
