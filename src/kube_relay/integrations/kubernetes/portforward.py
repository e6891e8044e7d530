"""Local TCP listener bridged into a pod through the portforward subresource.

Every accepted local connection gets its own portforward stream to the pod,
and bytes are spliced in both directions until both sides close. Text the
API server sends on a stream's error channel is handed to ``on_diagnostic``.
"""

from __future__ import annotations

import contextlib
import select
import socket
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from kube_relay.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()

DEFAULT_BUFFER_SIZE = 64 * 1024


class PortForwardTunnel:
    """Bridge one local TCP port to one port inside a pod.

    ``open`` is synchronous: it returns only after ``stop`` is set or the
    listener fails, so callers run it on a dedicated thread.
    """

    def __init__(
        self,
        client: KubernetesClient,
        *,
        address: str = "127.0.0.1",
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        poll_interval: float = 0.2,
        backlog: int = 16,
    ) -> None:
        self._client = client
        self._address = address
        self._buffer_size = buffer_size
        self._poll_interval = poll_interval
        self._backlog = backlog
        self._log = logger.bind(entity="tunnel")

    @property
    def address(self) -> str:
        return self._address

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
    ) -> None:
        """Listen on ``local_port`` and forward connections to ``remote_port``.

        Args:
            pod_name: Pod to forward into.
            namespace: Namespace of the pod.
            local_port: Local TCP port to listen on.
            remote_port: Port inside the pod.
            on_ready: Called once the local listener accepts connections.
            on_diagnostic: Called with any error-channel text from the API server.
            stop: Set by the caller to close the listener and all bridges.

        Raises:
            OSError: If the local listener cannot be created.
        """
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        bridges: list[threading.Thread] = []
        try:
            server.bind((self._address, local_port))
            server.listen(self._backlog)
            server.settimeout(self._poll_interval)
            self._log.info(
                "tunnel_listening",
                address=self._address,
                local_port=local_port,
                pod=pod_name,
                remote_port=remote_port,
            )
            on_ready()

            while not stop.is_set():
                try:
                    conn, peer = server.accept()
                except TimeoutError:
                    continue
                self._log.debug("tunnel_connection_accepted", peer=f"{peer[0]}:{peer[1]}")
                bridge = threading.Thread(
                    target=self._serve_connection,
                    args=(conn, pod_name, namespace, remote_port, on_diagnostic, stop),
                    name=f"kube-relay-bridge-{peer[1]}",
                    daemon=True,
                )
                bridge.start()
                bridges = [t for t in bridges if t.is_alive()]
                bridges.append(bridge)
        finally:
            with contextlib.suppress(OSError):
                server.close()
            for bridge in bridges:
                bridge.join(timeout=self._poll_interval * 2)
            self._log.info("tunnel_closed", local_port=local_port)

    def _open_stream(self, pod_name: str, namespace: str, remote_port: int) -> Any:
        import kubernetes.stream

        return kubernetes.stream.portforward(
            self._client.core_v1.connect_get_namespaced_pod_portforward,
            name=pod_name,
            namespace=namespace,
            ports=str(remote_port),
        )

    def _serve_connection(
        self,
        conn: socket.socket,
        pod_name: str,
        namespace: str,
        remote_port: int,
        on_diagnostic: Callable[[str], None],
        stop: threading.Event,
    ) -> None:
        """Bridge one accepted connection through its own portforward stream."""
        try:
            pf = self._open_stream(pod_name, namespace, remote_port)
        except Exception as e:
            error = self._client.translate_api_exception(e, "Pod", pod_name, namespace)
            self._log.error("tunnel_stream_failed", pod=pod_name, error=str(error))
            on_diagnostic(f"unable to open port-forward stream: {error}")
            with contextlib.suppress(OSError):
                conn.close()
            return

        remote = pf.socket(remote_port)
        try:
            self._splice(conn, remote, stop, lambda: bool(pf.error(remote_port)))
        except OSError as e:
            self._log.debug("tunnel_connection_reset", error=str(e))
        finally:
            with contextlib.suppress(OSError):
                conn.close()
            with contextlib.suppress(OSError):
                remote.close()

        error_text = pf.error(remote_port)
        if error_text:
            self._log.error("tunnel_remote_error", pod=pod_name, error=error_text)
            on_diagnostic(error_text)

    def _splice(
        self,
        local: Any,
        remote: Any,
        stop: threading.Event,
        remote_failed: Callable[[], bool] = lambda: False,
    ) -> None:
        """Copy bytes both ways until both sides close or ``stop`` is set.

        EOF on one side is passed on as a write shutdown of the other, so a
        half-closed client still receives the rest of the reply. A remote EOF
        with ``remote_failed()`` true ends the splice at once.
        """
        open_readers = [local, remote]
        while open_readers and not stop.is_set():
            readable, _, _ = select.select(open_readers, [], [], self._poll_interval)
            for sock in readable:
                peer = remote if sock is local else local
                data = sock.recv(self._buffer_size)
                if data:
                    peer.sendall(data)
                    continue
                if sock is remote and remote_failed():
                    return
                open_readers.remove(sock)
                with contextlib.suppress(OSError):
                    peer.shutdown(socket.SHUT_WR)
