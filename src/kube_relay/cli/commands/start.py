"""Start command: run a relay until the tunnel closes or the process is interrupted."""

from __future__ import annotations

from typing import Annotated

import structlog
import typer

from kube_relay.cli.commands.base import (
    ConfigFileOption,
    ContextOption,
    KubeconfigOption,
    NamespaceOption,
    console,
    create_client,
    handle_k8s_error,
    handle_relay_error,
    resolve_config,
    warn_teardown_failure,
)
from kube_relay.integrations.kubernetes.exceptions import KubernetesError
from kube_relay.integrations.kubernetes.portforward import PortForwardTunnel
from kube_relay.relay.cancellation import CancellationToken, InterruptWatcher
from kube_relay.relay.controller import RelayController
from kube_relay.relay.exceptions import RelayError, RelayInterruptedError
from kube_relay.relay.models import RelayRequest
from kube_relay.services.kubernetes.relay_pod_manager import RelayPodManager

logger = structlog.get_logger()


def start(
    cluster_host: Annotated[
        str,
        typer.Option("--cluster-host", "-H", help="Destination host as seen from inside the cluster"),
    ],
    local_port: Annotated[
        int | None,
        typer.Option("--local-port", "-l", help="Local TCP port to listen on [default: 1999]"),
    ] = None,
    cluster_port: Annotated[
        int | None,
        typer.Option("--cluster-port", "-P", help="Destination TCP port [default: 80]"),
    ] = None,
    pod_image: Annotated[
        str | None,
        typer.Option("--pod-image", "-p", help="socat image for the relay pod"),
    ] = None,
    address: Annotated[
        str | None,
        typer.Option("--address", help="Local address to bind to [default: 127.0.0.1]"),
    ] = None,
    ready_timeout: Annotated[
        float | None,
        typer.Option("--ready-timeout", help="Seconds to wait for the relay pod to run"),
    ] = None,
    namespace: NamespaceOption = None,
    context: ContextOption = None,
    kubeconfig: KubeconfigOption = None,
    config_file: ConfigFileOption = None,
) -> None:
    """Relay a local port to a TCP endpoint inside the cluster.

    Creates the relay pod, waits for it to run, forwards the local port to it
    and deletes the pod on exit (including Ctrl+C and SIGTERM).

    Examples:
        kube-relay start --cluster-host postgres.db.svc --cluster-port 5432
        kube-relay start -H 10.0.3.17 -P 8080 -l 8080 -n staging
    """
    try:
        config = resolve_config(
            config_file,
            context=context,
            kubeconfig=kubeconfig,
            namespace=namespace,
            ready_timeout=ready_timeout,
        )
        defaults = config.relay
        with create_client(config) as client:
            request = RelayRequest.build(
                local_port=local_port if local_port is not None else defaults.local_port,
                destination_host=cluster_host,
                destination_port=(
                    cluster_port if cluster_port is not None else defaults.cluster_port
                ),
                image=pod_image or defaults.image,
                namespace=client.default_namespace,
            )
            bind_address = address or defaults.address

            def on_ready(req: RelayRequest) -> None:
                console.print(
                    f"Forwarding from {bind_address}:{req.local_port} -> {req.destination} "
                    f"(pod '{req.resource_name}' in namespace '{req.namespace}')"
                )
                console.print("[dim]Press Ctrl+C to stop the relay.[/dim]")

            def on_interrupt(signal_name: str) -> None:
                console.print(f"\n[yellow]received {signal_name}, triggering cleanup...[/yellow]")

            token = CancellationToken()
            controller = RelayController(
                RelayPodManager(client),
                PortForwardTunnel(client, address=bind_address),
                token,
                ready_timeout=defaults.ready_timeout,
                on_ready=on_ready,
                on_interrupt=on_interrupt,
            )

            console.print(
                f"[dim]Starting relay pod '{request.resource_name}' "
                f"in namespace '{request.namespace}' "
                f"(context '{client.get_current_context()}')...[/dim]"
            )
            with InterruptWatcher(token):
                session = controller.run(request)

        console.print("[green]Relay closed.[/green]")
        warn_teardown_failure(session.teardown_error)
    except RelayInterruptedError as e:
        if e.teardown_error is None:
            console.print("[dim]Relay pod deleted.[/dim]")
        warn_teardown_failure(e.teardown_error)
        raise typer.Exit(e.exit_code) from None
    except RelayError as e:
        logger.debug("relay_failed", error=str(e), state=e.state.value if e.state else None)
        handle_relay_error(e)
    except KubernetesError as e:
        handle_k8s_error(e)
