"""Cleanup command: remove a relay pod left behind by an earlier run."""

from __future__ import annotations

import structlog

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
)
from kube_relay.integrations.kubernetes.exceptions import KubernetesError
from kube_relay.relay.exceptions import RelayError
from kube_relay.services.kubernetes.relay_pod_manager import RelayPodManager

logger = structlog.get_logger()


def cleanup(
    namespace: NamespaceOption = None,
    context: ContextOption = None,
    kubeconfig: KubeconfigOption = None,
    config_file: ConfigFileOption = None,
) -> None:
    """Delete the relay pod if one exists.

    Useful after a run whose teardown failed, or after the process was
    killed with SIGKILL.
    """
    try:
        config = resolve_config(
            config_file,
            context=context,
            kubeconfig=kubeconfig,
            namespace=namespace,
        )
        with create_client(config) as client:
            manager = RelayPodManager(client)
            target_namespace = client.default_namespace

            pod = manager.find_relay_pod(target_namespace)
            if pod is None:
                console.print(f"[dim]No relay pod found in namespace '{target_namespace}'.[/dim]")
                return

            phase = pod.status.phase if pod.status else "Unknown"
            logger.debug("relay_pod_found", namespace=target_namespace, phase=phase)
            if manager.delete_relay_pod(target_namespace):
                console.print(
                    f"[green]Deleted relay pod '{pod.metadata.name}' "
                    f"in namespace '{target_namespace}' (was {phase}).[/green]"
                )
            else:
                console.print("[dim]Relay pod was already gone.[/dim]")
    except RelayError as e:
        handle_relay_error(e)
    except KubernetesError as e:
        handle_k8s_error(e)
