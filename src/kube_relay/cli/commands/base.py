"""Shared options, client construction and error output for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console

from kube_relay.core.config.models import RelayConfig, RelayDefaults, load_config
from kube_relay.integrations.kubernetes.client import KubernetesClient
from kube_relay.integrations.kubernetes.config import KubernetesConfig
from kube_relay.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
)
from kube_relay.relay.exceptions import (
    ConfigurationError,
    ProvisioningError,
    ReadinessError,
    RelayError,
    TunnelError,
)

console = Console()


# =============================================================================
# Common Typer Option Annotations
# =============================================================================

NamespaceOption = Annotated[
    str | None,
    typer.Option(
        "--namespace",
        "-n",
        help="Namespace for the relay pod (defaults to the kubeconfig context namespace)",
    ),
]

ContextOption = Annotated[
    str | None,
    typer.Option("--context", help="Kubeconfig context to use"),
]

KubeconfigOption = Annotated[
    str | None,
    typer.Option("--kubeconfig", help="Path to the kubeconfig file"),
]

ConfigFileOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        help="Configuration file (defaults to ~/.config/kube-relay/config.yaml)",
        dir_okay=False,
    ),
]


# =============================================================================
# Configuration and Client
# =============================================================================


def resolve_config(
    config_file: Path | None,
    *,
    context: str | None = None,
    kubeconfig: str | None = None,
    namespace: str | None = None,
    ready_timeout: float | None = None,
) -> RelayConfig:
    """Merge the config file, KUBE_RELAY_* environment and CLI flags.

    Raises:
        ConfigurationError: If the file or the merged values are invalid.
    """
    try:
        config = (load_config(config_file) or RelayConfig()).with_env_overrides()
        overrides = {
            key: value
            for key, value in {
                "context": context,
                "kubeconfig": kubeconfig,
                "namespace": namespace,
            }.items()
            if value
        }
        kubernetes = KubernetesConfig.model_validate(
            {**config.kubernetes.model_dump(exclude_none=True), **overrides}
        )
        relay = config.relay
        if ready_timeout is not None:
            relay = RelayDefaults.model_validate(
                {**relay.model_dump(), "ready_timeout": ready_timeout}
            )
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e
    return config.model_copy(update={"kubernetes": kubernetes, "relay": relay})


def create_client(config: RelayConfig) -> KubernetesClient:
    """Create the Kubernetes client for ``config``."""
    return KubernetesClient(config.kubernetes)


# =============================================================================
# Error Handling
# =============================================================================


def handle_k8s_error(error: KubernetesError) -> None:
    """Print a Kubernetes error with a hint and exit.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    if isinstance(error, KubernetesConnectionError):
        console.print("[red]Error:[/red] Cannot connect to Kubernetes cluster")
        console.print(f"  {error.message}")
        if error.original_error:
            console.print(f"  Cause: {error.original_error}")
        console.print(
            "\n[dim]Hint: Check that your kubeconfig is valid and the cluster is reachable.[/dim]"
        )
    elif isinstance(error, KubernetesAuthError):
        console.print("[red]Error:[/red] Authentication/authorization failed")
        console.print(f"  {error.message}")
        console.print("\n[dim]Hint: The relay needs create/delete/watch on pods and pods/portforward.[/dim]")
    elif isinstance(error, KubernetesNotFoundError):
        console.print("[red]Error:[/red] Resource not found")
        console.print(f"  {error.message}")
    elif isinstance(error, KubernetesConflictError):
        console.print("[red]Error:[/red] Resource conflict")
        console.print(f"  {error.message}")
    elif isinstance(error, KubernetesTimeoutError):
        console.print("[red]Error:[/red] Operation timed out")
        console.print(f"  {error.message}")
    else:
        console.print(f"[red]Error:[/red] {error.message}")
        if error.status_code:
            console.print(f"  HTTP Status: {error.status_code}")

    raise typer.Exit(1)


def handle_relay_error(error: RelayError) -> None:
    """Print a relay session error with a hint and exit with its exit code.

    Raises:
        typer.Exit: Always.
    """
    console.print(f"[red]Error:[/red] {error.message}")

    if isinstance(error, ProvisioningError) and isinstance(error.__cause__, KubernetesConflictError):
        console.print(
            "\n[dim]Hint: A relay pod from an earlier run was still present and has been "
            "removed. Run the command again.[/dim]"
        )
    elif isinstance(error, ReadinessError):
        console.print(
            "\n[dim]Hint: Check the relay image can be pulled, or raise --ready-timeout.[/dim]"
        )
    elif isinstance(error, TunnelError):
        console.print(
            "\n[dim]Hint: Check that the local port is free and that the destination "
            "accepts connections from inside the cluster.[/dim]"
        )
    elif isinstance(error, ConfigurationError):
        console.print("\n[dim]Hint: Run with --help to see accepted values.[/dim]")

    warn_teardown_failure(error.teardown_error)
    raise typer.Exit(error.exit_code)


def warn_teardown_failure(teardown_error: Exception | None) -> None:
    """Tell the user the relay pod may have been left behind."""
    if teardown_error is None:
        return
    console.print(f"[yellow]Warning:[/yellow] Failed to delete the relay pod: {teardown_error}")
    console.print("[dim]Run 'kube-relay cleanup' to remove it.[/dim]")
