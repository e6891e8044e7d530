"""Init command for writing a default configuration file."""

from __future__ import annotations

import structlog
import typer
from rich.console import Console
from rich.panel import Panel

from kube_relay.core.config.models import CONFIG_DIR, CONFIG_FILE, RelayConfig

console = Console()
logger = structlog.get_logger()


def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
) -> None:
    """Write a default configuration to ~/.config/kube-relay/config.yaml."""
    logger.info("Initializing config", path=str(CONFIG_FILE))

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    if CONFIG_FILE.exists() and not force:
        console.print(f"[yellow]Configuration already exists at {CONFIG_FILE}[/yellow]")
        console.print("Use --force to overwrite.")
        raise typer.Exit(code=1)

    CONFIG_FILE.write_text(RelayConfig().to_yaml())

    console.print(
        Panel(
            f"[green]Configuration initialized successfully![/green]\n\n"
            f"Configuration created at: {CONFIG_FILE}\n\n"
            f"Next steps:\n"
            f"  1. Edit {CONFIG_FILE} to set your context, namespace and relay defaults\n"
            f"  2. Run [bold]kube-relay start --cluster-host <host>[/bold] to open a relay",
            title="kube-relay init",
            border_style="green",
        )
    )

    logger.info("Configuration initialized", config_file=str(CONFIG_FILE))
