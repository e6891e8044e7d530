"""Main CLI entry point using Typer."""

from __future__ import annotations

import typer
from rich.console import Console

from kube_relay import __version__
from kube_relay.cli.commands import cleanup, init, start
from kube_relay.logging.config import configure_logging

app = typer.Typer(
    name="kube-relay",
    help="Relay a local TCP port to any host reachable from inside a Kubernetes cluster.",
    add_completion=True,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"kube-relay version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit log lines as JSON.",
    ),
) -> None:
    """kube-relay - temporary socat relay pod plus port-forward, cleaned up on exit."""
    configure_logging(verbose=verbose, debug=debug, json_output=json_logs)


app.command()(start.start)
app.command()(cleanup.cleanup)
app.command()(init.init)


if __name__ == "__main__":
    app()
