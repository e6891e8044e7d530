"""Tests for the start command."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from kube_relay.cli.main import app
from kube_relay.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesConnectionError,
)
from kube_relay.relay.exceptions import ProvisioningError, ReadinessError, RelayInterruptedError
from kube_relay.relay.models import LifecycleState, RelayRequest, RelaySession


@pytest.fixture
def no_config(temp_dir: Path) -> list[str]:
    """Point --config at a file that does not exist."""
    return ["--config", str(temp_dir / "absent.yaml")]


@pytest.fixture
def mock_client(mock_k8s_client: MagicMock) -> Generator[MagicMock]:
    """Patch client creation for the start command."""
    with patch("kube_relay.cli.commands.start.create_client", return_value=mock_k8s_client):
        yield mock_k8s_client


@pytest.fixture
def controller_cls() -> Generator[MagicMock]:
    """Patch RelayController; run() returns a clean session by default."""
    with patch("kube_relay.cli.commands.start.RelayController") as cls:
        session = RelaySession(name="kube-relay", namespace="default")
        session.state = LifecycleState.TERMINATED
        cls.return_value.run.return_value = session
        yield cls


def _run_request(controller_cls: MagicMock) -> RelayRequest:
    request: RelayRequest = controller_cls.return_value.run.call_args.args[0]
    return request


@pytest.mark.unit
class TestStartCommand:
    """Tests for kube-relay start."""

    def test_requires_cluster_host(self, cli_runner: CliRunner) -> None:
        """--cluster-host is mandatory."""
        result = cli_runner.invoke(app, ["start"])
        assert result.exit_code == 2

    def test_defaults(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """Defaults fill every value except the destination host."""
        result = cli_runner.invoke(app, ["start", "--cluster-host", "db.internal", *no_config])

        assert result.exit_code == 0, result.stdout
        request = _run_request(controller_cls)
        assert request.local_port == 1999
        assert request.destination == "db.internal:80"
        assert request.image == "alpine/socat:1.8.0.0"
        assert request.namespace == "default"
        assert "Relay closed" in result.stdout

    def test_flags_override_defaults(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """Short flags set the ports and image."""
        result = cli_runner.invoke(
            app,
            ["start", "-H", "10.0.3.17", "-l", "8080", "-P", "5432", "-p", "socat:dev", *no_config],
        )

        assert result.exit_code == 0, result.stdout
        request = _run_request(controller_cls)
        assert request.local_port == 8080
        assert request.destination_port == 5432
        assert request.image == "socat:dev"

    def test_config_file_defaults(
        self,
        cli_runner: CliRunner,
        temp_config_file: Path,
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """Relay defaults come from the config file when flags are absent."""
        result = cli_runner.invoke(
            app, ["start", "-H", "db", "--config", str(temp_config_file)]
        )

        assert result.exit_code == 0, result.stdout
        request = _run_request(controller_cls)
        assert request.local_port == 2500
        assert request.image == "alpine/socat:latest"

    def test_namespace_flag_reaches_client_config(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """--namespace and --context are merged into the client configuration."""
        with patch(
            "kube_relay.cli.commands.start.create_client", return_value=mock_client
        ) as create:
            result = cli_runner.invoke(
                app, ["start", "-H", "db", "-n", "tools", "--context", "prod", *no_config]
            )

        assert result.exit_code == 0, result.stdout
        config = create.call_args.args[0]
        assert config.kubernetes.namespace == "tools"
        assert config.kubernetes.context == "prod"

    def test_ready_message(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """The ready callback prints the forwarding line."""
        session = controller_cls.return_value.run.return_value

        def run(request: RelayRequest) -> Any:
            controller_cls.call_args.kwargs["on_ready"](request)
            return session

        controller_cls.return_value.run.side_effect = run

        result = cli_runner.invoke(app, ["start", "-H", "db", "-P", "5432", *no_config])

        assert result.exit_code == 0, result.stdout
        assert "Forwarding from 127.0.0.1:1999 -> db:5432" in result.stdout

    def test_invalid_port(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """An out-of-range port is rejected before the relay starts."""
        result = cli_runner.invoke(app, ["start", "-H", "db", "-l", "0", *no_config])

        assert result.exit_code == 1
        assert "invalid relay request" in result.stdout
        controller_cls.return_value.run.assert_not_called()

    def test_banner_names_context_and_client_is_closed(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """The start banner shows the kube context and the client is closed afterwards."""
        result = cli_runner.invoke(app, ["start", "-H", "db", *no_config])

        assert result.exit_code == 0, result.stdout
        assert "context 'test-context'" in result.stdout
        mock_client.__exit__.assert_called_once()

    def test_ready_timeout_reaches_controller(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """--ready-timeout replaces the configured readiness timeout."""
        result = cli_runner.invoke(
            app, ["start", "-H", "db", "--ready-timeout", "15", *no_config]
        )

        assert result.exit_code == 0, result.stdout
        assert controller_cls.call_args.kwargs["ready_timeout"] == 15.0

    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_non_positive_ready_timeout_rejected(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
        value: str,
    ) -> None:
        """A zero or negative --ready-timeout is a configuration error."""
        result = cli_runner.invoke(
            app, ["start", "-H", "db", f"--ready-timeout={value}", *no_config]
        )

        assert result.exit_code == 1
        assert "ready_timeout must be positive" in result.stdout
        controller_cls.assert_not_called()

    def test_interrupted_exits_130(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """An interrupted session exits with 130."""
        controller_cls.return_value.run.side_effect = RelayInterruptedError("SIGTERM")

        result = cli_runner.invoke(app, ["start", "-H", "db", *no_config])

        assert result.exit_code == 130
        assert "Relay pod deleted" in result.stdout

    def test_interrupt_message(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """The interrupt callback announces cleanup."""

        def run(request: RelayRequest) -> Any:
            controller_cls.call_args.kwargs["on_interrupt"]("SIGTERM")
            raise RelayInterruptedError("SIGTERM")

        controller_cls.return_value.run.side_effect = run

        result = cli_runner.invoke(app, ["start", "-H", "db", *no_config])

        assert result.exit_code == 130
        assert "received SIGTERM, triggering cleanup..." in result.stdout

    def test_existing_pod_hint(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """A leftover relay pod produces a re-run hint."""
        error = ProvisioningError("failed to create relay pod: Pod 'kube-relay' already exists")
        error.__cause__ = KubernetesConflictError()
        controller_cls.return_value.run.side_effect = error

        result = cli_runner.invoke(app, ["start", "-H", "db", *no_config])

        assert result.exit_code == 1
        assert "already exists" in result.stdout
        assert "Hint: A relay pod from an earlier run" in result.stdout

    def test_teardown_failure_warning(
        self,
        cli_runner: CliRunner,
        no_config: list[str],
        mock_client: MagicMock,
        controller_cls: MagicMock,
    ) -> None:
        """A failed delete points the user at the cleanup command."""
        error = ReadinessError("relay pod did not become ready")
        error.teardown_error = KubernetesConnectionError()
        controller_cls.return_value.run.side_effect = error

        result = cli_runner.invoke(app, ["start", "-H", "db", *no_config])

        assert result.exit_code == 1
        assert "Failed to delete" in result.stdout
        assert "kube-relay cleanup" in result.stdout

    def test_cluster_unreachable(
        self, cli_runner: CliRunner, no_config: list[str], controller_cls: MagicMock
    ) -> None:
        """A client that cannot load credentials exits 1 with a hint."""
        with patch(
            "kube_relay.cli.commands.start.create_client",
            side_effect=KubernetesConnectionError("no kubeconfig"),
        ):
            result = cli_runner.invoke(app, ["start", "-H", "db", *no_config])

        assert result.exit_code == 1
        assert "Cannot connect to Kubernetes cluster" in result.stdout

    def test_invalid_config_file(
        self, cli_runner: CliRunner, temp_dir: Path, controller_cls: MagicMock
    ) -> None:
        """A broken config file is a configuration error."""
        path = temp_dir / "config.yaml"
        path.write_text("relay: [")

        result = cli_runner.invoke(app, ["start", "-H", "db", "--config", str(path)])

        assert result.exit_code == 1
        assert "Invalid YAML" in result.stdout
