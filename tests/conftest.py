"""Shared pytest fixtures for kube_relay tests."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import typer
from typer.testing import CliRunner

from kube_relay.cli.main import app


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text(
        """
version: "1.0"
kubernetes:
  context: staging
  namespace: tools
relay:
  local_port: 2500
  image: alpine/socat:latest
"""
    )
    return config_path


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client."""
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    mock_client.request_timeout = 30
    mock_client.get_current_context.return_value = "test-context"
    mock_client.__enter__.return_value = mock_client
    # Retry decorator that calls the wrapped function once.
    mock_client.make_retry_decorator.return_value = lambda fn: fn
    return mock_client


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset environment variables for each test."""
    for key in list(os.environ.keys()):
        if key.startswith("KUBE_RELAY_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def no_log_file() -> Generator[None]:
    """Keep configure_logging from writing to the real log directory."""
    with patch("kube_relay.logging.config._setup_file_logging"):
        yield


@pytest.fixture
def cli_app() -> typer.Typer:
    """Return the CLI app for testing."""
    return app


@pytest.fixture(autouse=True)
def restore_root_handlers() -> Generator[None]:
    """Drop console handlers that configure_logging bound to a CliRunner stream."""
    root = logging.getLogger()
    original = list(root.handlers)
    yield
    root.handlers = original
