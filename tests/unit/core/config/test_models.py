"""Unit tests for core config models."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from kube_relay.core.config.models import RelayConfig, RelayDefaults, load_config
from kube_relay.relay.exceptions import ConfigurationError


@pytest.mark.unit
class TestRelayDefaults:
    """Tests for RelayDefaults model."""

    def test_defaults(self) -> None:
        """Defaults match the start command defaults."""
        defaults = RelayDefaults()
        assert defaults.local_port == 1999
        assert defaults.cluster_port == 80
        assert defaults.image == "alpine/socat:1.8.0.0"
        assert defaults.address == "127.0.0.1"
        assert defaults.ready_timeout == 120.0

    def test_rejects_invalid_port(self) -> None:
        """Ports must be in 1..65535."""
        with pytest.raises(ValidationError):
            RelayDefaults(local_port=0)

    def test_rejects_non_positive_timeout(self) -> None:
        """ready_timeout must be positive."""
        with pytest.raises(ValidationError, match="ready_timeout must be positive"):
            RelayDefaults(ready_timeout=0)


@pytest.mark.unit
class TestRelayConfig:
    """Tests for RelayConfig model."""

    def test_to_yaml_round_trips(self) -> None:
        """The rendered YAML has a header and loads back into the same config."""
        config = RelayConfig()
        text = config.to_yaml()

        assert text.startswith("# kube-relay configuration")
        assert RelayConfig.model_validate(yaml.safe_load(text)) == config

    def test_to_yaml_omits_unset_values(self) -> None:
        """Unset optional values are left out of the file."""
        data = yaml.safe_load(RelayConfig().to_yaml())
        assert "context" not in data["kubernetes"]

    def test_with_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """KUBE_RELAY_* variables override file values."""
        monkeypatch.setenv("KUBE_RELAY_NAMESPACE", "from-env")
        config = RelayConfig.model_validate({"kubernetes": {"namespace": "tools", "context": "c"}})

        result = config.with_env_overrides()

        assert result.kubernetes.namespace == "from-env"
        assert result.kubernetes.context == "c"
        assert config.kubernetes.namespace == "tools"


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config function."""

    def test_missing_file_returns_none(self, tmp_path: Path) -> None:
        """A missing file is not an error."""
        assert load_config(tmp_path / "missing.yaml") is None

    def test_loads_file(self, temp_config_file: Path) -> None:
        """A valid file is parsed."""
        config = load_config(temp_config_file)

        assert config is not None
        assert config.kubernetes.context == "staging"
        assert config.kubernetes.namespace == "tools"
        assert config.relay.local_port == 2500
        assert config.relay.image == "alpine/socat:latest"
        assert config.relay.cluster_port == 80

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        """An empty file yields the default configuration."""
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == RelayConfig()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Unparseable YAML raises ConfigurationError."""
        path = tmp_path / "config.yaml"
        path.write_text("relay: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        """A top-level list is rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="expected a mapping"):
            load_config(path)

    def test_unknown_key(self, tmp_path: Path) -> None:
        """Unknown keys fail validation."""
        path = tmp_path / "config.yaml"
        path.write_text("relay:\n  pod_name: other\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(path)
