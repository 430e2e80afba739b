"""Tests for the configuration system."""

from pathlib import Path

import pytest

from pactlayer.config import ProjectConfig, Settings, get_config_path, get_settings, load_config
from pactlayer.core.errors import ConfigurationError

CONFIG_YAML = """
broker:
  url: http://broker.from-file
  token: file-token
provider:
  name: orders
  base_url: http://localhost:8000
  version: 2
verification:
  consumer_version_tags: prod
  timeout: 5
pact_dir: contracts
"""


def _write_config(root: Path, text: str = CONFIG_YAML) -> Path:
    path = root / ".pactlayer" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.broker_url is None
        assert settings.pact_dir == "pacts"
        assert settings.mock_port == 0
        assert settings.http_max_retries == 3

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("PACTLAYER_BROKER_URL", "http://broker.env")
        monkeypatch.setenv("PACTLAYER_MOCK_PORT", "8123")
        settings = get_settings()
        assert settings.broker_url == "http://broker.env"
        assert settings.mock_port == 8123


class TestConfigPath:
    def test_none_when_absent(self):
        assert get_config_path() is None

    def test_project_config_found(self, tmp_path):
        path = _write_config(tmp_path)
        assert get_config_path() == path

    def test_home_config_found(self, tmp_path):
        path = _write_config(tmp_path / "home")
        assert get_config_path() == path

    def test_explicit_missing_path(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            get_config_path(tmp_path / "nope.yaml")


class TestLoadConfig:
    """Tests for YAML loading and precedence."""

    def test_defaults_without_file(self):
        config = load_config()
        assert config == ProjectConfig()
        assert config.consumer_version_tags == ["main"]

    def test_file_values(self, tmp_path):
        config = load_config(_write_config(tmp_path))
        assert config.broker.url == "http://broker.from-file"
        assert config.provider.name == "orders"
        assert config.provider.version == "2"
        assert config.consumer_version_tags == ["prod"]
        assert config.timeout == 5.0
        assert config.pact_dir == "contracts"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PACTLAYER_BROKER_URL", "http://broker.env")
        config = load_config(_write_config(tmp_path)).resolve(get_settings())
        assert config.broker.url == "http://broker.env"
        assert config.broker.token == "file-token"
        assert config.provider.base_url == "http://localhost:8000"

    def test_resolve_fills_defaults(self):
        config = load_config().resolve(get_settings())
        assert config.pact_dir == "pacts"
        assert config.timeout == 30.0
        assert config.max_retries == 3
        assert config.backoff_factor == 2.0

    def test_environment_overrides_file_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PACTLAYER_PACT_DIR", "from-env")
        monkeypatch.setenv("PACTLAYER_HTTP_TIMEOUT", "7")
        monkeypatch.setenv("PACTLAYER_HTTP_MAX_RETRIES", "1")
        config = load_config(_write_config(tmp_path)).resolve(get_settings())
        assert config.pact_dir == "from-env"
        assert config.timeout == 7.0
        assert config.max_retries == 1

    def test_file_overrides_setting_defaults(self, tmp_path):
        text = "verification:\n  timeout: 5\n  max_retries: 5\n  retry_backoff_factor: 0.5\npact_dir: contracts\n"
        config = load_config(_write_config(tmp_path, text)).resolve(get_settings())
        assert config.pact_dir == "contracts"
        assert config.timeout == 5.0
        assert config.max_retries == 5
        assert config.backoff_factor == 0.5

    def test_invalid_yaml(self, tmp_path):
        path = _write_config(tmp_path, "broker: [unclosed")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = _write_config(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)
