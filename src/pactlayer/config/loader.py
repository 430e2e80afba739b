"""
Project configuration file loading.

Search order:
1. Explicit path (--config flag)
2. .pactlayer/config.yaml (project root)
3. ~/.pactlayer/config.yaml (user home)
4. Default configuration

Values from the file sit below CLI flags and PACTLAYER_ environment
variables; ``resolve`` applies that precedence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from pactlayer.config.settings import Settings
from pactlayer.core.errors import ConfigurationError

logger = structlog.get_logger()


def get_config_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the configuration file to use.

    Returns:
        Path to config file or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigurationError(f"Config file not found: {path}", {"path": str(path)})

    cwd_config = Path.cwd() / ".pactlayer" / "config.yaml"
    if cwd_config.exists():
        return cwd_config

    home_config = Path.home() / ".pactlayer" / "config.yaml"
    if home_config.exists():
        return home_config

    return None


@dataclass
class BrokerConfig:
    url: str | None = None
    token: str | None = None
    username: str | None = None
    password: str | None = None


@dataclass
class ProviderConfig:
    name: str | None = None
    base_url: str | None = None
    states_setup_url: str | None = None
    version: str | None = None


@dataclass
class ProjectConfig:
    """Settings read from a project's ``.pactlayer/config.yaml``."""

    broker: BrokerConfig = field(default_factory=BrokerConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    consumer_version_tags: list[str] = field(default_factory=lambda: ["main"])
    pact_dir: str | None = None
    timeout: float | None = None
    max_retries: int | None = None
    backoff_factor: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        broker = data.get("broker") or {}
        provider = data.get("provider") or {}
        verification = data.get("verification") or {}
        if not isinstance(broker, dict) or not isinstance(provider, dict):
            raise ConfigurationError("'broker' and 'provider' sections must be mappings")

        tags = verification.get("consumer_version_tags", ["main"])
        if isinstance(tags, str):
            tags = [tags]

        timeout = verification.get("timeout")
        max_retries = verification.get("max_retries")
        backoff_factor = verification.get("retry_backoff_factor")
        return cls(
            broker=BrokerConfig(
                url=broker.get("url"),
                token=broker.get("token"),
                username=broker.get("username"),
                password=broker.get("password"),
            ),
            provider=ProviderConfig(
                name=provider.get("name"),
                base_url=provider.get("base_url"),
                states_setup_url=provider.get("states_setup_url"),
                version=None if provider.get("version") is None else str(provider["version"]),
            ),
            consumer_version_tags=list(tags),
            pact_dir=data.get("pact_dir"),
            timeout=float(timeout) if timeout is not None else None,
            max_retries=int(max_retries) if max_retries is not None else None,
            backoff_factor=float(backoff_factor) if backoff_factor is not None else None,
        )

    def resolve(self, settings: Settings) -> ProjectConfig:
        """Overlay PACTLAYER_ environment settings on top of file values."""
        return ProjectConfig(
            broker=BrokerConfig(
                url=settings.broker_url or self.broker.url,
                token=settings.broker_token or self.broker.token,
                username=settings.broker_username or self.broker.username,
                password=settings.broker_password or self.broker.password,
            ),
            provider=ProviderConfig(
                name=self.provider.name,
                base_url=settings.provider_base_url or self.provider.base_url,
                states_setup_url=(
                    settings.provider_states_setup_url or self.provider.states_setup_url
                ),
                version=self.provider.version,
            ),
            consumer_version_tags=list(self.consumer_version_tags),
            pact_dir=_layered(settings, "pact_dir", self.pact_dir),
            timeout=_layered(settings, "http_timeout", self.timeout),
            max_retries=_layered(settings, "http_max_retries", self.max_retries),
            backoff_factor=_layered(settings, "http_retry_backoff_factor", self.backoff_factor),
        )


def _layered(settings: Settings, name: str, file_value: Any) -> Any:
    """Explicitly set setting, then file value, then the setting's default."""
    if name in settings.model_fields_set or file_value is None:
        return getattr(settings, name)
    return file_value


def load_config(path: str | Path | None = None) -> ProjectConfig:
    """
    Load the project configuration.

    Args:
        path: Optional explicit config file path

    Returns:
        ProjectConfig instance (defaults when no file exists)
    """
    config_path = get_config_path(path)
    if config_path is None:
        return ProjectConfig()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    logger.debug("loaded_config", path=str(config_path))
    return ProjectConfig.from_dict(data)
