"""
pactlayer configuration system.

Provides:
- Pydantic-based settings (PACTLAYER_ environment variables, .env files)
- Per-project and user-level YAML config files
"""

from pactlayer.config.loader import (
    BrokerConfig,
    ProjectConfig,
    ProviderConfig,
    get_config_path,
    load_config,
)
from pactlayer.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "BrokerConfig",
    "ProviderConfig",
    "ProjectConfig",
    "get_config_path",
    "load_config",
]
