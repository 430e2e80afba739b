"""
Application settings using Pydantic.

Provides environment-based configuration loading with PACTLAYER_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PACTLAYER_",
        extra="ignore",
    )

    # Broker
    broker_url: str | None = None
    broker_token: str | None = None
    broker_username: str | None = None
    broker_password: str | None = None

    # Pact files written by consumer tests
    pact_dir: str = "pacts"

    # Mock provider service
    mock_host: str = "127.0.0.1"
    mock_port: int = 0

    # Provider verification
    provider_base_url: str | None = None
    provider_states_setup_url: str | None = None

    # HTTP client settings
    http_timeout: float = 30.0
    http_max_retries: int = 3
    http_retry_backoff_factor: float = 2.0

    # Logging
    log_level: str = "WARNING"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
