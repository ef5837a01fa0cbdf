"""
Application settings using Pydantic.

Provides environment-based configuration loading with ACCORD_ prefix.
"""

import os
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Broker
    service_url: str = "http://localhost:3000"
    api_key: str | None = None
    environment: str = "test"

    # Identity (falls back to pyproject.toml when unset)
    consumer: str | None = None
    consumer_version: str | None = None
    provider: str | None = None
    provider_version: str | None = None

    # Recording
    recording_enabled: bool = True
    flush_threshold: int = 10
    ci: bool = False
    build_id: str | None = None

    # HTTP client settings
    http_timeout: float = 30.0
    http_max_retries: int = 3
    replay_timeout: float = 30.0

    # Spec cache
    spec_cache_ttl: int = 300
    spec_cache_size: int = 128

    # Debug
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "ACCORD_"

    @property
    def in_ci(self) -> bool:
        """True when running under continuous integration."""
        return self.ci or bool(os.environ.get("CI"))

    @property
    def test_run(self) -> str:
        """Identifier of the current test run, used as fixture provenance."""
        return self.build_id or os.environ.get("BUILD_ID") or "local"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
