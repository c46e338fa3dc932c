"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Library settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TEAMNOTES_",
    )

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Retry executor (store and network calls)
    RETRY_MAX_RETRIES: int = 3
    RETRY_BASE_DELAY_MS: int = 1000
    RETRY_MAX_DELAY_MS: int = 10000

    # Speaker-to-member matching: True returns None on no match, False falls
    # back to the first roster member.
    STRICT_MATCHING: bool = True

    # Max concurrent notification creates in a single fan-out
    NOTIFICATION_FANOUT_LIMIT: int = 10

    @property
    def retry_base_delay(self) -> float:
        """Base retry delay in seconds."""
        return self.RETRY_BASE_DELAY_MS / 1000

    @property
    def retry_max_delay(self) -> float:
        """Retry delay ceiling in seconds."""
        return self.RETRY_MAX_DELAY_MS / 1000


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
