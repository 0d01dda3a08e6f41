"""
Centralized configuration management using Pydantic Settings.

Provides:
- Environment variable loading with validation
- Secret management with SecretStr
- Endpoint and logging configuration

Configuration Sources (in order of precedence):
1. Environment variables
2. .env file
3. Default values

Usage:
    from dewatermark.infra.settings import get_settings

    settings = get_settings()
    print(settings.DEWATERMARK_BASE_URL)
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://platform.dewatermark.ai"
ERASE_WATERMARK_PATH = "/api/object_removal/v1/erase_watermark"
SAVE_LARGE_IMAGE_PATH = "/api/object_removal/v1/save_large_image"


class Settings(BaseSettings):
    """
    Client settings loaded from environment variables.

    The API key uses SecretStr to prevent accidental logging.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # =========================================================================
    # Remote Service
    # =========================================================================

    DEWATERMARK_API_KEY: Optional[SecretStr] = Field(
        default=None,
        description="API key sent as the x-api-key header"
    )
    DEWATERMARK_BASE_URL: str = Field(
        default=DEFAULT_BASE_URL,
        description="Scheme and host of the dewatermark platform"
    )
    DEWATERMARK_TIMEOUT_SECONDS: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Request timeout; unset keeps the httpx default"
    )

    # =========================================================================
    # Logging
    # =========================================================================

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )
    LOG_FORMAT: Literal["json", "console"] = Field(
        default="json",
        description="Log output format"
    )
    USE_STRUCTURED_LOGGING: bool = Field(
        default=True,
        description="Use structlog for structured logging"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("DEWATERMARK_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Endpoint paths are appended with a leading slash."""
        return v.rstrip("/")

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_api_key(self) -> Optional[str]:
        """
        Get the API key.

        Returns:
            API key string or None when not configured
        """
        if self.DEWATERMARK_API_KEY is None:
            return None
        return self.DEWATERMARK_API_KEY.get_secret_value()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for the lifetime of the process.

    Returns:
        Settings instance
    """
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing or reloading configuration.
    """
    get_settings.cache_clear()
