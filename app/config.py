"""
Configuration management for the multi-tenant file service.
Uses pydantic-settings for environment-based configuration.
"""

from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Settings
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Multi-Tenant File Service"
    DEBUG: bool = False

    # Deployment stage used to pick each tenant's environment block
    ENVIRONMENT: str = "uat"

    # CORS
    ALLOWED_ORIGINS: list[str] = ["*"]

    # Tenant registry. Shape:
    # {"<tenant>": {"name": "...", "environments": {"<env>": {"provider": "s3", ...}}}}
    TENANTS: dict[str, Any] = {}
    TENANTS_FILE: str | None = None

    # Optional per-tenant API key check on X-API-Key
    REQUIRE_API_KEY: bool = False

    # File Upload Limits
    MAX_UPLOAD_SIZE: int = 100 * 1024 * 1024  # 100MB

    # Signed URL lifetimes (minutes)
    DEFAULT_EXPIRY_MINUTES: int = 60
    DOWNLOAD_PROXY_EXPIRY_MINUTES: int = 5

    # Timeout for the download proxy fetch (seconds)
    DOWNLOAD_PROXY_TIMEOUT: float = 60.0

    # Logging
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
