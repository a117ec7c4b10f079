"""Configuration management for MailVault.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the MAILVAULT_ prefix (e.g., MAILVAULT_DB_PATH).
    """

    model_config = SettingsConfigDict(
        env_prefix="MAILVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    db_path: Path = Field(
        default=Path("mailvault.sqlite3"),
        description="Path to the SQLite database holding messages, threads and drafts",
    )
    blob_dir: Path = Field(
        default=Path("blobs"),
        description="Root directory of the filesystem blob store for attachment content",
    )

    # Outbound identity
    from_email: str = Field(
        default="mailbox@example.com",
        description="Address used as From on outbound mail",
    )
    from_name: str | None = Field(
        default=None,
        description="Display name used on outbound mail",
    )
    reply_to_email: str | None = Field(
        default=None,
        description="Optional Reply-To address for outbound mail",
    )

    # Delivery webhook
    webhook_token: str | None = Field(
        default=None,
        description="Shared token expected on delivery-status webhooks; unset disables the check",
    )

    # Event notifications
    webhook_url: str | None = Field(
        default=None,
        description="URL that receives message events; unset disables notifications",
    )
    webhook_secret: str | None = Field(
        default=None,
        description="HMAC-SHA256 key used to sign event notifications",
    )
    webhook_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for posting an event notification",
    )

    # Query defaults
    default_page_size: int = Field(
        default=50,
        ge=1,
        description="Default page size for message, thread and draft listings",
    )
    search_limit: int = Field(
        default=20,
        ge=1,
        description="Default maximum number of search results",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
