"""Configuration management for the contact timeline engine.

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
    the CONTACT_TIMELINE_ prefix (e.g., CONTACT_TIMELINE_EMAILS_PER_PAGE).
    """

    model_config = SettingsConfigDict(
        env_prefix="CONTACT_TIMELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Cache Configuration
    timestamp_cache_max_entries: int = Field(
        default=500,
        ge=1,
        description="Parsed timestamps kept before the timestamp cache is flushed",
    )
    transform_cache_max_entries: int = Field(
        default=1000,
        ge=1,
        description="Transformed activities kept before the transform cache is flushed",
    )
    thread_cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Age after which a cached thread-grouping result is swept",
    )
    thread_cache_max_entries: int = Field(
        default=50,
        ge=1,
        description="Thread-grouping results kept before the oldest half is dropped",
    )
    thread_cache_sweep_probability: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Chance that a grouping call also sweeps the thread cache",
    )

    # Email Sync Configuration
    emails_per_page: int = Field(
        default=20,
        ge=1,
        description="Number of emails loaded per page for a contact",
    )
    throttle_window_ms: int = Field(
        default=100,
        ge=0,
        description="Window of the leading-edge throttle around push-driven refreshes",
    )
    sync_status_reset_seconds: float | None = Field(
        default=3.0,
        description=(
            "Delay after which a completed/failed sync status returns to idle. "
            "None keeps the final status until the next operation."
        ),
    )
    sync_reload_delay_seconds: float | None = Field(
        default=3.0,
        description=(
            "Delay before a contact's first page is reloaded after a history sync. "
            "None disables the reload."
        ),
    )
    sync_reload_after_send_delay_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Reload delay used when the sync was triggered by sending an email",
    )
    preload_contact_limit: int = Field(
        default=10,
        ge=0,
        description="Most recently synced contacts whose first emails are preloaded",
    )
    preload_page_size: int = Field(
        default=10,
        ge=1,
        description="Emails fetched per preloaded contact",
    )
    optimistic_email_max_age_minutes: float = Field(
        default=5.0,
        gt=0,
        description="Age after which unconfirmed optimistic emails are dropped",
    )
    max_contacts_in_cache: int = Field(
        default=50,
        ge=1,
        description="Contacts whose email pages are kept in memory",
    )
    max_emails_per_contact: int = Field(
        default=200,
        ge=1,
        description="Emails kept in memory per contact",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum number of retries for a failed history sync",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Initial delay between history sync retries in seconds",
    )

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API credentials file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path to Gmail API token file",
    )
    gmail_scope: str = Field(
        default="https://www.googleapis.com/auth/gmail.readonly",
        description="OAuth scope used for Gmail access",
    )
    gmail_max_results: int = Field(
        default=100,
        description="Maximum number of message ids requested per Gmail list call",
    )

    # Local Store Configuration
    store_db_path: Path = Field(
        default=Path("contact_timeline.sqlite3"),
        description="Path to the SQLite database holding synced contact emails",
    )
    store_batch_size: int = Field(
        default=200,
        ge=1,
        description="Batch size used when upserting synced emails into the store",
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
