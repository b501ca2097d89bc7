"""
Configuration Management for Catatuang

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Quota limits, the civil timezone offset and the ledger store location
are deployment concerns, so none of them are hardcoded in the engine.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Ledger store (SQLAlchemy) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///catatuang.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )
    connect_timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Seconds to wait for a database lock or connection"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject obviously malformed URLs early."""
        if "://" not in v:
            raise ValueError(f"Invalid database URL: {v}")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    text_model_name: str = Field(
        default="gemma-3-4b-it",
        description="Model used to parse short chat messages"
    )
    vision_model_name: str = Field(
        default="gemini-2.5-flash",
        description="Model used for receipt photos and corrections"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Civil calendar (Asia/Jakarta has no DST)
    timezone_offset_hours: int = Field(
        default=7,
        ge=-12,
        le=14,
        description="Fixed UTC offset used for day, week and month boundaries"
    )

    # Daily quotas
    daily_chat_limit: int = Field(
        default=100,
        ge=1,
        description="Chat messages parsed per user per day"
    )
    daily_receipt_limit: int = Field(
        default=3,
        ge=1,
        description="Receipt scans per user per day"
    )

    # Correction workflow
    pending_receipt_ttl_minutes: int = Field(
        default=30,
        ge=1,
        description="Minutes before an unconfirmed receipt candidate expires"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported image formats"
    )
    min_receipt_dimension_px: int = Field(
        default=100,
        ge=1,
        description="Smallest width or height accepted for a receipt photo"
    )

    # Ledger limits
    max_transaction_amount: float = Field(
        default=1_000_000_000_000.0,
        gt=0,
        description="Largest amount accepted for a single transaction"
    )
    recent_transactions_limit: int = Field(
        default=8,
        ge=1,
        le=100,
        description="Rows shown in the dashboard recent list"
    )
    primary_account_name: str = Field(
        default="Main",
        min_length=1,
        description="Name of the auto-created primary account"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings(settings: Optional[Settings] = None) -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    `<name>_error` entry for every section that failed to load.
    Useful for startup checks.
    """
    results: dict[str, object] = {}
    settings = settings or get_settings()

    for name in ("database", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
