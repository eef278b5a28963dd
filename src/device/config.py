"""Configuration for the device-side scan queue and sync."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeviceSettings(BaseSettings):
    """Device settings loaded from DEVICE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEVICE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Server that accepts scan submissions
    api_base_url: str = Field(default="http://localhost:8000")
    submit_timeout_seconds: float = Field(default=15.0)

    # Local queue (SQLite)
    queue_database_url: str = Field(default="sqlite:///./pending_scans.db")

    # Periodic sync
    sync_interval_seconds: int = Field(default=3600, ge=1)  # hourly
    min_backoff_seconds: int = Field(default=10, ge=1)
    max_backoff_seconds: int = Field(default=5 * 3600, ge=1)


@lru_cache
def get_device_settings() -> DeviceSettings:
    """Get cached device settings instance."""
    return DeviceSettings()
