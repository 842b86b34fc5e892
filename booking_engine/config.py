from functools import lru_cache
from typing import List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Booking Engine")
    cors_origins: List[AnyHttpUrl] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    )
    record_store_url: AnyHttpUrl | None = Field(
        default=None
    )
    record_store_token: str | None = Field(
        default=None
    )
    record_store_timeout: float = Field(
        default=10.0
    )
    notification_url: AnyHttpUrl | None = Field(
        default=None
    )
    notification_token: str | None = Field(
        default=None
    )
    notification_timeout: float = Field(
        default=10.0
    )
    default_timezone: str = Field(
        default="UTC"
    )
    lock_ttl_minutes: int = Field(
        default=15, ge=1
    )
    enable_background_jobs: bool = Field(
        default=True
    )
    reminder_sweep_seconds: int = Field(
        default=300, ge=1
    )
    lock_sweep_seconds: int = Field(
        default=900, ge=1
    )
    reminder_max_attempts: int = Field(
        default=1, ge=1
    )
    reminder_retry_backoff_seconds: int = Field(
        default=300, ge=1
    )
    background_max_failures: int = Field(
        default=3, ge=1
    )
    calendar_prodid: str = Field(
        default="-//CareConnect//Booking System//EN"
    )
    calendar_domain: str = Field(
        default="careconnect.com"
    )

    model_config = SettingsConfigDict(env_prefix="BOOKING_", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def use_memory_store(self) -> bool:
        return self.record_store_url is None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
