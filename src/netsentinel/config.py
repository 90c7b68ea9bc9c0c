"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    kiosk_settings_path: Path = Field(
        default_factory=lambda: Path("data/kiosk_settings.json"),
        validation_alias=AliasChoices("KIOSK_SETTINGS_PATH", "kiosk_settings_path"),
    )
    kiosk_cycle_interval_seconds: int = Field(
        default=10,
        ge=5,
        le=300,
        validation_alias=AliasChoices(
            "KIOSK_CYCLE_INTERVAL_SECONDS",
            "kiosk_cycle_interval_seconds",
        ),
    )
    kiosk_alert_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        validation_alias=AliasChoices(
            "KIOSK_ALERT_INTERVAL_SECONDS",
            "kiosk_alert_interval_seconds",
        ),
    )
    kiosk_schedule_check_seconds: float = Field(
        default=60.0,
        gt=0,
        validation_alias=AliasChoices(
            "KIOSK_SCHEDULE_CHECK_SECONDS",
            "kiosk_schedule_check_seconds",
        ),
    )
    kiosk_session_token: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("KIOSK_SESSION_TOKEN", "kiosk_session_token"),
        description="Shared secret the login frontend sends with session changes.",
    )
    wake_lock_backend: Literal["none", "systemd"] = Field(
        default="none",
        validation_alias=AliasChoices("WAKE_LOCK_BACKEND", "wake_lock_backend"),
        description="How the host keeps the display awake while kiosk mode is on.",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )
    log_dir: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("LOG_DIR", "log_dir"),
    )
    log_retention_hours: int = Field(
        default=48,
        ge=0,
        validation_alias=AliasChoices("LOG_RETENTION_HOURS", "log_retention_hours"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
