"""
PathWatch Configuration Module.

Centralizes all configuration settings using Pydantic Settings.
Requires Python 3.11+.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file into os.environ at module import time
# This ensures nested BaseSettings classes can read the values
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    # Try current working directory
    load_dotenv()


class WatcherSettings(BaseSettings):
    """Watch service configuration settings."""

    model_config = SettingsConfigDict(env_prefix="WATCHER_")

    observer: Literal["native", "polling"] = Field(
        default="native",
        description="Change-notification backend: platform native or stat polling",
    )
    polling_interval_s: float = Field(default=1.0, ge=0.1, le=60.0)
    shutdown_timeout_s: float = Field(default=5.0, ge=0.1)
    thread_name: str = Field(default="pathwatch-dispatch")

    @field_validator("observer", mode="before")
    @classmethod
    def normalize_observer(cls, v: str) -> str:
        """Accept observer names in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="json")  # "json" or "console"


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="PathWatch")
    app_version: str = Field(default="0.1.0")
    environment: str = Field(default="development")

    # Sub-settings
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance of Settings for performance.
    """
    return Settings()
