"""Sync service configuration"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# === Path Configuration ===
SYNC_DIR = Path(__file__).parent.parent

# === Poll intervals (seconds) ===
STREAM_DATA_INTERVAL = 15.0
FOLLOWERS_INTERVAL = 30.0
SUBSCRIBERS_INTERVAL = 30.0
HOSTS_INTERVAL = 30.0
CHANNEL_VIEWS_INTERVAL = 60.0
CHANNEL_DATA_INTERVAL = 60.0
CHANNEL_ID_INTERVAL = 60.0
FOLLOW_CHECK_TICK = 0.5


class SyncSettings(BaseSettings):
    """Platform sync settings"""

    model_config = SettingsConfigDict(
        env_file=SYNC_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch
    client_id: str = Field(..., description="Twitch OAuth Client ID")
    bot_oauth: str = Field(..., description="Bot user access token")
    broadcaster_oauth: str = Field(
        default="", description="Broadcaster access token (subscribers, channel edits)"
    )
    bot_id: str = Field(..., description="Bot User ID")
    bot_username: str = Field(..., description="Bot login name")
    broadcaster_username: str = Field(..., description="Broadcaster login name")

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")

    # Stream start/stop is pushed by EventSub in another service
    webhook_streams_enabled: bool = Field(default=False)

    # Health server
    health_port: int = Field(default=4345, description="Health/status HTTP port")

    # Environment
    locale: str = Field(default="en", description="Message locale (en, zh-TW)")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("bot_oauth", "broadcaster_oauth")
    @classmethod
    def strip_oauth_prefix(cls, v: str) -> str:
        """Accept both ``oauth:xxxx`` and bare tokens"""
        return v.split(":", 1)[1] if v.startswith("oauth:") else v

    @field_validator("bot_username", "broadcaster_username")
    @classmethod
    def lowercase_login(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL starts with postgresql://"""
        if not v.startswith("postgresql://"):
            raise ValueError("DATABASE_URL must start with 'postgresql://'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper


@lru_cache
def get_settings() -> SyncSettings:
    """Get cached settings instance"""
    return SyncSettings()  # type: ignore[call-arg]
