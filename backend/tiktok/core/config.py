"""TikTok relay configuration"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# === Path Configuration ===
TIKTOK_DIR = Path(__file__).parent.parent
BACKEND_DIR = TIKTOK_DIR.parent


class TikTokRelaySettings(BaseSettings):
    """TikTok relay settings"""

    model_config = SettingsConfigDict(
        env_file=BACKEND_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")

    # Battle rules
    round_timeout_seconds: float = Field(
        default=15.0, gt=0, description="Quiescence before a round is resolved by score"
    )
    max_hearts: int = Field(default=5, ge=1, description="Hearts per side at game start")

    # Session housekeeping
    cleanup_interval_seconds: float = Field(
        default=30.0, gt=0, description="Seconds between stale-session sweeps"
    )
    stale_session_seconds: float = Field(
        default=30.0, ge=0, description="Age after which idle sessions are deleted"
    )

    # TikTokLive signing server (EulerStream)
    sign_api_key: str = Field(default="", description="Signing server API key")

    # Health server
    health_port: int = Field(default=4345, description="HTTP port for /health and /status")

    # Environment
    log_level: str = Field(default="INFO", description="Logging level")

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
def get_settings() -> TikTokRelaySettings:
    """Get cached settings instance"""
    return TikTokRelaySettings()  # type: ignore[call-arg]


def validate_env_vars() -> TikTokRelaySettings:
    """Load settings once at startup, raising ``ValueError`` on anything missing or invalid."""
    try:
        settings = get_settings()
    except Exception as e:
        logging.getLogger("Relay").error(f"Environment validation failed: {e}")
        raise ValueError(str(e)) from e
    logger.info("All required environment variables validated successfully")
    return settings
