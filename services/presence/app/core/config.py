"""
Configuration settings for the presence service.
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    """Find the .env file in potential locations."""
    # Check environment variable first
    env_file = os.getenv("ENV_FILE")
    if env_file and os.path.exists(env_file):
        return env_file

    possible_locations = [
        # Repository root (local development)
        os.path.join(Path(__file__).parent.parent.parent.parent.parent, ".env"),
        # Docker container root
        "/app/.env",
        # Current directory
        ".env",
    ]

    for location in possible_locations:
        if os.path.exists(location):
            return location

    return possible_locations[0]


class Settings(BaseSettings):
    """Presence Service configuration settings."""

    # Service information
    PROJECT_NAME: str = "Launcher Presence Service"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    # Environment
    ENV: str = Field(
        default="development",
        description="Environment (development, staging, production)"
    )

    # CORS settings
    CORS_ORIGINS: List[str] = Field(
        default=["*"],
        description="CORS allowed origins"
    )
    CORS_CREDENTIALS: bool = Field(
        default=True,
        description="Allow credentials"
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    # Database settings
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./data/players.db",
        description="SQLAlchemy async database URL"
    )
    DB_ECHO: bool = Field(default=False, description="Echo SQL statements")
    DB_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="Seconds a single database operation may take"
    )
    DB_CONNECT_ATTEMPTS: int = Field(
        default=5,
        ge=1,
        description="Attempts to reach the database at startup"
    )

    # Presence settings
    SESSION_TTL_SECONDS: int = Field(
        default=300,
        ge=1,
        description="Seconds without an update before a session is stale"
    )
    CLEANUP_INTERVAL_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between stale session sweeps"
    )
    FLUSH_INTERVAL_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between flushes of session updates to the database"
    )
    POPULAR_VERSIONS_WINDOW_HOURS: int = Field(default=24, ge=1)
    POPULAR_VERSIONS_LIMIT: int = Field(default=5, ge=1)
    OBSERVER_QUEUE_SIZE: int = Field(
        default=32,
        ge=1,
        description="Pending notifications per observer before eviction"
    )

    # Rate limiting of the /api routes, per client address
    RATE_LIMIT: str = Field(
        default="100/15minutes",
        description="slowapi limit string applied to every API route"
    )

    # Server settings
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000)
    SSL_KEYFILE: Optional[str] = Field(default=None)
    SSL_CERTFILE: Optional[str] = Field(default=None)

    @field_validator("ENV")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed_envs = ["development", "staging", "production"]
        if v not in allowed_envs:
            raise ValueError(f"ENV must be one of {allowed_envs}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}")
        return v.upper()

    @field_validator("CORS_ORIGINS")
    @classmethod
    def validate_cors_origins(cls, v: List[str], info: Any) -> List[str]:
        if info.data.get("ENV") == "production":
            if "*" in v:
                raise ValueError(
                    "Wildcard CORS origin not allowed in production")
        return v

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
