"""
Application settings loaded from environment variables using pydantic-settings.
"""

from functools import lru_cache
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Claim coordination configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Redis
    REDIS_HOST: Optional[str] = Field(
        default=None,
        description="Redis host. Claims stay in process memory when unset.",
    )
    REDIS_PORT: Optional[int] = Field(
        default=None,
        description="Redis port. Claims stay in process memory when unset.",
    )
    REDIS_DB: int = Field(default=0, ge=0, description="Redis database index")
    REDIS_PASSWORD: Optional[str] = Field(
        default=None,
        description="Redis password (optional)",
    )
    REDIS_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for establishing the Redis connection",
    )
    REDIS_OPERATION_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for a single Redis command",
    )

    # Claims
    CLAIM_LOCK_TTL_SECONDS: int = Field(
        default=60 * 60 * 24,
        ge=1,
        description="Expiry of the claim lock that serializes the first claim",
    )
    CLAIM_OPTIMISTIC_ATTEMPTS: int = Field(
        default=2,
        ge=1,
        description="Attempts for a watched transaction before reporting the latest state",
    )
    DEBUG_TICKET_REACTIONS: bool = Field(
        default=False,
        description="Log every claim/unclaim attempt with its inputs",
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    @field_validator("REDIS_HOST", mode="before")
    @classmethod
    def blank_host_is_unset(cls, v: Any) -> Any:
        """Treat an empty REDIS_HOST as not configured."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("REDIS_PORT", mode="before")
    @classmethod
    def unusable_port_is_unset(cls, v: Any) -> Any:
        """Treat a blank or non-numeric REDIS_PORT as not configured."""
        if isinstance(v, str):
            v = v.strip()
            if not v.isdigit():
                return None
        return v

    @property
    def redis_configured(self) -> bool:
        """True when both host and port point at a Redis server."""
        return bool(self.REDIS_HOST) and self.REDIS_PORT is not None

    @property
    def redis_endpoint(self) -> str:
        """host:port label used in logs and storage errors."""
        return f"{self.REDIS_HOST}:{self.REDIS_PORT}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
