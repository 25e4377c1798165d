from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: str = "schedule-service"
    # Display zone only; all stored and compared timestamps are UTC.
    TIMEZONE: str = "Asia/Ho_Chi_Minh"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Redis (arq worker)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Auth
    # Default placeholder keeps local/test runs from failing when real
    # credentials are not required. Real deployments should override via env.
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"

    # Collaborators
    COMMUNICATIONS_SERVICE_URL: str = "http://communications-service:8004"
    EVENTS_ENABLED: bool = True

    # Booking engine
    AUTO_CHECKOUT_GRACE_MINUTES: int = 10
    AUTO_CHECKOUT_BATCH_SIZE: int = 200
    CHECK_IN_OPENS_MINUTES_BEFORE: int = 10
    CHECKOUT_REMINDER_MINUTES_BEFORE_END: int = 5
    BOOKING_REQUEST_TIMEOUT_SECONDS: float = 5.0
    SWEEP_ITEM_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
