# backend/app/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional, Set

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


PRODUCTION_ENVIRONMENTS: Set[str] = {"prod", "production", "live"}

_DEFAULT_SQLITE_URL = "sqlite:///./bookbetter.db"


class Settings(BaseSettings):
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    is_testing: bool = Field(default=False, alias="IS_TESTING")

    # Database
    database_url_raw: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Primary database URL (PostgreSQL in production)",
    )
    test_database_url_raw: Optional[str] = Field(
        default=None,
        alias="TEST_DATABASE_URL",
        description="Database URL used when running under pytest",
    )
    db_pool_size: int = Field(default=5, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=5, alias="DB_MAX_OVERFLOW")
    db_pool_timeout: int = Field(default=5, alias="DB_POOL_TIMEOUT")
    db_statement_timeout_ms: int = Field(default=15000, alias="DB_STATEMENT_TIMEOUT_MS")
    sqlite_busy_timeout_seconds: float = Field(default=15.0, alias="SQLITE_BUSY_TIMEOUT_SECONDS")

    # Redis (optional reservation mutex)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    redis_namespace: str = Field(default="bookbetter", alias="REDIS_NAMESPACE")
    reservation_redis_lock_enabled: bool = Field(
        default=False,
        alias="RESERVATION_REDIS_LOCK_ENABLED",
        description="Guard reservations with a Redis mutex per staff resource before hitting the DB",
    )
    reservation_lock_ttl_seconds: int = Field(default=10, alias="RESERVATION_LOCK_TTL_SECONDS")

    # Booking engine policy
    booking_max_retries: int = Field(
        default=3,
        alias="BOOKING_MAX_RETRIES",
        description="Attempts for a reservation when the store reports a transient failure",
    )
    booking_retry_base_delay: float = Field(default=0.05, alias="BOOKING_RETRY_BASE_DELAY")
    buffer_policy: Literal["symmetric", "existing_only"] = Field(
        default="symmetric", alias="BUFFER_POLICY"
    )
    staff_assignment_policy: Literal["first_available", "least_booked"] = Field(
        default="first_available", alias="STAFF_ASSIGNMENT_POLICY"
    )
    default_timezone: str = Field(default="America/New_York", alias="DEFAULT_TIMEZONE")
    availability_max_range_days: int = Field(
        default=62,
        alias="AVAILABILITY_MAX_RANGE_DAYS",
        description="Largest from/to span accepted by the availability query",
    )

    # Outbox worker
    jobs_worker_enabled: bool = Field(default=False, alias="JOBS_WORKER_ENABLED")
    jobs_poll_interval: int = Field(default=5, alias="JOBS_POLL_INTERVAL")
    jobs_batch: int = Field(default=25, alias="JOBS_BATCH")
    jobs_backoff_base: int = Field(default=30, alias="JOBS_BACKOFF_BASE")
    jobs_backoff_cap: int = Field(default=1800, alias="JOBS_BACKOFF_CAP")
    # A job left running longer than this is assumed orphaned by a dead worker
    jobs_running_lease_seconds: int = Field(default=300, alias="JOBS_RUNNING_LEASE_SECONDS")

    # Prometheus
    prometheus_enabled: bool = Field(default=True, alias="PROMETHEUS_ENABLED")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("booking_max_retries")
    @classmethod
    def _validate_retries(cls, value: int) -> int:
        if value < 1:
            raise ValueError("BOOKING_MAX_RETRIES must be at least 1")
        return value

    @field_validator("buffer_policy", "staff_assignment_policy", mode="before")
    @classmethod
    def _normalize_policy(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _require_database_in_production(self) -> "Settings":
        if self.is_production and not self.database_url_raw:
            raise ValueError("DATABASE_URL must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in PRODUCTION_ENVIRONMENTS

    @property
    def app_name(self) -> str:
        return f"{BRAND_NAME.lower()}-api"

    def get_database_url(self) -> str:
        """Get the appropriate database URL based on context."""
        if (self.is_testing or is_running_tests()) and self.test_database_url_raw:
            return self.test_database_url_raw
        return self.database_url_raw or _DEFAULT_SQLITE_URL


settings = Settings()
