# backend/courtbook/core/config.py
import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    CANCELLATION_NOTICE_HOURS,
    DEFAULT_PLATFORM_TIMEZONE,
    MAX_ADVANCE_BOOKING_DAYS,
    RECURRING_MONTHLY_MAX_MONTHS,
    RECURRING_WEEKLY_MAX_MONTHS,
)

logger = logging.getLogger(__name__)


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")

    # Database
    database_url: str = Field(
        default="sqlite:///./courtbook.db",
        description="SQLAlchemy database URL",
    )
    sql_echo: bool = Field(default=False, description="Echo SQL statements to the log")

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe webhook signing secret",
    )
    stripe_platform_fee_percentage: float = Field(
        default=0, description="Platform fee percentage (15 = 15%)"
    )
    stripe_currency: str = Field(default="usd", description="Default currency for payments")

    # Scheduling
    platform_timezone: str = Field(
        default=DEFAULT_PLATFORM_TIMEZONE,
        description="Venue-local timezone used for 'today', lead time and cutoffs",
    )
    cancellation_notice_hours: int = Field(
        default=CANCELLATION_NOTICE_HOURS,
        description="Bookings may be cancelled only this many hours before start",
    )
    max_advance_booking_days: int = Field(
        default=MAX_ADVANCE_BOOKING_DAYS,
        description="Booking horizon used when a venue does not set its own",
    )
    recurring_weekly_max_months: int = Field(default=RECURRING_WEEKLY_MAX_MONTHS)
    recurring_monthly_max_months: int = Field(default=RECURRING_MONTHLY_MAX_MONTHS)

    audit_enabled: bool = Field(default=True, description="Write audit log rows")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("stripe_platform_fee_percentage")
    @classmethod
    def _fee_in_range(cls, value: float) -> float:
        if value < 0 or value > 100:
            raise ValueError("stripe_platform_fee_percentage must be between 0 and 100")
        return value

    @field_validator("cancellation_notice_hours", "max_advance_booking_days")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(0, value)


settings = Settings()
