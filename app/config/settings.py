import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is for local development only. Set DATABASE_URL to a PostgreSQL
    connection string in production.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "calendar.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    admin_user_ids: str = Field(default="", validation_alias="ADMIN_USER_IDS")  # Comma-separated list

    # Calendar cadence used when no calendar_config row exists
    default_check_in_weekday: int = Field(default=0, ge=0, le=6, validation_alias="DEFAULT_CHECK_IN_WEEKDAY")
    default_check_out_weekday: int = Field(default=6, ge=0, le=6, validation_alias="DEFAULT_CHECK_OUT_WEEKDAY")

    # Booking policy
    reference_timezone: str = Field(
        default="UTC",
        validation_alias="REFERENCE_TIMEZONE",
        description="Timezone in which calendar days and booking cutoffs are observed",
    )
    booking_cutoff_hour: int = Field(
        default=8,
        ge=0,
        le=23,
        validation_alias="BOOKING_CUTOFF_HOUR",
        description="Before this local hour a week starting today is still bookable",
    )
    season_close_month: int = Field(default=11, ge=1, le=12, validation_alias="SEASON_CLOSE_MONTH")
    season_close_day: int = Field(default=1, ge=1, le=31, validation_alias="SEASON_CLOSE_DAY")
    always_open_months: list[int] = Field(
        default=[5, 6],
        validation_alias="ALWAYS_OPEN_MONTHS",
        description="Months whose weeks are arrival-eligible regardless of visibility status",
    )
    max_selection_weeks: int = Field(default=12, ge=1, validation_alias="MAX_SELECTION_WEEKS")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("reference_timezone")
    @classmethod
    def validate_reference_timezone(cls, value: str) -> str:
        """Fall back to UTC when the configured timezone is unknown."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown REFERENCE_TIMEZONE '{value}'. Defaulting to UTC.")
            return "UTC"
        return value

    @field_validator("always_open_months")
    @classmethod
    def validate_always_open_months(cls, value: list[int]) -> list[int]:
        """Validate that every month is in 1..12."""
        invalid = [month for month in value if not 1 <= month <= 12]
        if invalid:
            raise ValueError(f"ALWAYS_OPEN_MONTHS contains invalid months: {invalid}")
        return sorted(set(value))

    @property
    def admin_ids(self) -> set[str]:
        """Admin user IDs parsed from ADMIN_USER_IDS."""
        return {user_id.strip() for user_id in self.admin_user_ids.split(",") if user_id.strip()}


settings = Settings()
