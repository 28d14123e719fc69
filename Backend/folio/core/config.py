from datetime import date, datetime
from functools import lru_cache
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    database_url: str = Field(default="sqlite+aiosqlite:///./folio.db", alias="DATABASE_URL")
    allowed_origins: str = Field(default="http://localhost:3000", alias="ALLOWED_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Booking engine
    booking_timezone: str = Field(default="UTC", alias="BOOKING_TIMEZONE")
    booking_start_hour: int = Field(default=10, alias="BOOKING_START_HOUR")
    booking_end_hour: int = Field(default=18, alias="BOOKING_END_HOUR")
    booking_buffer_minutes: int = Field(default=15, alias="BOOKING_BUFFER_MIN")
    booking_days_ahead: int = Field(default=14, alias="BOOKING_DAYS_AHEAD")
    booking_allow_weekends: bool = Field(default=False, alias="BOOKING_ALLOW_WEEKENDS")
    booking_weekend_days: str = Field(default="5,6", alias="BOOKING_WEEKEND_DAYS")
    booking_blackout_dates: str = Field(default="", alias="BOOKING_BLACKOUT_DATES")
    booking_durations: str = Field(default="15,30,45,60", alias="BOOKING_DURATIONS")
    booking_services: str = Field(
        default="UI/UX,MERN,Java Full Stack,Python,Client Meeting",
        alias="BOOKING_SERVICES",
    )

    # Email
    notify_email: str = Field(default="", alias="NOTIFY_EMAIL")
    resend_api_key: str = Field(default="", alias="RESEND_API_KEY")
    resend_from: str = Field(default="", alias="RESEND_FROM")
    site_name: str = Field(default="Folio Studio", alias="SITE_NAME")

    # Admin
    admin_user: str = Field(default="", alias="ADMIN_USER")
    admin_pass: str = Field(default="", alias="ADMIN_PASS")
    admin_secret: str = Field(default="", alias="ADMIN_SECRET")
    admin_session_hours: int = Field(default=8, alias="ADMIN_SESSION_HOURS")
    cookie_secure: bool = Field(default=False, alias="COOKIE_SECURE")

    # Rate limits
    contact_rate_limit: int = Field(default=5, alias="CONTACT_RATE_LIMIT")
    contact_rate_window_seconds: int = Field(default=60, alias="CONTACT_RATE_WINDOW_SECONDS")
    login_rate_limit: int = Field(default=5, alias="LOGIN_RATE_LIMIT")
    login_rate_window_seconds: int = Field(default=600, alias="LOGIN_RATE_WINDOW_SECONDS")

    # Visit counter
    track_paths: str = Field(default="/", alias="TRACK_PATHS")

    model_config = SettingsConfigDict(env_file=(".env", "Backend/.env"), extra="ignore")

    @field_validator("booking_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"BOOKING_TIMEZONE is not a known timezone: {v!r}")
        return v

    @field_validator("booking_blackout_dates")
    @classmethod
    def validate_blackout_dates(cls, v: str) -> str:
        for item in _split_csv(v):
            try:
                datetime.strptime(item, "%Y-%m-%d")
            except ValueError:
                raise ValueError(f"BOOKING_BLACKOUT_DATES must hold YYYY-MM-DD dates, got {item!r}")
        return v

    @field_validator("booking_durations")
    @classmethod
    def validate_durations(cls, v: str) -> str:
        try:
            values = [int(item) for item in _split_csv(v)]
        except ValueError:
            raise ValueError(f"BOOKING_DURATIONS must be a list of integers, got {v!r}")
        if not values or any(item <= 0 for item in values):
            raise ValueError(f"BOOKING_DURATIONS must hold positive minutes, got {v!r}")
        return v

    @field_validator("booking_weekend_days")
    @classmethod
    def validate_weekend_days(cls, v: str) -> str:
        try:
            values = [int(item) for item in _split_csv(v)]
        except ValueError:
            raise ValueError(f"BOOKING_WEEKEND_DAYS must be weekday numbers 0-6, got {v!r}")
        if any(not 0 <= item <= 6 for item in values):
            raise ValueError(f"BOOKING_WEEKEND_DAYS must be weekday numbers 0-6, got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_booking_window(self):
        if not 0 <= self.booking_start_hour <= 23:
            raise ValueError(f"BOOKING_START_HOUR must be between 0 and 23, got {self.booking_start_hour}")
        if not self.booking_start_hour < self.booking_end_hour <= 24:
            raise ValueError(
                "BOOKING_END_HOUR must be after BOOKING_START_HOUR and at most 24, "
                f"got {self.booking_end_hour}"
            )
        if self.booking_buffer_minutes < 0:
            raise ValueError(f"BOOKING_BUFFER_MIN must be >= 0, got {self.booking_buffer_minutes}")
        if self.booking_days_ahead < 1:
            raise ValueError(f"BOOKING_DAYS_AHEAD must be >= 1, got {self.booking_days_ahead}")
        return self

    @property
    def allowed_origins_list(self) -> List[str]:
        return _split_csv(self.allowed_origins)

    @property
    def blackout_dates_list(self) -> List[date]:
        return [datetime.strptime(item, "%Y-%m-%d").date() for item in _split_csv(self.booking_blackout_dates)]

    @property
    def durations_list(self) -> List[int]:
        return [int(item) for item in _split_csv(self.booking_durations)]

    @property
    def services_list(self) -> List[str]:
        return _split_csv(self.booking_services)

    @property
    def weekend_days_list(self) -> List[int]:
        return [int(item) for item in _split_csv(self.booking_weekend_days)]

    @property
    def track_paths_list(self) -> List[str]:
        return _split_csv(self.track_paths)

    @property
    def admin_signing_secret(self) -> str:
        return self.admin_secret or self.admin_pass


@lru_cache
def get_settings() -> Settings:
    return Settings()
