"""
Availability policy for booking candidates.

``evaluate`` is a pure function: given a candidate slot, the calendar
configuration and the current instant it either accepts the slot or rejects
it with the FIRST rule it breaks. Rules run in a fixed order so the same
invalid request always yields the same reason:

    1. InvalidDuration     duration not in the allowed set
    2. InvalidService      service not in the allowed set
    3. InvalidStart        start is not a parseable instant
    4. PastTime            start is not strictly in the future
    5. TooFarAhead         start is beyond the lookahead horizon
    6. WeekendUnavailable  start falls on a weekend day (unless allowed)
    7. OutsideHours        [start, end) not inside the local open/close window
    8. BlackoutDate        local date of start is a blackout date

All calendar checks use the business timezone's wall clock.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from ..core.config import Settings


class RejectionReason(str, Enum):
    # Request shape
    MISSING_FIELDS = "MissingFields"
    INVALID_EMAIL = "InvalidEmail"
    INVALID_PHONE = "InvalidPhone"
    FIELD_TOO_LONG = "FieldTooLong"
    # Policy
    INVALID_DURATION = "InvalidDuration"
    INVALID_SERVICE = "InvalidService"
    INVALID_START = "InvalidStart"
    PAST_TIME = "PastTime"
    TOO_FAR_AHEAD = "TooFarAhead"
    WEEKEND_UNAVAILABLE = "WeekendUnavailable"
    OUTSIDE_HOURS = "OutsideHours"
    BLACKOUT_DATE = "BlackoutDate"
    # Calendar
    CONFLICT = "Conflict"


REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.MISSING_FIELDS: "All required fields must be filled.",
    RejectionReason.INVALID_EMAIL: "Invalid email address.",
    RejectionReason.INVALID_PHONE: "Invalid phone number.",
    RejectionReason.FIELD_TOO_LONG: "One of the fields is too long.",
    RejectionReason.INVALID_DURATION: "Invalid duration.",
    RejectionReason.INVALID_SERVICE: "Invalid service.",
    RejectionReason.INVALID_START: "Invalid start time.",
    RejectionReason.PAST_TIME: "Please choose a future time.",
    RejectionReason.TOO_FAR_AHEAD: "Selected date is too far in the future.",
    RejectionReason.WEEKEND_UNAVAILABLE: "Weekends are not available.",
    RejectionReason.OUTSIDE_HOURS: "Selected time is outside business hours.",
    RejectionReason.BLACKOUT_DATE: "Selected date is not available.",
    RejectionReason.CONFLICT: "That slot is already booked. Choose another time.",
}


@dataclass(frozen=True)
class BookingConfig:
    """Calendar rules, read once at startup."""

    start_hour: int = 10
    end_hour: int = 18
    buffer_minutes: int = 15
    days_ahead: int = 14
    allow_weekends: bool = False
    weekend_days: frozenset[int] = frozenset({5, 6})
    blackout_dates: frozenset[date] = frozenset()
    durations: tuple[int, ...] = (15, 30, 45, 60)
    services: tuple[str, ...] = ("UI/UX", "MERN", "Java Full Stack", "Python", "Client Meeting")
    timezone: str = "UTC"

    def __post_init__(self):
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError(f"Invalid business hours: {self.start_hour}-{self.end_hour}")
        if self.buffer_minutes < 0:
            raise ValueError(f"buffer_minutes must be >= 0, got {self.buffer_minutes}")
        if self.days_ahead < 1:
            raise ValueError(f"days_ahead must be >= 1, got {self.days_ahead}")
        ZoneInfo(self.timezone)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BookingConfig":
        return cls(
            start_hour=settings.booking_start_hour,
            end_hour=settings.booking_end_hour,
            buffer_minutes=settings.booking_buffer_minutes,
            days_ahead=settings.booking_days_ahead,
            allow_weekends=settings.booking_allow_weekends,
            weekend_days=frozenset(settings.weekend_days_list),
            blackout_dates=frozenset(settings.blackout_dates_list),
            durations=tuple(settings.durations_list),
            services=tuple(settings.services_list),
            timezone=settings.booking_timezone,
        )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def buffer(self) -> timedelta:
        return timedelta(minutes=self.buffer_minutes)

    def to_public(self) -> dict:
        return {
            "startHour": self.start_hour,
            "endHour": self.end_hour,
            "bufferMinutes": self.buffer_minutes,
            "daysAhead": self.days_ahead,
            "allowWeekends": self.allow_weekends,
            "blackoutDates": sorted(day.isoformat() for day in self.blackout_dates),
            "weekendDays": sorted(self.weekend_days),
            "durations": list(self.durations),
            "services": list(self.services),
            "timezone": self.timezone,
        }


@dataclass(frozen=True)
class Candidate:
    """A proposed slot as submitted by a client, before any validation."""

    start: Union[datetime, str, None]
    duration_minutes: Any
    service: Any


@dataclass(frozen=True)
class Accepted:
    start: datetime
    end: datetime
    duration_minutes: int
    service: str
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    ok: bool = field(default=False, init=False)

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES[self.reason]


Decision = Union[Accepted, Rejected]


def coerce_duration(value: Any) -> Optional[int]:
    """Read a duration given as int or numeric string; None when it is neither."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def parse_start(value: Union[datetime, str, None], tz: ZoneInfo) -> Optional[datetime]:
    """Parse an instant; naive values are business-local wall-clock times. Returns UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # Valid ISO text whose UTC instant falls outside the datetime range.
        return None


def date_key(moment: datetime, tz: ZoneInfo) -> str:
    """Local ``YYYY-MM-DD`` of an instant."""
    return moment.astimezone(tz).date().isoformat()


def is_within_hours(start: datetime, end: datetime, config: BookingConfig) -> bool:
    tz = config.tz
    local_start = start.astimezone(tz)
    day_start = datetime.combine(local_start.date(), time(0), tzinfo=tz)
    opens = day_start + timedelta(hours=config.start_hour)
    closes = day_start + timedelta(hours=config.end_hour)
    return opens <= start and end <= closes


def evaluate(candidate: Candidate, config: BookingConfig, now: datetime) -> Decision:
    duration = coerce_duration(candidate.duration_minutes)
    if duration is None or duration not in config.durations:
        return Rejected(RejectionReason.INVALID_DURATION)

    if not isinstance(candidate.service, str) or candidate.service not in config.services:
        return Rejected(RejectionReason.INVALID_SERVICE)

    tz = config.tz
    start = parse_start(candidate.start, tz)
    if start is None:
        return Rejected(RejectionReason.INVALID_START)

    if start <= now:
        return Rejected(RejectionReason.PAST_TIME)

    if start > now + timedelta(days=config.days_ahead):
        return Rejected(RejectionReason.TOO_FAR_AHEAD)

    local_start = start.astimezone(tz)
    if not config.allow_weekends and local_start.weekday() in config.weekend_days:
        return Rejected(RejectionReason.WEEKEND_UNAVAILABLE)

    end = start + timedelta(minutes=duration)
    if not is_within_hours(start, end, config):
        return Rejected(RejectionReason.OUTSIDE_HOURS)

    if local_start.date() in config.blackout_dates:
        return Rejected(RejectionReason.BLACKOUT_DATE)

    return Accepted(start=start, end=end, duration_minutes=duration, service=candidate.service)
