"""
Public booking API.

    GET  /api/booking/config         calendar rules for the browser widget
    GET  /api/booking/availability   booked intervals in a local date range
    POST /api/booking                submit a booking
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..core.config import get_settings
from ..core.db import get_session_factory
from ..core.responses import ErrorBody, ErrorCodes, error_json
from ..emailer import Notifier, get_notifier
from ..models import as_utc
from .policy import BookingConfig
from .service import BookingRequest, BookingService
from .store import BookingStore, SqlBookingStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/booking", tags=["booking"])

MAX_RANGE_DAYS = 92


# ────────────────────────────────────────────────────────────────
# Dependencies
# ────────────────────────────────────────────────────────────────

@lru_cache
def get_booking_config() -> BookingConfig:
    return BookingConfig.from_settings(get_settings())


@lru_cache
def get_booking_store() -> SqlBookingStore:
    # One instance per process so every request shares the same day locks.
    return SqlBookingStore(get_session_factory())


def get_booking_service(
    store: BookingStore = Depends(get_booking_store),
    notifier: Notifier = Depends(get_notifier),
    config: BookingConfig = Depends(get_booking_config),
) -> BookingService:
    settings = get_settings()
    return BookingService(
        store=store,
        notifier=notifier,
        config=config,
        notify_email=settings.notify_email or None,
        site_name=settings.site_name,
    )


# ────────────────────────────────────────────────────────────────
# Pydantic Models
# ────────────────────────────────────────────────────────────────

class BookingSubmission(BaseModel):
    """Raw submission; field rules are enforced by BookingService so errors keep one shape."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    service: Optional[str] = None
    duration_minutes: Any = Field(None, alias="durationMinutes")
    start_at: Optional[str] = Field(None, alias="startAt")
    notes: Optional[str] = None

    def to_request(self) -> BookingRequest:
        return BookingRequest(
            name=self.name,
            email=self.email,
            phone=self.phone,
            service=self.service,
            duration_minutes=self.duration_minutes,
            start_at=self.start_at,
            notes=self.notes,
        )


class BookingCreated(BaseModel):
    ok: bool
    id: str


class BookedInterval(BaseModel):
    startAt: str
    endAt: str


class AvailabilityResponse(BaseModel):
    bookings: list[BookedInterval]


def parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


# ────────────────────────────────────────────────────────────────
# Routes
# ────────────────────────────────────────────────────────────────

@router.get("/config")
async def booking_config(config: BookingConfig = Depends(get_booking_config)):
    return config.to_public()


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    responses={400: {"model": ErrorBody}},
)
async def booking_availability(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    store: SqlBookingStore = Depends(get_booking_store),
    config: BookingConfig = Depends(get_booking_config),
):
    """
    Booked intervals (unbuffered) intersecting the local days ``from``..``to``.

    Read-only and lock-free; the result may be slightly stale.
    """
    if not from_ or not to:
        return error_json(status.HTTP_400_BAD_REQUEST, "from and to are required.", ErrorCodes.MISSING_FIELDS)

    first, last = parse_day(from_), parse_day(to)
    if first is None or last is None or last < first:
        return error_json(status.HTTP_400_BAD_REQUEST, "Invalid date range.", ErrorCodes.INVALID_RANGE)
    if (last - first).days >= MAX_RANGE_DAYS:
        return error_json(
            status.HTTP_400_BAD_REQUEST,
            f"Date range is limited to {MAX_RANGE_DAYS} days.",
            ErrorCodes.INVALID_RANGE,
        )

    tz = config.tz
    try:
        range_start = datetime.combine(first, time(0), tzinfo=tz).astimezone(timezone.utc)
        range_end = datetime.combine(last + timedelta(days=1), time(0), tzinfo=tz).astimezone(timezone.utc)
    except OverflowError:
        return error_json(status.HTTP_400_BAD_REQUEST, "Invalid date range.", ErrorCodes.INVALID_RANGE)
    bookings = await store.find_in_range(range_start, range_end)

    return AvailabilityResponse(
        bookings=[
            BookedInterval(
                startAt=as_utc(booking.start_at_utc).isoformat(),
                endAt=as_utc(booking.end_at_utc).isoformat(),
            )
            for booking in bookings
        ]
    )


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=BookingCreated,
    responses={400: {"model": ErrorBody}, 409: {"model": ErrorBody}, 503: {"model": ErrorBody}},
)
async def submit_booking(
    payload: BookingSubmission,
    service: BookingService = Depends(get_booking_service),
):
    outcome = await service.submit(payload.to_request())
    return JSONResponse(status_code=outcome.http_status, content=outcome.to_body())
