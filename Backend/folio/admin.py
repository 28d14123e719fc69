"""
Admin API

JSON endpoints for the site owner: dashboard numbers, submission lists and
booking workflow updates.

AUTHENTICATION:
    Either of
    - ``admin_session`` cookie holding an HS256 JWT issued by POST /admin/login
    - HTTP Basic ``ADMIN_USER:ADMIN_PASS``

    Unauthenticated requests get 404 so the admin surface stays hidden.
    When ADMIN_USER / ADMIN_PASS are unset every admin route answers 500.
"""

import base64
import binascii
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .booking.routes import get_booking_store
from .booking.store import SqlBookingStore
from .core.config import Settings, get_settings
from .core.db import get_session
from .core.responses import ErrorCodes, error_json
from .models import NOTE_MAX, Booking, BookingStatus, Contact, PaymentStatus, Proposal, VisitDay
from .rate_limiter import get_client_ip, login_limiter, rate_limit_dependency
from .visits import local_day_key, visits_since

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

ADMIN_COOKIE = "admin_session"
JWT_ALGORITHM = "HS256"
DEFAULT_LIST_LIMIT = 200
MAX_LIST_LIMIT = 500


# ============================================================================
# TOKENS
# ============================================================================

def create_admin_token(settings: Settings, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": settings.admin_user,
        "iat": now,
        "exp": now + timedelta(hours=settings.admin_session_hours),
    }
    return jwt.encode(payload, settings.admin_signing_secret, algorithm=JWT_ALGORITHM)


def verify_admin_token(token: Optional[str], settings: Settings) -> bool:
    if not token:
        return False
    try:
        payload = jwt.decode(token, settings.admin_signing_secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.debug("Admin token rejected: %s", e)
        return False
    return secrets.compare_digest(str(payload.get("sub", "")), settings.admin_user)


def credentials_match(user: str, password: str, settings: Settings) -> bool:
    # Evaluate both comparisons so timing does not reveal which one failed.
    user_ok = secrets.compare_digest(user.encode("utf-8"), settings.admin_user.encode("utf-8"))
    pass_ok = secrets.compare_digest(password.encode("utf-8"), settings.admin_pass.encode("utf-8"))
    return user_ok and pass_ok


def basic_auth_matches(header: Optional[str], settings: Settings) -> bool:
    if not header or not header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(header[6:], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return False
    user, sep, password = decoded.partition(":")
    if not sep:
        return False
    return credentials_match(user, password, settings)


def admin_configured(settings: Settings) -> bool:
    return bool(settings.admin_user and settings.admin_pass)


async def require_admin(request: Request) -> str:
    settings = get_settings()
    if not admin_configured(settings):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Admin auth is not configured.")

    if verify_admin_token(request.cookies.get(ADMIN_COOKIE), settings):
        return settings.admin_user
    if basic_auth_matches(request.headers.get("Authorization"), settings):
        return settings.admin_user

    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")


# ============================================================================
# MODELS
# ============================================================================

class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: str = ""
    password: str = Field("", alias="pass")


class BookingUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = Field(None, alias="paymentStatus")
    admin_note: Optional[str] = Field(None, alias="adminNote", max_length=NOTE_MAX)


# ============================================================================
# SESSION ROUTES
# ============================================================================

@router.post(
    "/login",
    dependencies=[Depends(rate_limit_dependency(login_limiter, "admin-login", "Too many attempts. Try again later."))],
)
async def admin_login(payload: LoginRequest, request: Request):
    settings = get_settings()
    if not admin_configured(settings):
        return error_json(status.HTTP_500_INTERNAL_SERVER_ERROR, "Admin auth is not configured.", ErrorCodes.INTERNAL_ERROR)

    if not credentials_match(payload.user, payload.password, settings):
        logger.warning("Admin login failed from %s", get_client_ip(request))
        return error_json(status.HTTP_401_UNAUTHORIZED, "Invalid credentials.", "InvalidCredentials")

    response = JSONResponse({"ok": True})
    response.set_cookie(
        ADMIN_COOKIE,
        create_admin_token(settings),
        max_age=settings.admin_session_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )
    return response


@router.post("/logout")
async def admin_logout():
    response = JSONResponse({"ok": True})
    response.delete_cookie(ADMIN_COOKIE, path="/", httponly=True, samesite="lax")
    return response


# ============================================================================
# DASHBOARD
# ============================================================================

async def _count(session: AsyncSession, model, *criteria) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(*criteria))
    return int(result.scalar_one())


@router.get("/stats")
async def admin_stats(
    _: str = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    now = datetime.now(timezone.utc)
    today = await session.execute(select(VisitDay.count).where(VisitDay.day == local_day_key(now)))
    return {
        "contacts": await _count(session, Contact),
        "bookings": await _count(session, Booking),
        "proposals": await _count(session, Proposal),
        "upcomingBookings": await _count(session, Booking, Booking.start_at_utc > now),
        "visitsToday": today.scalar_one_or_none() or 0,
        "visitsLast7Days": await visits_since(session, 7, now),
    }


@router.get("/bookings")
async def admin_bookings(
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    _: str = Depends(require_admin),
    store: SqlBookingStore = Depends(get_booking_store),
):
    bookings = await store.list_recent(limit)
    return {"bookings": [booking.to_admin_dict() for booking in bookings]}


@router.get("/bookings/{booking_id}")
async def admin_booking_detail(
    booking_id: uuid.UUID,
    _: str = Depends(require_admin),
    store: SqlBookingStore = Depends(get_booking_store),
):
    booking = await store.get(booking_id)
    if booking is None:
        return error_json(status.HTTP_404_NOT_FOUND, "Booking not found.", ErrorCodes.NOT_FOUND)
    return booking.to_admin_dict()


@router.patch("/bookings/{booking_id}")
async def admin_update_booking(
    booking_id: uuid.UUID,
    payload: BookingUpdate,
    _: str = Depends(require_admin),
    store: SqlBookingStore = Depends(get_booking_store),
):
    """Workflow/payment/note changes only; the booked time is immutable."""
    if payload.status is None and payload.payment_status is None and payload.admin_note is None:
        return error_json(status.HTTP_400_BAD_REQUEST, "Nothing to update.", ErrorCodes.INVALID_REQUEST)

    booking = await store.update_admin_fields(
        booking_id,
        status=payload.status,
        payment_status=payload.payment_status,
        admin_note=payload.admin_note.strip() if payload.admin_note is not None else None,
    )
    if booking is None:
        return error_json(status.HTTP_404_NOT_FOUND, "Booking not found.", ErrorCodes.NOT_FOUND)
    logger.info("Admin updated booking %s", booking_id)
    return booking.to_admin_dict()


@router.get("/contacts")
async def admin_contacts(
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    _: str = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(Contact).order_by(Contact.created_at.desc()).limit(limit))
    return {"contacts": [contact.to_admin_dict() for contact in result.scalars().all()]}


@router.get("/proposals")
async def admin_proposals(
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    _: str = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(Proposal).order_by(Proposal.created_at.desc()).limit(limit))
    return {"proposals": [proposal.to_admin_dict() for proposal in result.scalars().all()]}
