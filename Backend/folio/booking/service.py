"""
Booking Service - one end-to-end booking attempt.

State machine of a single submission:

    Submitted -> Validating -> Rejected                      (400)
    Submitted -> Validating -> CheckingConflict -> Conflict  (409)
    Submitted -> Validating -> CheckingConflict -> Persisted (201)

Notifications go out after the booking is persisted and are best-effort:
a failed email is logged and never undoes or fails the booking.
Storage failures propagate as ``StorageUnavailable``; retrying is the
caller's decision.
"""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..emailer import Attachment, Notifier, build_ics_event
from ..models import EMAIL_MAX, NAME_MAX, NOTE_MAX, PHONE_MAX, Booking
from .policy import (
    REJECTION_MESSAGES,
    BookingConfig,
    Candidate,
    RejectionReason,
    evaluate,
)
from .store import BookingStore, SlotConflict

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[0-9+()\-\s]{7,}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class BookingRequest:
    """A booking submission as received from a client."""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    service: Optional[str] = None
    duration_minutes: Any = None
    start_at: Any = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class BookingOutcome:
    ok: bool
    http_status: int
    id: Optional[uuid.UUID] = None
    reason: Optional[RejectionReason] = None

    @classmethod
    def created(cls, booking_id: uuid.UUID) -> "BookingOutcome":
        return cls(ok=True, http_status=201, id=booking_id)

    @classmethod
    def rejected(cls, reason: RejectionReason, http_status: int = 400) -> "BookingOutcome":
        return cls(ok=False, http_status=http_status, reason=reason)

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES[self.reason] if self.reason else ""

    def to_body(self) -> dict:
        if self.ok:
            return {"ok": True, "id": str(self.id)}
        return {"error": self.message, "reason": self.reason.value}


def validate_fields(request: BookingRequest) -> Optional[RejectionReason]:
    """Presence, format and length checks that run before the availability policy."""
    required = [request.name, request.email, request.phone, request.service, request.start_at]
    if any(not _clean(value) for value in required) or request.duration_minutes in (None, "", 0):
        return RejectionReason.MISSING_FIELDS

    email = _clean(request.email)
    if len(email) > EMAIL_MAX or not EMAIL_RE.match(email):
        return RejectionReason.INVALID_EMAIL

    phone = _clean(request.phone)
    if len(phone) > PHONE_MAX or not PHONE_RE.match(phone):
        return RejectionReason.INVALID_PHONE

    if len(_clean(request.name)) > NAME_MAX or len(_clean(request.notes)) > NOTE_MAX:
        return RejectionReason.FIELD_TOO_LONG

    return None


class BookingService:
    def __init__(
        self,
        store: BookingStore,
        notifier: Notifier,
        config: BookingConfig,
        notify_email: Optional[str] = None,
        site_name: str = "Folio Studio",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.config = config
        self.notify_email = notify_email
        self.site_name = site_name
        self.clock = clock

    async def submit(self, request: BookingRequest) -> BookingOutcome:
        invalid = validate_fields(request)
        if invalid is not None:
            logger.info("Booking rejected during validation: %s", invalid.value)
            return BookingOutcome.rejected(invalid)

        candidate = Candidate(
            start=request.start_at,
            duration_minutes=request.duration_minutes,
            service=_clean(request.service),
        )
        decision = evaluate(candidate, self.config, self.clock())
        if not decision.ok:
            logger.info("Booking rejected by policy: %s", decision.reason.value)
            return BookingOutcome.rejected(decision.reason)

        booking = Booking(
            id=uuid.uuid4(),
            name=_clean(request.name),
            email=_clean(request.email),
            phone=_clean(request.phone),
            service=decision.service,
            duration_minutes=decision.duration_minutes,
            start_at_utc=decision.start,
            end_at_utc=decision.end,
            notes=_clean(request.notes) or None,
            created_at=self.clock(),
        )

        try:
            await self.store.reserve(booking, self.config.buffer)
        except SlotConflict as exc:
            logger.info(
                "Booking conflict for %s-%s (%d existing)",
                decision.start.isoformat(),
                decision.end.isoformat(),
                len(exc.conflicts),
            )
            return BookingOutcome.rejected(RejectionReason.CONFLICT, http_status=409)

        logger.info("Booking %s persisted for %s", booking.id, decision.start.isoformat())
        await self._notify(booking)
        return BookingOutcome.created(booking.id)

    async def _notify(self, booking: Booking) -> None:
        when = booking.start_at_utc.astimezone(self.config.tz).strftime("%A, %B %d, %Y %H:%M %Z")
        sends = []

        if self.notify_email:
            sends.append(
                self._send_safely(
                    to=self.notify_email,
                    subject=f"New Booking: {booking.service}",
                    text=(
                        f"Name: {booking.name}\nEmail: {booking.email}\nPhone: {booking.phone}\n"
                        f"Service: {booking.service}\nWhen: {when}\n"
                        f"Duration: {booking.duration_minutes} min\nNotes: {booking.notes or ''}"
                    ),
                )
            )

        ics_text = build_ics_event(
            uid=f"{booking.id}@folio",
            start_at=booking.start_at_utc,
            end_at=booking.end_at_utc,
            summary=f"{booking.service} with {self.site_name}",
            description=f"Booking for {booking.name}",
            organizer_name=self.site_name,
        )
        sends.append(
            self._send_safely(
                to=booking.email,
                subject="Booking confirmed",
                text=(
                    f"Hi {booking.name},\n\nYour booking is confirmed.\n"
                    f"Service: {booking.service}\nWhen: {when}\n"
                    f"Duration: {booking.duration_minutes} min\n\nI will contact you soon.\n"
                ),
                attachments=(Attachment(f"booking-{booking.id}.ics", ics_text, "text/calendar; charset=utf-8"),),
            )
        )
        await asyncio.gather(*sends)

    async def _send_safely(self, to: str, subject: str, text: str, attachments=()) -> bool:
        try:
            return await self.notifier.send(to=to, subject=subject, text=text, attachments=attachments)
        except Exception as exc:
            logger.exception("Failed to send booking email to %s: %s", to, exc)
            return False
