import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    DateTime,
    Enum as SqlEnum,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .core.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from backends without tz support (SQLite)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class BookingStatus(str, Enum):
    NEW = "New"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


class PaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"


NAME_MAX = 100
EMAIL_MAX = 200
PHONE_MAX = 30
SERVICE_MAX = 100
NOTE_MAX = 2000


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(NAME_MAX), nullable=False)
    email: Mapped[str] = mapped_column(String(EMAIL_MAX), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(PHONE_MAX), nullable=False)
    service: Mapped[str] = mapped_column(String(SERVICE_MAX), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    start_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(NOTE_MAX), nullable=True)
    status: Mapped[BookingStatus] = mapped_column(
        SqlEnum(BookingStatus, values_callable=_enum_values, name="booking_status"),
        default=BookingStatus.NEW,
        nullable=False,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SqlEnum(PaymentStatus, values_callable=_enum_values, name="payment_status"),
        default=PaymentStatus.UNPAID,
        nullable=False,
    )
    admin_note: Mapped[str | None] = mapped_column(String(NOTE_MAX), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (Index("ix_bookings_start_end", "start_at_utc", "end_at_utc"),)

    def to_admin_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "service": self.service,
            "durationMinutes": self.duration_minutes,
            "startAt": as_utc(self.start_at_utc).isoformat(),
            "endAt": as_utc(self.end_at_utc).isoformat(),
            "notes": self.notes or "",
            "status": self.status.value,
            "paymentStatus": self.payment_status.value,
            "adminNote": self.admin_note or "",
            "createdAt": as_utc(self.created_at).isoformat(),
        }

    def __repr__(self):
        return f"<Booking(id={self.id}, service={self.service}, start={self.start_at_utc})>"


class Contact(Base):
    __tablename__ = "contacts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    def to_admin_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "subject": self.subject,
            "message": self.message,
            "createdAt": as_utc(self.created_at).isoformat(),
        }


class Proposal(Base):
    __tablename__ = "proposals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False)
    company: Mapped[str | None] = mapped_column(String(200), nullable=True)
    project_type: Mapped[str] = mapped_column(String(100), nullable=False)
    timeline: Mapped[str] = mapped_column(String(100), nullable=False)
    budget_range: Mapped[str | None] = mapped_column(String(100), nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    def to_admin_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "company": self.company or "",
            "projectType": self.project_type,
            "timeline": self.timeline,
            "budgetRange": self.budget_range or "",
            "details": self.details,
            "createdAt": as_utc(self.created_at).isoformat(),
        }


class VisitDay(Base):
    __tablename__ = "visit_days"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    day: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class VisitLog(Base):
    __tablename__ = "visit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    ip: Mapped[str] = mapped_column(String(64), nullable=False)
    user_agent: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
