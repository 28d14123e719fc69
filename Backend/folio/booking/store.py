"""
Booking persistence.

``SqlBookingStore`` keeps bookings in the ``bookings`` table and owns the one
operation that must be atomic: "no buffered overlap exists, then insert".

Writers are serialised per UTC day bucket. Every candidate locks each day its
buffered probe window touches; any two candidates that could conflict share
at least one of those days, so they can never be inside the check/insert
section together. The in-process ``asyncio.Lock`` covers a single worker; on
PostgreSQL the same buckets are also taken with ``pg_advisory_xact_lock`` so
several worker processes behave the same way.
"""

import asyncio
import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Iterable, Optional, Protocol

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import Booking, BookingStatus, PaymentStatus, as_utc
from .interval import Interval

logger = logging.getLogger(__name__)

# High bits of the advisory lock key, keeps our keys apart from other users of advisory locks.
ADVISORY_LOCK_NAMESPACE = 0x466F6C69 << 24


class StorageUnavailable(Exception):
    """Raised when the persistence layer fails; the attempt was not stored."""


class SlotConflict(Exception):
    """Raised by ``reserve`` when the buffered probe window hits stored bookings."""

    def __init__(self, conflicts: list[tuple[datetime, datetime]]):
        self.conflicts = conflicts
        super().__init__(f"{len(conflicts)} conflicting booking(s)")


class BookingStore(Protocol):
    async def find_overlapping(self, buffered_start: datetime, buffered_end: datetime) -> list[Booking]:
        ...

    async def insert(self, booking: Booking) -> Booking:
        ...

    async def find_in_range(self, start: datetime, end: datetime) -> list[Booking]:
        ...

    async def reserve(self, booking: Booking, buffer: timedelta) -> Booking:
        ...


def day_buckets(start: datetime, end: datetime) -> list[date]:
    """UTC calendar days touched by the half-open range ``[start, end)``."""
    first = as_utc(start).date()
    last = (as_utc(end) - timedelta(microseconds=1)).date()
    days = []
    current = first
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def advisory_key(day: date) -> int:
    return ADVISORY_LOCK_NAMESPACE + day.toordinal()


class DayLocks:
    """Process-local locks keyed by UTC day, dropped once nobody holds or waits on them."""

    def __init__(self):
        self._locks: dict[date, asyncio.Lock] = {}
        self._users: dict[date, int] = {}

    @asynccontextmanager
    async def hold(self, days: Iterable[date]) -> AsyncIterator[None]:
        # Sorted acquisition order prevents lock-order deadlocks between multi-day windows.
        ordered = sorted(set(days))
        for day in ordered:
            self._users[day] = self._users.get(day, 0) + 1
            self._locks.setdefault(day, asyncio.Lock())
        try:
            async with AsyncExitStack() as stack:
                for day in ordered:
                    await stack.enter_async_context(self._locks[day])
                yield
        finally:
            for day in ordered:
                self._users[day] -= 1
                if not self._users[day]:
                    del self._users[day]
                    del self._locks[day]

    def __len__(self) -> int:
        return len(self._locks)


class SqlBookingStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], locks: Optional[DayLocks] = None):
        self._session_factory = session_factory
        self._locks = locks or DayLocks()

    async def find_overlapping(
        self,
        buffered_start: datetime,
        buffered_end: datetime,
        session: Optional[AsyncSession] = None,
    ) -> list[Booking]:
        """Bookings whose stored interval intersects the (already buffered) probe window."""
        if session is not None:
            return await self._select_intersecting(session, buffered_start, buffered_end)
        try:
            async with self._session_factory() as own_session:
                return await self._select_intersecting(own_session, buffered_start, buffered_end)
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Overlap query failed")
            raise StorageUnavailable("Overlap query failed") from exc

    async def find_in_range(self, start: datetime, end: datetime) -> list[Booking]:
        """Unbuffered, lock-free read for availability display. May be stale."""
        return await self.find_overlapping(start, end)

    async def insert(self, booking: Booking, session: Optional[AsyncSession] = None) -> Booking:
        """Plain insert with no conflict check. Use ``reserve`` for client submissions."""
        if session is not None:
            session.add(booking)
            await session.flush()
            return booking
        try:
            async with self._session_factory() as own_session:
                async with own_session.begin():
                    own_session.add(booking)
            return booking
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Booking insert failed")
            raise StorageUnavailable("Booking insert failed") from exc

    async def reserve(self, booking: Booking, buffer: timedelta) -> Booking:
        """
        Insert ``booking`` only if no stored booking lies within ``buffer`` of it.

        Raises:
            SlotConflict: a stored booking intersects the buffered probe window
            StorageUnavailable: the database failed; nothing was stored
        """
        candidate = Interval(as_utc(booking.start_at_utc), as_utc(booking.end_at_utc), buffer)
        probe_start, probe_end = candidate.padded()
        days = day_buckets(probe_start, probe_end)

        async with self._locks.hold(days):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        await self._lock_days_in_db(session, days)
                        rows = await self.find_overlapping(probe_start, probe_end, session=session)
                        conflicts = [
                            (as_utc(row.start_at_utc), as_utc(row.end_at_utc))
                            for row in rows
                            if candidate.overlaps(
                                Interval(as_utc(row.start_at_utc), as_utc(row.end_at_utc), buffer)
                            )
                        ]
                        if conflicts:
                            raise SlotConflict(conflicts)
                        await self.insert(booking, session=session)
            except (SQLAlchemyError, OSError) as exc:
                logger.exception("Booking reservation failed")
                raise StorageUnavailable("Booking reservation failed") from exc
        return booking

    async def get(self, booking_id: uuid.UUID) -> Optional[Booking]:
        try:
            async with self._session_factory() as session:
                return await session.get(Booking, booking_id)
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Booking lookup failed")
            raise StorageUnavailable("Booking lookup failed") from exc

    async def list_recent(self, limit: int = 200) -> list[Booking]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Booking).order_by(Booking.created_at.desc()).limit(limit)
                )
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Booking listing failed")
            raise StorageUnavailable("Booking listing failed") from exc

    async def update_admin_fields(
        self,
        booking_id: uuid.UUID,
        status: Optional[BookingStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        admin_note: Optional[str] = None,
    ) -> Optional[Booking]:
        """Administrative mutation. The booked interval is never touched here."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    booking = await session.get(Booking, booking_id)
                    if booking is None:
                        return None
                    if status is not None:
                        booking.status = status
                    if payment_status is not None:
                        booking.payment_status = payment_status
                    if admin_note is not None:
                        booking.admin_note = admin_note
                return booking
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Booking update failed")
            raise StorageUnavailable("Booking update failed") from exc

    @staticmethod
    async def _select_intersecting(session: AsyncSession, start: datetime, end: datetime) -> list[Booking]:
        # SQLite drops the offset on bind, so bounds must already be UTC.
        start, end = as_utc(start), as_utc(end)
        result = await session.execute(
            select(Booking)
            .where(Booking.start_at_utc < end, Booking.end_at_utc > start)
            .order_by(Booking.start_at_utc)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _lock_days_in_db(session: AsyncSession, days: list[date]) -> None:
        connection = await session.connection()
        if connection.dialect.name != "postgresql":
            return
        for day in days:
            await session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(day)})
