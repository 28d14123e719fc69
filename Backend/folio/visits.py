"""
Visit counter.

A middleware counts GET requests to the tracked pages (TRACK_PATHS): one
VisitDay row per local day holds the running total and every hit appends a
VisitLog row. Tracking must never break page delivery, so failures are
logged and the request continues.
"""

import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware

from .booking.policy import date_key
from .core.config import get_settings
from .core.db import get_session
from .models import VisitDay, VisitLog
from .rate_limiter import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter(tags=["visits"])

VISIT_HISTORY_DAYS = 90


def local_day_key(now: datetime | None = None) -> str:
    tz = ZoneInfo(get_settings().booking_timezone)
    return date_key(now or datetime.now(timezone.utc), tz)


async def increment_day(session: AsyncSession, day: str) -> None:
    """Atomic upsert of the per-day counter."""
    connection = await session.connection()
    insert = postgresql.insert if connection.dialect.name == "postgresql" else sqlite.insert
    stmt = insert(VisitDay).values(day=day, count=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[VisitDay.day],
        set_={"count": VisitDay.count + 1},
    )
    await session.execute(stmt)


async def track_visit(
    session_factory: async_sessionmaker[AsyncSession],
    path: str,
    ip: str,
    user_agent: str,
    now: datetime | None = None,
) -> None:
    async with session_factory() as session:
        async with session.begin():
            await increment_day(session, local_day_key(now))
            session.add(VisitLog(path=path[:500], ip=ip[:64], user_agent=user_agent[:500]))


class VisitTrackingMiddleware(BaseHTTPMiddleware):
    """Counts GETs to tracked paths using ``app.state.session_factory``."""

    def __init__(self, app, paths: list[str]):
        super().__init__(app)
        self.paths = set(paths)

    async def dispatch(self, request: Request, call_next):
        if request.method == "GET" and request.url.path in self.paths:
            try:
                await track_visit(
                    request.app.state.session_factory,
                    path=request.url.path,
                    ip=get_client_ip(request),
                    user_agent=request.headers.get("user-agent", "unknown"),
                )
            except (SQLAlchemyError, OSError) as exc:
                logger.warning("Visit tracking error: %s", exc)
        return await call_next(request)


async def recent_visits(session: AsyncSession, limit: int = VISIT_HISTORY_DAYS) -> list[VisitDay]:
    result = await session.execute(select(VisitDay).order_by(VisitDay.day.desc()).limit(limit))
    return list(result.scalars().all())


async def visits_since(session: AsyncSession, days: int, now: datetime | None = None) -> int:
    """Total visits over the last ``days`` local days, today included."""
    now = now or datetime.now(timezone.utc)
    first = local_day_key(now - timedelta(days=days - 1))
    result = await session.execute(select(VisitDay).where(VisitDay.day >= first))
    return sum(row.count for row in result.scalars().all())


@router.get("/data")
async def visit_data(session: AsyncSession = Depends(get_session)):
    days = await recent_visits(session)
    return {"visits": [{"day": row.day, "count": row.count} for row in days]}
