"""
Visit counter tests.
"""
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from folio.models import VisitDay, VisitLog
from folio.visits import increment_day, local_day_key, track_visit, visits_since

UTC = timezone.utc


@pytest.mark.asyncio
async def test_increment_day_upserts(session_factory):
    async with session_factory() as session:
        async with session.begin():
            await increment_day(session, "2030-03-05")
        async with session.begin():
            await increment_day(session, "2030-03-05")

    async with session_factory() as session:
        row = (await session.execute(select(VisitDay))).scalar_one()
    assert row.day == "2030-03-05"
    assert row.count == 2


@pytest.mark.asyncio
async def test_track_visit_logs_hit(session_factory):
    now = datetime(2030, 3, 5, 12, 0, tzinfo=UTC)
    await track_visit(session_factory, "/", "198.51.100.4", "pytest", now=now)

    async with session_factory() as session:
        log = (await session.execute(select(VisitLog))).scalar_one()
        day = (await session.execute(select(VisitDay))).scalar_one()
    assert log.path == "/"
    assert log.ip == "198.51.100.4"
    assert day.day == local_day_key(now)


@pytest.mark.asyncio
async def test_visits_since_sums_recent_days(session_factory):
    now = datetime(2030, 3, 10, 12, 0, tzinfo=UTC)
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                VisitDay(day="2030-03-10", count=3),
                VisitDay(day="2030-03-04", count=2),
                VisitDay(day="2030-03-03", count=50),
            ])

    async with session_factory() as session:
        assert await visits_since(session, 7, now) == 5
        assert await visits_since(session, 1, now) == 3


@pytest.mark.asyncio
async def test_middleware_counts_tracked_get_only(client: AsyncClient, session_factory):
    await client.get("/")
    await client.get("/about")
    await client.get("/health")
    await client.post("/")

    async with session_factory() as session:
        logs = (await session.execute(select(VisitLog))).scalars().all()
        day = (await session.execute(select(VisitDay))).scalar_one()
    assert sorted(log.path for log in logs) == ["/", "/about"]
    assert day.count == 2


@pytest.mark.asyncio
async def test_visit_data_endpoint(client: AsyncClient, session_factory):
    today = datetime.now(UTC)
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                VisitDay(day=local_day_key(today), count=4),
                VisitDay(day=local_day_key(today - timedelta(days=1)), count=7),
            ])

    response = await client.get("/data")

    assert response.status_code == 200
    visits = response.json()["visits"]
    assert [entry["count"] for entry in visits] == [4, 7]
