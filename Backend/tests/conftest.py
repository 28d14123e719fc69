"""
Pytest configuration and fixtures for async database testing.

Every test gets its own SQLite file under ``tmp_path`` so store and API tests
never share state. The environment is pinned before ``folio`` is imported
because settings are read once and cached.
"""
import os
import tempfile
from datetime import datetime, timezone

_IMPORT_DB_DIR = tempfile.mkdtemp(prefix="folio-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_IMPORT_DB_DIR}/import.db"
os.environ["BOOKING_TIMEZONE"] = "UTC"
os.environ["ADMIN_USER"] = "admin"
os.environ["ADMIN_PASS"] = "correct-horse"
os.environ["ADMIN_SECRET"] = "test-signing-secret"
os.environ["NOTIFY_EMAIL"] = "owner@example.com"
os.environ["TRACK_PATHS"] = "/,/about"
os.environ["CONTACT_RATE_LIMIT"] = "5"
os.environ["LOGIN_RATE_LIMIT"] = "5"
os.environ["RESEND_API_KEY"] = ""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from folio.booking.policy import BookingConfig
from folio.booking.store import SqlBookingStore
from folio.core.db import Base

# Monday 08:00 UTC, two hours before the calendar opens.
FIXED_NOW = datetime(2030, 3, 4, 8, 0, tzinfo=timezone.utc)


class FakeNotifier:
    """Records every send; raises instead when ``fail`` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, to, subject, text, html=None, attachments=()):
        self.sent.append({"to": to, "subject": subject, "text": text, "attachments": list(attachments)})
        if self.fail:
            raise RuntimeError("mail relay unreachable")
        return True


@pytest.fixture(scope="function")
async def async_engine(tmp_path):
    """Fresh SQLite database with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'folio_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def booking_store(session_factory) -> SqlBookingStore:
    return SqlBookingStore(session_factory)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def failing_notifier() -> FakeNotifier:
    return FakeNotifier(fail=True)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def booking_config() -> BookingConfig:
    return BookingConfig(timezone="UTC")


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from folio.rate_limiter import clear_rate_limits

    clear_rate_limits()
    yield
    clear_rate_limits()


@pytest.fixture(scope="function")
async def client(session_factory, booking_store, notifier, booking_config):
    """
    FastAPI AsyncClient wired to the per-test database.

    The booking service runs on ``FIXED_NOW`` so slot dates in tests stay valid.
    """
    # Import here so the environment above is in place first
    from folio.booking.routes import get_booking_config, get_booking_service, get_booking_store
    from folio.booking.service import BookingService
    from folio.core.db import get_session
    from folio.emailer import get_notifier
    from folio.main import app

    async def override_get_session():
        async with session_factory() as session:
            yield session

    def override_get_booking_service():
        return BookingService(
            store=booking_store,
            notifier=notifier,
            config=booking_config,
            notify_email="owner@example.com",
            clock=lambda: FIXED_NOW,
        )

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_booking_store] = lambda: booking_store
    app.dependency_overrides[get_booking_config] = lambda: booking_config
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_booking_service] = override_get_booking_service

    original_factory = app.state.session_factory
    app.state.session_factory = session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.state.session_factory = original_factory
    app.dependency_overrides.clear()
