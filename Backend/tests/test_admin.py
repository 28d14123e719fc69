"""
Admin API tests: authentication, dashboard and booking workflow updates.

Credentials come from the environment pinned in conftest (admin / correct-horse).
"""
import base64
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from folio.admin import ADMIN_COOKIE, create_admin_token, verify_admin_token
from folio.core.config import get_settings
from folio.models import Contact, Proposal

BASIC = "Basic " + base64.b64encode(b"admin:correct-horse").decode()
AUTH = {"Authorization": BASIC}


async def create_booking(client: AsyncClient, start: str = "2030-03-05T10:00:00Z") -> str:
    response = await client.post(
        "/api/booking",
        json={
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "phone": "+44 20 7946 0000",
            "service": "UI/UX",
            "durationMinutes": 60,
            "startAt": start,
        },
    )
    assert response.status_code == 201
    return response.json()["id"]


# ============================================================================
# AUTHENTICATION
# ============================================================================

@pytest.mark.asyncio
async def test_unauthenticated_request_is_hidden(client: AsyncClient):
    response = await client.get("/admin/stats")
    assert response.status_code == 404
    assert response.json() == {"error": "Not found", "reason": "NotFound"}


@pytest.mark.asyncio
async def test_wrong_basic_credentials_are_hidden(client: AsyncClient):
    bad = "Basic " + base64.b64encode(b"admin:wrong").decode()
    response = await client.get("/admin/stats", headers={"Authorization": bad})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_basic_auth_grants_access(client: AsyncClient):
    response = await client.get("/admin/stats", headers=AUTH)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_login_sets_session_cookie(client: AsyncClient):
    response = await client.post("/admin/login", json={"user": "admin", "pass": "correct-horse"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert ADMIN_COOKIE in response.cookies
    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie

    stats = await client.get("/admin/stats")
    assert stats.status_code == 200


@pytest.mark.asyncio
async def test_login_rejects_bad_password(client: AsyncClient):
    response = await client.post("/admin/login", json={"user": "admin", "pass": "nope"})
    assert response.status_code == 401
    assert response.json()["reason"] == "InvalidCredentials"


@pytest.mark.asyncio
async def test_login_is_rate_limited(client: AsyncClient):
    for _ in range(5):
        await client.post("/admin/login", json={"user": "admin", "pass": "nope"})

    response = await client.post("/admin/login", json={"user": "admin", "pass": "correct-horse"})
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_logout_clears_cookie(client: AsyncClient):
    await client.post("/admin/login", json={"user": "admin", "pass": "correct-horse"})
    response = await client.post("/admin/logout")

    assert response.status_code == 200
    assert (await client.get("/admin/stats")).status_code == 404


def test_expired_token_is_rejected():
    settings = get_settings()
    issued = datetime.now(timezone.utc) - timedelta(hours=settings.admin_session_hours + 1)
    assert not verify_admin_token(create_admin_token(settings, now=issued), settings)


def test_fresh_token_is_accepted():
    settings = get_settings()
    assert verify_admin_token(create_admin_token(settings), settings)


def test_garbage_token_is_rejected():
    assert not verify_admin_token("not.a.jwt", get_settings())


# ============================================================================
# DASHBOARD
# ============================================================================

@pytest.mark.asyncio
async def test_stats_counts(client: AsyncClient, session_factory):
    await create_booking(client)
    async with session_factory() as session:
        async with session.begin():
            session.add(Contact(name="A", email="a@example.com", subject="Hi", message="Hello"))
            session.add(
                Proposal(name="B", email="b@example.com", project_type="Web", timeline="Q1", details="Site")
            )
    await client.get("/")

    response = await client.get("/admin/stats", headers=AUTH)

    data = response.json()
    assert data["bookings"] == 1
    assert data["upcomingBookings"] == 1
    assert data["contacts"] == 1
    assert data["proposals"] == 1
    assert data["visitsToday"] == 1
    assert data["visitsLast7Days"] == 1


@pytest.mark.asyncio
async def test_list_bookings(client: AsyncClient):
    booking_id = await create_booking(client)

    response = await client.get("/admin/bookings", headers=AUTH)

    assert response.status_code == 200
    bookings = response.json()["bookings"]
    assert [entry["id"] for entry in bookings] == [booking_id]
    assert bookings[0]["status"] == "New"
    assert bookings[0]["paymentStatus"] == "Unpaid"
    assert bookings[0]["endAt"] == "2030-03-05T11:00:00+00:00"


@pytest.mark.asyncio
async def test_list_limit_is_bounded(client: AsyncClient):
    response = await client.get("/admin/bookings", params={"limit": 501}, headers=AUTH)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_contacts_and_proposals(client: AsyncClient, session_factory):
    async with session_factory() as session:
        async with session.begin():
            session.add(Contact(name="A", email="a@example.com", subject="Hi", message="Hello"))

    contacts = await client.get("/admin/contacts", headers=AUTH)
    proposals = await client.get("/admin/proposals", headers=AUTH)

    assert contacts.json()["contacts"][0]["subject"] == "Hi"
    assert proposals.json() == {"proposals": []}


# ============================================================================
# BOOKING UPDATES
# ============================================================================

@pytest.mark.asyncio
async def test_update_booking_workflow(client: AsyncClient):
    booking_id = await create_booking(client)

    response = await client.patch(
        f"/admin/bookings/{booking_id}",
        json={"status": "In Progress", "paymentStatus": "Paid", "adminNote": "  Invoice sent  "},
        headers=AUTH,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "In Progress"
    assert data["paymentStatus"] == "Paid"
    assert data["adminNote"] == "Invoice sent"
    assert data["startAt"] == "2030-03-05T10:00:00+00:00"

    detail = await client.get(f"/admin/bookings/{booking_id}", headers=AUTH)
    assert detail.json()["status"] == "In Progress"


@pytest.mark.asyncio
async def test_update_rejects_unknown_status(client: AsyncClient):
    booking_id = await create_booking(client)
    response = await client.patch(f"/admin/bookings/{booking_id}", json={"status": "Archived"}, headers=AUTH)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_requires_a_field(client: AsyncClient):
    booking_id = await create_booking(client)
    response = await client.patch(f"/admin/bookings/{booking_id}", json={}, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["error"] == "Nothing to update."


@pytest.mark.asyncio
async def test_update_unknown_booking(client: AsyncClient):
    response = await client.patch(
        "/admin/bookings/00000000-0000-0000-0000-000000000000",
        json={"status": "Done"},
        headers=AUTH,
    )
    assert response.status_code == 404
    assert response.json()["reason"] == "NotFound"


@pytest.mark.asyncio
async def test_unconfigured_admin_answers_500(client: AsyncClient, monkeypatch):
    from folio.core.config import Settings

    monkeypatch.setattr("folio.admin.get_settings", lambda: Settings(ADMIN_USER="", ADMIN_PASS=""))

    response = await client.get("/admin/stats", headers=AUTH)
    assert response.status_code == 500

    login = await client.post("/admin/login", json={"user": "admin", "pass": "correct-horse"})
    assert login.status_code == 500
