"""
Contact and proposal form tests.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from folio.models import Contact, Proposal


def contact_body(**overrides) -> dict:
    body = {
        "name": "Margaret Hamilton",
        "email": "margaret@example.com",
        "subject": "Landing page",
        "message": "Can you help with a redesign?",
    }
    body.update(overrides)
    return body


def proposal_body(**overrides) -> dict:
    body = {
        "name": "Katherine Johnson",
        "email": "katherine@example.com",
        "company": "Orbital Ltd",
        "projectType": "Web App",
        "timeline": "Q3",
        "budgetRange": "5k-10k",
        "details": "Dashboard for trajectory data.",
    }
    body.update(overrides)
    return body


# ============================================================================
# CONTACT
# ============================================================================

@pytest.mark.asyncio
async def test_contact_is_stored_and_forwarded(client: AsyncClient, async_session, notifier):
    response = await client.post("/api/contact", json=contact_body())

    assert response.status_code == 201
    assert response.json()["ok"] is True

    contact = (await async_session.execute(select(Contact))).scalar_one()
    assert contact.subject == "Landing page"
    assert str(contact.id) == response.json()["id"]

    assert notifier.sent[0]["to"] == "owner@example.com"
    assert notifier.sent[0]["subject"] == "New Contact: Landing page"


@pytest.mark.asyncio
async def test_contact_requires_all_fields(client: AsyncClient):
    response = await client.post("/api/contact", json=contact_body(message="   "))
    assert response.status_code == 400
    assert response.json()["reason"] == "MissingFields"


@pytest.mark.asyncio
async def test_contact_honeypot(client: AsyncClient, async_session):
    response = await client.post("/api/contact", json=contact_body(company="Spam Inc"))

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid submission.", "reason": "InvalidSubmission"}
    assert (await async_session.execute(select(Contact))).scalars().all() == []


@pytest.mark.asyncio
async def test_contact_invalid_email(client: AsyncClient):
    response = await client.post("/api/contact", json=contact_body(email="margaret"))
    assert response.status_code == 400
    assert response.json()["reason"] == "InvalidEmail"


@pytest.mark.asyncio
async def test_contact_message_too_long(client: AsyncClient):
    response = await client.post("/api/contact", json=contact_body(message="x" * 2001))
    assert response.status_code == 400
    assert response.json()["reason"] == "FieldTooLong"


@pytest.mark.asyncio
async def test_contact_rate_limited(client: AsyncClient):
    for _ in range(5):
        assert (await client.post("/api/contact", json=contact_body())).status_code == 201

    response = await client.post("/api/contact", json=contact_body())

    assert response.status_code == 429
    assert response.json()["reason"] == "RateLimited"
    assert "Retry-After" in response.headers


@pytest.mark.asyncio
async def test_contact_survives_notifier_failure(client: AsyncClient, notifier):
    notifier.fail = True
    response = await client.post("/api/contact", json=contact_body())
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_contact_storage_failure_is_503(client: AsyncClient, notifier):
    from folio.core.db import get_session
    from folio.main import app

    class DroppedConnectionSession:
        def add(self, row):
            pass

        async def commit(self):
            raise OSError("connection reset by peer")

    app.dependency_overrides[get_session] = lambda: DroppedConnectionSession()

    response = await client.post("/api/contact", json=contact_body())

    assert response.status_code == 503
    assert response.json() == {"error": "Storage unavailable. Please retry.", "reason": "StorageUnavailable"}
    assert notifier.sent == []


# ============================================================================
# PROPOSAL
# ============================================================================

@pytest.mark.asyncio
async def test_proposal_is_stored(client: AsyncClient, async_session, notifier):
    response = await client.post("/api/proposal", json=proposal_body())

    assert response.status_code == 201
    proposal = (await async_session.execute(select(Proposal))).scalar_one()
    assert proposal.project_type == "Web App"
    assert proposal.budget_range == "5k-10k"
    assert notifier.sent[0]["subject"] == "New Proposal: Web App"


@pytest.mark.asyncio
async def test_proposal_optional_fields_may_be_blank(client: AsyncClient, async_session):
    response = await client.post("/api/proposal", json=proposal_body(company="", budgetRange=None))

    assert response.status_code == 201
    proposal = (await async_session.execute(select(Proposal))).scalar_one()
    assert proposal.company is None
    assert proposal.budget_range is None


@pytest.mark.asyncio
async def test_proposal_requires_details(client: AsyncClient):
    response = await client.post("/api/proposal", json=proposal_body(details=""))
    assert response.status_code == 400
    assert response.json()["reason"] == "MissingFields"


@pytest.mark.asyncio
async def test_proposal_details_too_long(client: AsyncClient):
    response = await client.post("/api/proposal", json=proposal_body(details="x" * 4001))
    assert response.status_code == 400
    assert response.json()["reason"] == "FieldTooLong"
