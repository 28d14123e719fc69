"""
Contact and proposal forms.

Both forms store the submission and notify the site operator when
NOTIFY_EMAIL is set. Notification is best-effort and never fails the
request once the row is stored.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .booking.store import StorageUnavailable
from .core.config import get_settings
from .core.db import get_session
from .core.responses import ErrorBody, ErrorCodes, error_json
from .emailer import Notifier, get_notifier
from .models import Contact, Proposal
from .rate_limiter import contact_limiter, rate_limit_dependency

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["forms"])

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _too_long(limits: dict[str, tuple[str, int]]) -> bool:
    return any(len(value) > limit for value, limit in limits.values())


class ContactRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    company: Optional[str] = None  # honeypot, hidden from real users


class ProposalRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    project_type: Optional[str] = Field(None, alias="projectType")
    timeline: Optional[str] = None
    budget_range: Optional[str] = Field(None, alias="budgetRange")
    details: Optional[str] = None


class SubmissionCreated(BaseModel):
    ok: bool
    id: str


async def notify_operator(notifier: Notifier, subject: str, text: str) -> None:
    notify = get_settings().notify_email
    if not notify:
        return
    try:
        await notifier.send(to=notify, subject=subject, text=text)
    except Exception as exc:
        logger.exception("Failed to send operator notification: %s", exc)


async def _store(session: AsyncSession, row) -> None:
    try:
        session.add(row)
        await session.commit()
    except (SQLAlchemyError, OSError) as exc:
        logger.exception("Failed to store %s", type(row).__name__)
        raise StorageUnavailable(f"Failed to store {type(row).__name__}") from exc


@router.post(
    "/contact",
    status_code=status.HTTP_201_CREATED,
    response_model=SubmissionCreated,
    responses={400: {"model": ErrorBody}, 429: {"model": ErrorBody}},
    dependencies=[Depends(rate_limit_dependency(contact_limiter, "contact", "Too many requests. Please try again in a minute."))],
)
async def submit_contact(
    payload: ContactRequest,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    name, email = _clean(payload.name), _clean(payload.email)
    subject, message = _clean(payload.subject), _clean(payload.message)

    if not all([name, email, subject, message]):
        return error_json(status.HTTP_400_BAD_REQUEST, "All fields are required.", ErrorCodes.MISSING_FIELDS)

    if _clean(payload.company):
        logger.info("Contact honeypot triggered")
        return error_json(status.HTTP_400_BAD_REQUEST, "Invalid submission.", ErrorCodes.INVALID_SUBMISSION)

    if not EMAIL_RE.match(email):
        return error_json(status.HTTP_400_BAD_REQUEST, "Invalid email address.", ErrorCodes.INVALID_EMAIL)

    if _too_long({
        "name": (name, 100),
        "email": (email, 200),
        "subject": (subject, 200),
        "message": (message, 2000),
    }):
        return error_json(status.HTTP_400_BAD_REQUEST, "One of the fields is too long.", ErrorCodes.FIELD_TOO_LONG)

    contact = Contact(name=name, email=email, subject=subject, message=message)
    await _store(session, contact)

    await notify_operator(
        notifier,
        subject=f"New Contact: {subject}",
        text=f"Name: {name}\nEmail: {email}\nSubject: {subject}\n\n{message}",
    )
    return JSONResponse(status_code=status.HTTP_201_CREATED, content={"ok": True, "id": str(contact.id)})


@router.post(
    "/proposal",
    status_code=status.HTTP_201_CREATED,
    response_model=SubmissionCreated,
    responses={400: {"model": ErrorBody}},
)
async def submit_proposal(
    payload: ProposalRequest,
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    name, email = _clean(payload.name), _clean(payload.email)
    project_type, timeline, details = _clean(payload.project_type), _clean(payload.timeline), _clean(payload.details)
    company, budget_range = _clean(payload.company), _clean(payload.budget_range)

    if not all([name, email, project_type, timeline, details]):
        return error_json(
            status.HTTP_400_BAD_REQUEST, "All required fields must be filled.", ErrorCodes.MISSING_FIELDS
        )

    if not EMAIL_RE.match(email):
        return error_json(status.HTTP_400_BAD_REQUEST, "Invalid email address.", ErrorCodes.INVALID_EMAIL)

    if _too_long({
        "name": (name, 100),
        "email": (email, 200),
        "company": (company, 200),
        "projectType": (project_type, 100),
        "timeline": (timeline, 100),
        "budgetRange": (budget_range, 100),
        "details": (details, 4000),
    }):
        return error_json(status.HTTP_400_BAD_REQUEST, "One of the fields is too long.", ErrorCodes.FIELD_TOO_LONG)

    proposal = Proposal(
        name=name,
        email=email,
        company=company or None,
        project_type=project_type,
        timeline=timeline,
        budget_range=budget_range or None,
        details=details,
    )
    await _store(session, proposal)

    await notify_operator(
        notifier,
        subject=f"New Proposal: {project_type}",
        text=(
            f"Name: {name}\nEmail: {email}\nCompany: {company}\nType: {project_type}\n"
            f"Timeline: {timeline}\nBudget: {budget_range}\n\n{details}"
        ),
    )
    return JSONResponse(status_code=status.HTTP_201_CREATED, content={"ok": True, "id": str(proposal.id)})
