"""
Standardized API Error Module

Provides consistent error formatting across the public JSON endpoints.

RESPONSE FORMAT:
    Success bodies are endpoint specific (for example ``{"ok": true, "id": ...}``).

    Error:
        {
            "error": "Human-readable message",
            "reason": "MachineReadableCode"
        }

    The ``error`` key is what browser clients render. ``reason`` lets a client
    tell a conflict ("choose another time") apart from a validation problem
    ("fix your input") without parsing the message.
"""

from typing import Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorBody(BaseModel):
    """Structured error information."""
    error: str
    reason: str


class ErrorCodes:
    """Reason codes that are not owned by the booking policy."""

    # Request shape (400)
    INVALID_REQUEST = "InvalidRequest"
    MISSING_FIELDS = "MissingFields"
    INVALID_EMAIL = "InvalidEmail"
    INVALID_SUBMISSION = "InvalidSubmission"
    FIELD_TOO_LONG = "FieldTooLong"
    INVALID_RANGE = "InvalidRange"

    # Not found (404)
    NOT_FOUND = "NotFound"

    # Throttling (429)
    RATE_LIMITED = "RateLimited"

    # Server errors (5xx)
    STORAGE_UNAVAILABLE = "StorageUnavailable"
    INTERNAL_ERROR = "InternalError"


def error_response(message: str, reason: str) -> dict:
    """Create an error body dict."""
    return {"error": message, "reason": reason}


def error_json(
    status_code: int,
    message: str,
    reason: str,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Create a JSONResponse carrying an error body."""
    return JSONResponse(
        status_code=status_code,
        content=error_response(message, reason),
        headers=headers,
    )
