import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

import httpx

from .core.config import Settings, get_settings

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: str
    content_type: str = "application/octet-stream"


class Notifier(Protocol):
    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        html: Optional[str] = None,
        attachments: Sequence[Attachment] = (),
    ) -> bool:
        ...


class ResendNotifier:
    """Sends mail through the Resend HTTP API. Unconfigured means every send is a no-op."""

    def __init__(self, api_key: str, sender: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendNotifier":
        return cls(api_key=settings.resend_api_key, sender=settings.resend_from)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender)

    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        html: Optional[str] = None,
        attachments: Sequence[Attachment] = (),
    ) -> bool:
        if not self.configured:
            logger.warning("Resend is not configured; skipping email send.")
            return False

        payload = {
            "from": self.sender,
            "to": to,
            "subject": subject,
            "text": text,
        }
        if html:
            payload["html"] = html
        if attachments:
            payload["attachments"] = [
                {
                    "filename": item.filename,
                    "content": base64.b64encode(item.content.encode("utf-8")).decode("ascii"),
                    "content_type": item.content_type,
                }
                for item in attachments
            ]

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(RESEND_URL, json=payload, headers=headers)
            response.raise_for_status()
        return True


def get_notifier() -> Notifier:
    return ResendNotifier.from_settings(get_settings())


def format_utc_timestamp(value: datetime) -> str:
    """Format datetime as UTC timestamp for iCalendar (RFC 5545)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y%m%dT%H%M%SZ")


def escape_ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def build_ics_event(
    uid: str,
    start_at: datetime,
    end_at: datetime,
    summary: str,
    description: str,
    organizer_name: str,
) -> str:
    dtstamp = format_utc_timestamp(datetime.now(timezone.utc))
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:-//{escape_ical_text(organizer_name)}//Booking//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART:{format_utc_timestamp(start_at)}",
        f"DTEND:{format_utc_timestamp(end_at)}",
        f"SUMMARY:{escape_ical_text(summary)}",
        f"DESCRIPTION:{escape_ical_text(description)}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"
