"""
Resend Email Service
====================

Transactional email through the Resend SDK. The SDK call is blocking, so it
runs in a worker thread to keep the event loop free.

Raises ``EmailError`` on any delivery failure; whether that is fatal is the
caller's decision (offer notifications swallow it, nothing else sends mail
on a critical path).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

import resend

from prereno.core.config import settings

logger = logging.getLogger(__name__)


class EmailError(Exception):
    """Raised when an email cannot be handed to Resend."""


@dataclass(frozen=True)
class EmailResult:
    id: Optional[str]
    recipients: list[str]


def _configured() -> bool:
    return bool(settings.resend_api_key)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html: str,
    from_address: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> EmailResult:
    """Send one HTML email.

    Raises:
        EmailError: Resend is not configured or rejected the message.
    """
    recipients = [to] if isinstance(to, str) else list(to)
    if not _configured():
        logger.error("Email service not configured - RESEND_API_KEY missing")
        raise EmailError("Email service not configured")

    resend.api_key = settings.resend_api_key
    params: dict = {
        "from": from_address or settings.email_from_address,
        "to": recipients,
        "subject": subject,
        "html": html,
    }
    if reply_to:
        params["reply_to"] = reply_to

    try:
        response = await asyncio.to_thread(resend.Emails.send, params)
    except Exception as exc:
        logger.error("Email send error to %s: %s", recipients, exc)
        raise EmailError(f"Failed to send email: {exc}") from exc

    message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
    logger.info("Email sent via Resend: id=%s, to=%s, subject=%r", message_id, recipients, subject)
    return EmailResult(id=message_id, recipients=recipients)
