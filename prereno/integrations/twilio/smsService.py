"""
Twilio SMS Service
==================

Sends SMS through the Twilio REST API with ``httpx``. Credentials and the
messaging service SID come from settings; phone numbers must be E.164.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from prereno.core.config import settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
REQUEST_TIMEOUT_SECONDS = 10.0


class SmsError(Exception):
    """Raised when Twilio rejects a message or cannot be reached."""

    def __init__(self, message: str, error_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.error_code = error_code


@dataclass(frozen=True)
class SmsResult:
    sid: Optional[str]
    to: str


def is_configured() -> bool:
    return bool(
        settings.twilio_account_sid
        and settings.twilio_auth_token
        and settings.twilio_messaging_service_sid
    )


async def send_sms(
    to_phone: str,
    body: str,
    client: Optional[httpx.AsyncClient] = None,
) -> SmsResult:
    """Send one SMS.

    Raises:
        SmsError: Not configured, bad number, or Twilio returned an error.
    """
    if not is_configured():
        raise SmsError("SMS service not configured")
    if not to_phone or not to_phone.startswith("+"):
        raise SmsError("Phone number must be in E.164 format (e.g., +15551234567)")

    account_sid = settings.twilio_account_sid
    data = {
        "To": to_phone,
        "Body": body,
        "MessagingServiceSid": settings.twilio_messaging_service_sid,
    }
    url = f"{TWILIO_API_BASE}/Accounts/{account_sid}/Messages.json"

    try:
        if client is not None:
            response = await client.post(
                url,
                auth=(account_sid, settings.twilio_auth_token),
                data=data,
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        else:
            async with httpx.AsyncClient() as http:
                response = await http.post(
                    url,
                    auth=(account_sid, settings.twilio_auth_token),
                    data=data,
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
    except httpx.HTTPError as exc:
        logger.error("Twilio request failed for %s: %s", to_phone, exc)
        raise SmsError(f"Twilio request failed: {exc}") from exc

    if response.status_code not in (200, 201):
        payload = response.json() if response.content else {}
        message = payload.get("message", "Unknown error")
        code = payload.get("code")
        logger.error("Twilio rejected SMS to %s: [%s] %s", to_phone, code, message)
        raise SmsError(message, error_code=code)

    sid = response.json().get("sid")
    logger.info("SMS sent: to=%s, sid=%s", to_phone, sid)
    return SmsResult(sid=sid, to=to_phone)
