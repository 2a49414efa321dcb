"""
Notification Service
====================

Builds and sends the marketplace's transactional messages:

- Offer alert to a contractor (email with accept / counter / decline magic
  links, plus an SMS when a phone number is on file).
- Booking confirmation to the client once a contractor accepts.
- Approval request to the landlord of a renter-occupied job.

``OfferNotifier`` satisfies the dispatcher's ``Notifier`` protocol and
raises ``NotificationError`` when a channel fails; the dispatcher logs and
swallows it. The client and landlord helpers swallow their own failures:
messaging never blocks a state transition.
"""

from __future__ import annotations

import html
import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prereno.core.config import settings
from prereno.integrations.resend import EmailError, emailService
from prereno.integrations.twilio import SmsError, smsService
from prereno.models import Contractor, Job, JobOffer, Profile
from prereno.services.auth_service import issue_offer_token

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """One or more channels failed for a notification."""

    def __init__(self, failures: dict[str, Exception]) -> None:
        self.failures = failures
        channels = ", ".join(sorted(failures))
        super().__init__(f"Notification failed on: {channels}")


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def _dollars(cents: int) -> str:
    return f"${cents / 100:,.0f}"


def offer_links(token: str) -> dict[str, str]:
    base = settings.public_url.rstrip("/")
    return {
        "accept": f"{base}/offer/accept/{token}",
        "counter": f"{base}/offer/counter/{token}",
        "decline": f"{base}/offer/decline/{token}",
    }


def _ttl_minutes() -> int:
    return settings.offer_ttl_minutes


def render_offer_email(job: Job, links: dict[str, str]) -> tuple[str, str]:
    subject = (
        f"New job in {job.zip} - {job.category.value} - "
        f"Accept in {_ttl_minutes()} min"
    )
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>New {html.escape(job.category.value)} job available</h2>
  <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3>{html.escape(job.title)}</h3>
    <p><strong>Your net payout:</strong> {_dollars(job.contractor_net_cents)}</p>
    <p><strong>Location:</strong> {html.escape(job.city)}, {html.escape(job.zip)}</p>
  </div>
  <p>
    <a href="{links['accept']}">Accept Job</a> |
    <a href="{links['counter']}">Counter</a> |
    <a href="{links['decline']}">Decline</a>
  </p>
  <p><small>First to accept wins. Offer expires in {_ttl_minutes()} minutes.</small></p>
</div>
"""
    return subject, body


def render_offer_sms(job: Job, accept_url: str) -> str:
    return (
        f"New PreReno job: {job.title} in {job.zip}. "
        f"Accept: {accept_url} ({_ttl_minutes()} min to respond)"
    )


def render_client_confirmation(job: Job, contractor: Contractor) -> tuple[str, str]:
    scheduled = job.scheduled_at.strftime("%b %d, %Y") if job.scheduled_at else "TBD"
    company = html.escape(contractor.company or "Your contractor")
    subject = f"Confirmed: your {job.category.value} job is booked"
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>{subject}</h2>
  <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3>{html.escape(job.title)}</h3>
    <p><strong>Contractor:</strong> {company}</p>
    <p><strong>Price:</strong> {_dollars(job.client_price_cents)}</p>
    <p><strong>Scheduled:</strong> {scheduled}</p>
  </div>
  <p>Your contractor will contact you to confirm the appointment time.</p>
</div>
"""
    return subject, body


def render_landlord_approval(job: Job, tenant: Profile) -> tuple[str, str]:
    approve_url = f"{settings.public_url.rstrip('/')}/approve/{job.id}"
    subject = f"Approval requested for unit {job.city}"
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>{html.escape(subject)}</h2>
  <p>Your tenant {html.escape(tenant.full_name)} has requested a
     {html.escape(job.category.value)} repair.</p>
  <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3>{html.escape(job.title)}</h3>
    <p><strong>Estimated cost:</strong> {_dollars(job.client_price_cents)}</p>
    <p><strong>Scope:</strong></p>
    <pre style="white-space: pre-wrap;">{html.escape(job.scope_md or "")}</pre>
  </div>
  <p><a href="{approve_url}">Approve</a></p>
</div>
"""
    return subject, body


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def _contractor_with_profile(
    db: AsyncSession, contractor_id: uuid.UUID
) -> tuple[Optional[Contractor], Optional[Profile]]:
    result = await db.execute(
        select(Contractor, Profile)
        .join(Profile, Profile.id == Contractor.profile_id)
        .where(Contractor.id == contractor_id)
    )
    row = result.first()
    if row is None:
        return None, None
    return row[0], row[1]


# ---------------------------------------------------------------------------
# Offer notifier
# ---------------------------------------------------------------------------

class OfferNotifier:
    """Email + SMS offer alerts. Implements ``Notifier``."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def notify_provider(self, offer: JobOffer, job: Job) -> None:
        contractor, profile = await _contractor_with_profile(self._db, offer.contractor_id)
        if contractor is None or profile is None:
            raise NotificationError(
                {"lookup": LookupError(f"Contractor {offer.contractor_id} not found")}
            )

        token = issue_offer_token(job.id, contractor.id, offer.expires_at)
        links = offer_links(token)
        failures: dict[str, Exception] = {}

        subject, body = render_offer_email(job, links)
        try:
            await emailService.send_email(profile.email, subject, body)
        except EmailError as exc:
            failures["email"] = exc

        if profile.phone:
            try:
                await smsService.send_sms(profile.phone, render_offer_sms(job, links["accept"]))
            except SmsError as exc:
                failures["sms"] = exc

        if failures:
            raise NotificationError(failures)

        logger.info(
            "Offer alert sent: job=%s, contractor=%s, sms=%s",
            job.id,
            contractor.id,
            bool(profile.phone),
        )


# ---------------------------------------------------------------------------
# Client / landlord messages (failures swallowed)
# ---------------------------------------------------------------------------

async def send_client_confirmation(
    db: AsyncSession,
    job: Job,
    contractor_id: uuid.UUID,
) -> bool:
    client = await db.get(Profile, job.client_id)
    contractor = await db.get(Contractor, contractor_id)
    if client is None or contractor is None:
        logger.warning("Client confirmation skipped for job %s: missing profile", job.id)
        return False

    subject, body = render_client_confirmation(job, contractor)
    try:
        await emailService.send_email(client.email, subject, body)
    except EmailError:
        logger.exception("Client confirmation email failed for job %s", job.id)
        return False
    return True


async def send_landlord_approval(
    db: AsyncSession,
    job: Job,
    tenant: Profile,
) -> bool:
    if job.landlord_id is None:
        return False
    landlord = await db.get(Profile, job.landlord_id)
    if landlord is None:
        logger.warning("Landlord %s not found for job %s", job.landlord_id, job.id)
        return False

    subject, body = render_landlord_approval(job, tenant)
    try:
        await emailService.send_email(landlord.email, subject, body)
    except EmailError:
        logger.exception("Landlord approval email failed for job %s", job.id)
        return False
    return True
