"""
Offer API Routes
================

Magic-link endpoints a contractor reaches from the offer email or SMS. The
signed token identifies both the job and the contractor, so no bearer
token is required.

Routes:
  POST /api/v1/offers/{token}/accept   -- First to accept wins the job
  POST /api/v1/offers/{token}/counter  -- Propose a different net payout
  POST /api/v1/offers/{token}/decline  -- Pass on the job
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter
from sqlalchemy.ext.asyncio import AsyncSession

from prereno.api.deps import DBSession
from prereno.api.errors import DOMAIN_ERRORS, to_http
from prereno.api.schemas.offer import (
    OfferAcceptResponse,
    OfferCounterRequest,
    OfferCounterResponse,
    OfferOut,
)
from prereno.integrations.stripe import PaymentError
from prereno.models import Job
from prereno.services import jobService
from prereno.services.auth_service import OfferClaims, decode_offer_token
from prereno.services.settlementService import CaptureResult
from prereno.services.stores import SqlJobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/offers", tags=["Offers"])


def _claims(token: str) -> OfferClaims:
    # Expiry is reported by the dispatcher (410) against the stored offer
    try:
        return decode_offer_token(token, verify_exp=False)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc


async def _collect_payment(
    db: AsyncSession, job: Job, claims: OfferClaims
) -> Optional[CaptureResult]:
    """Commit the claim, then create the PaymentIntent.

    A processor failure does not undo the accept; the client retries via
    ``POST /payments/{job_id}/intent``.
    """
    await db.commit()
    try:
        return await jobService.collect_payment(db, job, claims.contractor_id)
    except PaymentError:
        logger.exception("Payment intent creation failed for job %s", job.id)
        return None


# ---------------------------------------------------------------------------
# POST /api/v1/offers/{token}/accept
# ---------------------------------------------------------------------------

@router.post(
    "/{token}/accept",
    response_model=OfferAcceptResponse,
    summary="Accept a job offer",
    description=(
        "Claims the job for this contractor. Exactly one concurrent accept "
        "succeeds; the others receive 409."
    ),
)
async def accept_offer(token: str, db: DBSession) -> OfferAcceptResponse:
    claims = _claims(token)
    try:
        result = await jobService.accept_offer(db, claims.job_id, claims.contractor_id)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc

    capture = await _collect_payment(db, result.job, claims)
    return OfferAcceptResponse(
        job_id=result.job.id,
        status=result.job.status,
        scheduled_at=result.job.scheduled_at,
        offer=OfferOut.model_validate(result.offer),
        payment_intent_id=capture.payment.stripe_payment_intent_id if capture else None,
        client_secret=capture.client_secret if capture else None,
    )


# ---------------------------------------------------------------------------
# POST /api/v1/offers/{token}/counter
# ---------------------------------------------------------------------------

@router.post(
    "/{token}/counter",
    response_model=OfferCounterResponse,
    summary="Counter a job offer",
    description=(
        "Counters within 80-120% of the offered net. Counters up to 110% are "
        "approved automatically; higher counters await manual approval."
    ),
)
async def counter_offer(
    token: str,
    body: OfferCounterRequest,
    db: DBSession,
) -> OfferCounterResponse:
    claims = _claims(token)
    try:
        result = await jobService.counter_offer(
            db, claims.job_id, claims.contractor_id, body.counter_net_cents
        )
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc

    job = result.job
    if result.auto_approved and job is not None:
        await _collect_payment(db, job, claims)
    if job is None:
        job = await SqlJobStore(db).get(claims.job_id)

    return OfferCounterResponse(
        job_id=claims.job_id,
        offer=OfferOut.model_validate(result.offer),
        auto_approved=result.auto_approved,
        requires_manual_approval=result.requires_manual_approval,
        contractor_net_cents=result.provider_net_cents,
        client_price_cents=result.client_price_cents,
        status=job.status,
    )


# ---------------------------------------------------------------------------
# POST /api/v1/offers/{token}/decline
# ---------------------------------------------------------------------------

@router.post("/{token}/decline", response_model=OfferOut, summary="Decline a job offer")
async def decline_offer(token: str, db: DBSession) -> OfferOut:
    claims = _claims(token)
    try:
        offer = await jobService.decline_offer(db, claims.job_id, claims.contractor_id)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return OfferOut.model_validate(offer)
