"""
Payments API Routes
===================

Client-side payment steps for an accepted job. The PaymentIntent is
normally created when the contractor accepts; these endpoints let the
client recreate it (after a processor failure) and confirm it.

Routes:
  GET  /api/v1/payments/{job_id}           -- Current payment for a job
  POST /api/v1/payments/{job_id}/intent    -- (Re)create the PaymentIntent
  POST /api/v1/payments/{job_id}/confirm   -- Confirm the PaymentIntent
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, status

from prereno.api.deps import ClientUser, DBSession
from prereno.api.errors import DOMAIN_ERRORS, to_http
from prereno.api.schemas.payment import (
    PaymentConfirmRequest,
    PaymentIntentResponse,
    PaymentOut,
)
from prereno.services import jobService, settlementService
from prereno.services.offerDispatcher import JobNotFoundError
from prereno.services.stores import SqlOfferStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/{job_id}", response_model=PaymentOut, summary="Payment for a job")
async def get_payment(job_id: uuid.UUID, db: DBSession, user: ClientUser) -> PaymentOut:
    try:
        job = await jobService.get_job_for(db, job_id, user)
        payment = await settlementService.get_payment_for_job(db, job.id)
        if payment is None:
            raise settlementService.PaymentNotFoundError(job.id)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return PaymentOut.model_validate(payment)


@router.post(
    "/{job_id}/intent",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create the PaymentIntent for an accepted job",
)
async def create_intent(
    job_id: uuid.UUID, db: DBSession, user: ClientUser
) -> PaymentIntentResponse:
    try:
        job = await jobService.get_job_for(db, job_id, user)
        if job.client_id != user.id:
            raise JobNotFoundError(job_id)
        accepted = await SqlOfferStore(db).get_accepted(job.id)
        if accepted is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Job has no accepted contractor.",
            )
        capture = await settlementService.capture_on_accept(
            db, job, accepted.contractor_id, receipt_email=user.email
        )
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc

    return PaymentIntentResponse(
        payment=PaymentOut.model_validate(capture.payment),
        client_secret=capture.client_secret,
    )


@router.post(
    "/{job_id}/confirm",
    response_model=PaymentOut,
    summary="Confirm the job's PaymentIntent",
    description=(
        "Confirms the PaymentIntent server-side. Once Stripe reports success "
        "the job moves from accepted to scheduled."
    ),
)
async def confirm_payment(
    job_id: uuid.UUID,
    db: DBSession,
    user: ClientUser,
    body: Optional[PaymentConfirmRequest] = None,
) -> PaymentOut:
    try:
        job = await jobService.get_job_for(db, job_id, user)
        if job.client_id != user.id:
            raise JobNotFoundError(job_id)
        payment = await settlementService.confirm_payment(
            db, job, body.payment_method_id if body else None
        )
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return PaymentOut.model_validate(payment)
