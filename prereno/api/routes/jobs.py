"""
Job API Routes
==============

REST endpoints for the job lifecycle.

Routes:
  POST   /api/v1/jobs                              -- Submit a job (draft)
  GET    /api/v1/jobs                              -- Jobs visible to the caller
  GET    /api/v1/jobs/{job_id}                     -- Job detail
  GET    /api/v1/jobs/{job_id}/offers              -- Offer audit trail
  POST   /api/v1/jobs/{job_id}/book                -- Broadcast to contractors
  POST   /api/v1/jobs/{job_id}/start               -- Contractor starts work
  POST   /api/v1/jobs/{job_id}/complete            -- Contractor marks done
  POST   /api/v1/jobs/{job_id}/approve             -- Client approves, payout
  POST   /api/v1/jobs/{job_id}/dispute             -- Client disputes the work
  GET    /api/v1/jobs/{job_id}/cancellation-quote  -- Refund preview
  POST   /api/v1/jobs/{job_id}/cancel              -- Cancel with refund
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, status

from prereno.api.deps import ClientUser, ContractorUser, CurrentUser, DBSession, Detector
from prereno.api.errors import DOMAIN_ERRORS, to_http
from prereno.api.schemas.job import (
    CancellationQuoteOut,
    JobApproveRequest,
    JobBookResponse,
    JobCancelRequest,
    JobCancelResponse,
    JobCreateRequest,
    JobCreateResponse,
    JobDisputeRequest,
    JobOut,
)
from prereno.api.schemas.offer import OfferOut
from prereno.services import jobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


# ---------------------------------------------------------------------------
# POST /api/v1/jobs -- Submit a job
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=JobCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a repair job",
    description=(
        "Analyses the uploaded photos, generates a scope checklist, prices the "
        "job from local cost factors and stores it as a draft."
    ),
)
async def create_job(
    db: DBSession,
    user: ClientUser,
    detector: Detector,
    body: JobCreateRequest,
) -> JobCreateResponse:
    draft = jobService.JobDraft(
        title=body.title,
        description=body.description,
        category=body.category.value,
        city=body.city,
        zip=body.zip,
        photos=body.photos,
        rush=body.rush,
        after_hours=body.after_hours,
        renter=body.renter,
        landlord_id=body.landlord_id,
    )
    try:
        created = await jobService.create_job(db, user, draft, detector)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc

    return JobCreateResponse(
        job=JobOut.model_validate(created.job),
        estimate_min_cents=created.estimate_min_cents,
        estimate_max_cents=created.estimate_max_cents,
        confidence=created.analysis.confidence,
        tags=list(created.pricing.tags),
    )


# ---------------------------------------------------------------------------
# GET /api/v1/jobs
# ---------------------------------------------------------------------------

@router.get("", response_model=list[JobOut], summary="List jobs visible to the caller")
async def list_jobs(db: DBSession, user: CurrentUser) -> list[JobOut]:
    try:
        jobs = await jobService.list_jobs(db, user)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return [JobOut.model_validate(job) for job in jobs]


# ---------------------------------------------------------------------------
# GET /api/v1/jobs/{job_id}
# ---------------------------------------------------------------------------

@router.get("/{job_id}", response_model=JobOut, summary="Get job detail")
async def get_job(job_id: uuid.UUID, db: DBSession, user: CurrentUser) -> JobOut:
    try:
        job = await jobService.get_job_for(db, job_id, user)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return JobOut.model_validate(job)


@router.get(
    "/{job_id}/offers",
    response_model=list[OfferOut],
    summary="Offer audit trail for a job",
)
async def list_job_offers(job_id: uuid.UUID, db: DBSession, user: ClientUser) -> list[OfferOut]:
    try:
        offers = await jobService.list_offers(db, job_id, user)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return [OfferOut.model_validate(offer) for offer in offers]


# ---------------------------------------------------------------------------
# POST /api/v1/jobs/{job_id}/book
# ---------------------------------------------------------------------------

@router.post(
    "/{job_id}/book",
    response_model=JobBookResponse,
    summary="Book a job and broadcast offers",
    description=(
        "Moves a draft job to awaiting_accept and sends time-boxed offers to "
        "every verified contractor licensed for the job's area."
    ),
)
async def book_job(job_id: uuid.UUID, db: DBSession, user: ClientUser) -> JobBookResponse:
    try:
        result = await jobService.book_job(db, job_id, user)
        job = await jobService.get_job_for(db, job_id, user)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc

    return JobBookResponse(
        job=JobOut.model_validate(job),
        offers_sent=len(result.offers),
        contractors_notified=result.notified,
        notification_failures=result.notification_failures,
    )


# ---------------------------------------------------------------------------
# Contractor progress
# ---------------------------------------------------------------------------

@router.post("/{job_id}/start", response_model=JobOut, summary="Contractor starts work")
async def start_job(job_id: uuid.UUID, db: DBSession, user: ContractorUser) -> JobOut:
    try:
        job = await jobService.start_work(db, job_id, user)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return JobOut.model_validate(job)


@router.post(
    "/{job_id}/complete",
    response_model=JobOut,
    summary="Contractor marks the job ready for review",
)
async def complete_job(job_id: uuid.UUID, db: DBSession, user: ContractorUser) -> JobOut:
    try:
        job = await jobService.mark_complete(db, job_id, user)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# POST /api/v1/jobs/{job_id}/approve
# ---------------------------------------------------------------------------

@router.post(
    "/{job_id}/approve",
    response_model=JobOut,
    summary="Approve completed work",
    description="Completes the job and releases the contractor payout.",
)
async def approve_job(
    job_id: uuid.UUID,
    db: DBSession,
    user: ClientUser,
    body: Optional[JobApproveRequest] = None,
) -> JobOut:
    body = body or JobApproveRequest()
    try:
        job = await jobService.approve_job(db, job_id, user, body.rating, body.comment)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return JobOut.model_validate(job)


@router.post(
    "/{job_id}/dispute",
    response_model=JobOut,
    summary="Dispute the work",
    description=(
        "Holds the payout while the work is contested. An admin resolves the "
        "dispute by approving (payout) or cancelling (refund) the job."
    ),
)
async def dispute_job(
    job_id: uuid.UUID,
    db: DBSession,
    user: ClientUser,
    body: Optional[JobDisputeRequest] = None,
) -> JobOut:
    reason = body.reason if body else None
    try:
        job = await jobService.dispute_job(db, job_id, user, reason)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

@router.get(
    "/{job_id}/cancellation-quote",
    response_model=CancellationQuoteOut,
    summary="Preview the refund for cancelling now",
)
async def cancellation_quote(
    job_id: uuid.UUID, db: DBSession, user: ClientUser
) -> CancellationQuoteOut:
    try:
        job, quote = await jobService.quote_cancellation(db, job_id, user)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return CancellationQuoteOut(
        job_id=job.id,
        refund_amount_cents=quote.refund_amount_cents,
        service_fee_cents=quote.service_fee_cents,
        is_full_refund=quote.is_full_refund,
    )


@router.post(
    "/{job_id}/cancel",
    response_model=JobCancelResponse,
    summary="Cancel a job",
    description=(
        "Cancels a job before work starts. Cancelling more than 24 hours "
        "before the scheduled time refunds in full; later cancellations keep "
        "a flat service fee."
    ),
)
async def cancel_job(
    job_id: uuid.UUID,
    db: DBSession,
    user: ClientUser,
    body: Optional[JobCancelRequest] = None,
) -> JobCancelResponse:
    reason = body.reason if body else None
    try:
        job, settlement = await jobService.cancel_job(db, job_id, user, reason)
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc

    return JobCancelResponse(
        job=JobOut.model_validate(job),
        refund_amount_cents=settlement.quote.refund_amount_cents,
        service_fee_cents=settlement.quote.service_fee_cents,
        stripe_refund_id=settlement.stripe_refund_id,
    )
