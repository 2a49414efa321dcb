"""
Job Service
===========

Business logic for the job lifecycle around the offer dispatcher:

- Submitting a job: photo analysis, scope checklist, pricing, ``draft``
- Booking: ``draft -> awaiting_accept`` and broadcast to eligible contractors
- Contractor responses through magic links (accept / counter / decline)
- Work progress: start, mark complete, client approval with payout
- Cancellation with refund
- Landlord decisions and admin contractor verification

Every status change goes through ``jobStateManager`` guards and is written
with a status-guarded update so concurrent requests cannot both win.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prereno.core.config import settings
from prereno.events import jobEvents
from prereno.models import (
    Contractor,
    Job,
    JobCategory,
    JobOffer,
    JobStatus,
    Profile,
    Review,
    UserRole,
    utcnow,
)
from prereno.services import settlementService
from prereno.services.jobStateManager import ActorType, InvalidTransitionError, ensure_transition
from prereno.services.notificationService import (
    OfferNotifier,
    send_client_confirmation,
    send_landlord_approval,
)
from prereno.services.offerDispatcher import (
    AcceptResult,
    BroadcastResult,
    CounterResult,
    JobNotFoundError,
    NegotiationPolicy,
    OfferDispatcher,
)
from prereno.services.ports import ConditionAnalysis, ConditionDetector, CostFactorSource, Notifier
from prereno.services.pricingEngine import PriceBreakdown, price_job
from prereno.services.stores import (
    SqlCostFactorSource,
    SqlJobStore,
    SqlOfferStore,
    find_eligible_contractors,
    is_eligible_by_location,
)

logger = logging.getLogger(__name__)

# Estimate shown to the client before a contractor accepts
ESTIMATE_LOW_FRACTION = Decimal("0.9")
ESTIMATE_HIGH_FRACTION = Decimal("1.1")

LANDLORD_DECISIONS = frozenset({"approve", "request_changes", "decline"})

_VIEWER_ROLES_ALL_JOBS = frozenset({UserRole.ADMIN})


class PermissionDeniedError(Exception):
    """The caller is authenticated but may not act on this resource."""


# ---------------------------------------------------------------------------
# Scope checklist
# ---------------------------------------------------------------------------

SCOPE_TEMPLATES: dict[JobCategory, list[str]] = {
    JobCategory.PLUMBING: [
        "Shut off water supply",
        "Remove old fixtures",
        "Install new plumbing components",
        "Test for leaks and proper flow",
        "Clean and restore work area",
    ],
    JobCategory.ELECTRICAL: [
        "Turn off circuit breaker",
        "Remove old electrical components",
        "Install new wiring/fixtures safely",
        "Test electrical connections",
        "Restore power and verify operation",
    ],
    JobCategory.HANDYMAN: [
        "Assess and prepare work area",
        "Remove damaged materials",
        "Install replacement components",
        "Apply finishing touches",
        "Clean and inspect completed work",
    ],
}


def build_scope(category: str, tags: Sequence[str]) -> str:
    """Markdown checklist for the category, with the detected issues listed first."""
    steps = SCOPE_TEMPLATES.get(JobCategory(category), SCOPE_TEMPLATES[JobCategory.HANDYMAN])
    lines = [f"• Address: {tag.replace('_', ' ')}" for tag in tags]
    lines.extend(f"• {step}" for step in steps)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JobDraft:
    title: str
    category: str
    city: str
    zip: str
    description: Optional[str] = None
    photos: list[str] = field(default_factory=list)
    rush: bool = False
    after_hours: bool = False
    renter: bool = False
    landlord_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class CreatedJob:
    job: Job
    pricing: PriceBreakdown
    analysis: ConditionAnalysis
    estimate_min_cents: int
    estimate_max_cents: int


@dataclass(frozen=True)
class AcceptedOffer:
    result: AcceptResult
    client_secret: Optional[str]
    payment_intent_id: Optional[str]


def _estimate(price_cents: int, fraction: Decimal) -> int:
    return int((Decimal(price_cents) * fraction).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_dispatcher(
    db: AsyncSession,
    notifier: Optional[Notifier] = None,
    policy: Optional[NegotiationPolicy] = None,
) -> OfferDispatcher:
    return OfferDispatcher(
        SqlJobStore(db),
        SqlOfferStore(db),
        notifier=notifier,
        policy=policy or NegotiationPolicy.from_settings(),
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def _get_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    job = await SqlJobStore(db).get(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


async def _get_owned_job(db: AsyncSession, job_id: uuid.UUID, client: Profile) -> Job:
    job = await _get_job(db, job_id)
    if job.client_id != client.id and client.role != UserRole.ADMIN:
        # Same answer as a missing job: do not leak other clients' job ids
        raise JobNotFoundError(job_id)
    return job


async def _contractor_for(db: AsyncSession, profile: Profile) -> Contractor:
    result = await db.execute(select(Contractor).where(Contractor.profile_id == profile.id))
    contractor = result.scalar_one_or_none()
    if contractor is None:
        raise PermissionDeniedError("No contractor account for this profile.")
    return contractor


async def _assigned_job(db: AsyncSession, job_id: uuid.UUID, profile: Profile) -> Job:
    """Job whose accepted offer belongs to the profile's contractor account."""
    contractor = await _contractor_for(db, profile)
    job = await _get_job(db, job_id)
    accepted = await SqlOfferStore(db).get_accepted(job_id)
    if accepted is None or accepted.contractor_id != contractor.id:
        raise JobNotFoundError(job_id)
    return job


async def get_job_for(db: AsyncSession, job_id: uuid.UUID, profile: Profile) -> Job:
    """Job visible to the profile: owner, landlord, offered contractor or admin."""
    job = await _get_job(db, job_id)
    if profile.role in _VIEWER_ROLES_ALL_JOBS:
        return job
    if job.client_id == profile.id or job.landlord_id == profile.id:
        return job
    if profile.role == UserRole.CONTRACTOR:
        contractor = await _contractor_for(db, profile)
        if await SqlOfferStore(db).get(job_id, contractor.id) is not None:
            return job
    raise JobNotFoundError(job_id)


async def list_jobs(db: AsyncSession, profile: Profile) -> list[Job]:
    stmt = select(Job).order_by(Job.created_at.desc())
    if profile.role == UserRole.CONTRACTOR:
        contractor = await _contractor_for(db, profile)
        stmt = stmt.join(JobOffer, JobOffer.job_id == Job.id).where(
            JobOffer.contractor_id == contractor.id
        )
    elif profile.role in (UserRole.LANDLORD, UserRole.PROPERTY_MANAGER):
        stmt = stmt.where((Job.landlord_id == profile.id) | (Job.client_id == profile.id))
    elif profile.role not in _VIEWER_ROLES_ALL_JOBS:
        stmt = stmt.where(Job.client_id == profile.id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_offers(db: AsyncSession, job_id: uuid.UUID, profile: Profile) -> list[JobOffer]:
    job = await _get_owned_job(db, job_id, profile)
    return await SqlOfferStore(db).list_for_job(job.id)


# ---------------------------------------------------------------------------
# Submit & book
# ---------------------------------------------------------------------------

async def create_job(
    db: AsyncSession,
    client: Profile,
    draft: JobDraft,
    detector: ConditionDetector,
    cost_source: Optional[CostFactorSource] = None,
) -> CreatedJob:
    """Analyse photos, price the job and persist it as ``draft``.

    Raises:
        NotConfiguredError: No cost factors for the category and postal code.
        ValueError: Unknown category.
    """
    category = JobCategory(draft.category)
    analysis = await detector.analyze(draft.photos)
    scope = build_scope(category.value, analysis.tags)

    pricing = await price_job(
        cost_source or SqlCostFactorSource(db),
        category.value,
        draft.zip,
        analysis.tags,
        rush=draft.rush,
        after_hours=draft.after_hours,
        margin_fraction=settings.default_margin_fraction,
    )

    job = Job(
        client_id=client.id,
        title=draft.title,
        description=draft.description,
        category=category,
        status=JobStatus.DRAFT,
        city=draft.city,
        zip=draft.zip,
        photos_json=list(draft.photos),
        condition_tags_json=list(pricing.tags),
        detection_confidence=Decimal(str(round(analysis.confidence, 4))),
        scope_md=scope,
        client_price_cents=pricing.client_price_cents,
        contractor_net_cents=pricing.provider_net_cents,
        platform_fee_cents=pricing.platform_fee_cents,
        margin_pct=pricing.margin_fraction,
        rush_flag=draft.rush,
        after_hours_flag=draft.after_hours,
        renter_flag=draft.renter,
        landlord_id=draft.landlord_id if draft.renter else None,
    )
    db.add(job)
    await db.flush()

    await jobEvents.emit_job_created(
        db, job.id, client.id, analysis.confidence, pricing.client_price_cents
    )
    if job.renter_flag and job.landlord_id is not None:
        await send_landlord_approval(db, job, client)

    logger.info(
        "Job created: id=%s, client=%s, category=%s, client_price=%d",
        job.id,
        client.id,
        category.value,
        job.client_price_cents,
    )
    return CreatedJob(
        job=job,
        pricing=pricing,
        analysis=analysis,
        estimate_min_cents=_estimate(pricing.client_price_cents, ESTIMATE_LOW_FRACTION),
        estimate_max_cents=_estimate(pricing.client_price_cents, ESTIMATE_HIGH_FRACTION),
    )


async def book_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    client: Profile,
    notifier: Optional[Notifier] = None,
) -> BroadcastResult:
    """Open the job for offers and broadcast it to eligible contractors."""
    job = await _get_owned_job(db, job_id, client)
    ensure_transition(job.status, JobStatus.AWAITING_ACCEPT, ActorType.CLIENT)

    store = SqlJobStore(db)
    if not await store.compare_and_set_status(
        job.id, JobStatus.DRAFT, JobStatus.AWAITING_ACCEPT
    ):
        raise InvalidTransitionError("Job cannot be booked in current status.")
    job = await _get_job(db, job.id)

    contractors = await find_eligible_contractors(db, job)
    if not contractors:
        logger.warning("No eligible contractors for job %s in %s", job.id, job.zip)

    dispatcher = build_dispatcher(db, notifier if notifier is not None else OfferNotifier(db))
    result = await dispatcher.broadcast(job, contractors, is_eligible=is_eligible_by_location)

    await jobEvents.emit_job_booked(db, job.id, client.id, len(result.offers))
    return result


# ---------------------------------------------------------------------------
# Contractor responses
# ---------------------------------------------------------------------------

async def accept_offer(
    db: AsyncSession,
    job_id: uuid.UUID,
    contractor_id: uuid.UUID,
) -> AcceptResult:
    """Claim the job. The caller commits before collecting payment."""
    result = await build_dispatcher(db).accept(job_id, contractor_id)
    await jobEvents.emit_offer_accepted(db, job_id, contractor_id)
    return result


async def collect_payment(
    db: AsyncSession,
    job: Job,
    contractor_id: uuid.UUID,
) -> settlementService.CaptureResult:
    """Create the PaymentIntent for an accepted job and confirm the booking."""
    client = await db.get(Profile, job.client_id)
    capture = await settlementService.capture_on_accept(
        db, job, contractor_id, receipt_email=client.email if client else None
    )
    await send_client_confirmation(db, job, contractor_id)
    return capture


async def counter_offer(
    db: AsyncSession,
    job_id: uuid.UUID,
    contractor_id: uuid.UUID,
    counter_net_cents: int,
) -> CounterResult:
    result = await build_dispatcher(db).counter(job_id, contractor_id, counter_net_cents)
    if result.auto_approved:
        await jobEvents.emit_offer_accepted(
            db, job_id, contractor_id, counter_net_cents=counter_net_cents
        )
    else:
        await jobEvents.emit_offer_countered(db, job_id, contractor_id, counter_net_cents)
    return result


async def decline_offer(
    db: AsyncSession,
    job_id: uuid.UUID,
    contractor_id: uuid.UUID,
) -> JobOffer:
    offer = await build_dispatcher(db).decline(job_id, contractor_id)
    await jobEvents.emit_offer_declined(db, job_id, contractor_id)
    return offer


# ---------------------------------------------------------------------------
# Work progress
# ---------------------------------------------------------------------------

async def _transition(
    db: AsyncSession,
    job: Job,
    new_status: JobStatus,
    actor: ActorType,
    actor_id: uuid.UUID,
    action: str,
    **values,
) -> Job:
    old_status = job.status
    ensure_transition(old_status, new_status, actor)
    if not await SqlJobStore(db).compare_and_set_status(job.id, old_status, new_status, **values):
        raise InvalidTransitionError(
            f"Job {job.id} changed status concurrently; reload and retry."
        )
    await jobEvents.emit_job_status_changed(
        db, action, job.id, old_status.value, new_status.value, actor_id=actor_id
    )
    return await _get_job(db, job.id)


async def start_work(db: AsyncSession, job_id: uuid.UUID, profile: Profile) -> Job:
    job = await _assigned_job(db, job_id, profile)
    return await _transition(
        db, job, JobStatus.IN_PROGRESS, ActorType.CONTRACTOR, profile.id, "job_started"
    )


async def mark_complete(db: AsyncSession, job_id: uuid.UUID, profile: Profile) -> Job:
    job = await _assigned_job(db, job_id, profile)
    return await _transition(
        db, job, JobStatus.READY_FOR_REVIEW, ActorType.CONTRACTOR, profile.id, "job_completed"
    )


async def approve_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    client: Profile,
    rating: Optional[int] = None,
    comment: Optional[str] = None,
) -> Job:
    """Client signs off on the work: job completed, payout released."""
    job = await _get_owned_job(db, job_id, client)
    job = await _transition(
        db,
        job,
        JobStatus.COMPLETED,
        ActorType.CLIENT,
        client.id,
        "job_approved",
        completed_at=utcnow(),
    )
    payment = await settlementService.release_on_approval(db, job)

    if rating is not None:
        accepted = await SqlOfferStore(db).get_accepted(job.id)
        ratee = accepted.contractor_id if accepted else (payment.contractor_id if payment else None)
        if ratee is not None:
            db.add(
                Review(
                    job_id=job.id,
                    rater_profile_id=client.id,
                    ratee_contractor_id=ratee,
                    rating=rating,
                    comment=comment,
                )
            )
            await db.flush()
    return job


async def dispute_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    client: Profile,
    reason: Optional[str] = None,
) -> Job:
    """Client contests the work; the payout stays held.

    A disputed job leaves ``disputed`` through ``approve_job`` (client or
    admin, payout released) or an admin ``cancel_job`` (refund).
    """
    job = await _get_owned_job(db, job_id, client)
    old_status = job.status
    ensure_transition(old_status, JobStatus.DISPUTED, ActorType.CLIENT)
    if not await SqlJobStore(db).compare_and_set_status(job.id, old_status, JobStatus.DISPUTED):
        raise InvalidTransitionError(
            f"Job {job.id} changed status concurrently; reload and retry."
        )
    await jobEvents.emit_job_disputed(db, job.id, client.id, old_status.value, reason)
    logger.warning("Job disputed: id=%s, from=%s, by=%s", job.id, old_status.value, client.id)
    return await _get_job(db, job.id)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

async def quote_cancellation(
    db: AsyncSession,
    job_id: uuid.UUID,
    client: Profile,
    now: Optional[datetime] = None,
):
    job = await _get_owned_job(db, job_id, client)
    quote, _ = await settlementService.quote_cancellation(db, job, now)
    return job, quote


async def cancel_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    client: Profile,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[Job, settlementService.CancellationSettlement]:
    """Cancel before work starts; refund per the cancellation window.

    The status write happens first so a contractor accepting at the same
    moment either wins (cancel fails) or loses (offers expired). A payment
    processor failure rolls the whole cancellation back.
    """
    job = await _get_owned_job(db, job_id, client)
    actor = ActorType.ADMIN if client.role == UserRole.ADMIN else ActorType.CLIENT
    old_status = job.status
    ensure_transition(old_status, JobStatus.CANCELLED, actor)

    now = now or utcnow()
    if not await SqlJobStore(db).compare_and_set_status(
        job.id,
        old_status,
        JobStatus.CANCELLED,
        cancelled_at=now,
        cancellation_reason=reason,
    ):
        raise InvalidTransitionError(
            f"Job {job.id} changed status concurrently; reload and retry."
        )

    offers = SqlOfferStore(db)
    accepted = await offers.get_accepted(job.id)
    await offers.expire_others(job.id, accepted.contractor_id if accepted else None)

    job = await _get_job(db, job.id)
    settlement = await settlementService.refund_on_cancel(db, job, now)

    await jobEvents.emit_job_cancelled(
        db,
        job.id,
        client.id,
        settlement.quote.refund_amount_cents,
        settlement.quote.service_fee_cents,
        reason,
    )
    logger.info(
        "Job cancelled: id=%s, from=%s, refund=%d, fee=%d",
        job.id,
        old_status.value,
        settlement.quote.refund_amount_cents,
        settlement.quote.service_fee_cents,
    )
    return job, settlement


# ---------------------------------------------------------------------------
# Landlord & admin
# ---------------------------------------------------------------------------

async def record_landlord_decision(
    db: AsyncSession,
    job_id: uuid.UUID,
    landlord: Profile,
    decision: str,
    message: Optional[str] = None,
) -> dict:
    if decision not in LANDLORD_DECISIONS:
        raise ValueError(f"Unknown landlord decision: {decision}")
    job = await _get_job(db, job_id)
    if job.landlord_id != landlord.id and landlord.role != UserRole.ADMIN:
        raise JobNotFoundError(job_id)
    return await jobEvents.emit_landlord_decision(db, job.id, landlord.id, decision, message)


async def list_pending_contractors(db: AsyncSession) -> list[tuple[Contractor, Profile]]:
    result = await db.execute(
        select(Contractor, Profile)
        .join(Profile, Profile.id == Contractor.profile_id)
        .where(Contractor.verified.is_(False))
        .order_by(Contractor.created_at)
    )
    return [(row[0], row[1]) for row in result.all()]


async def set_contractor_verified(
    db: AsyncSession,
    contractor_id: uuid.UUID,
    admin: Profile,
    verified: bool,
) -> Contractor:
    contractor = await db.get(Contractor, contractor_id)
    if contractor is None:
        raise LookupError(f"Contractor {contractor_id} not found.")
    contractor.verified = verified
    await db.flush()
    await jobEvents.emit_contractor_verified(db, contractor.id, admin.id, verified)
    return contractor
