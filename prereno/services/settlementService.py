"""
Settlement Service
==================

Glue between job state and the payment processor. This module supplies
amounts and references to Stripe and mirrors the outcome on ``payments``
rows; it never decides prices.

    accept   -> capture_on_accept     PaymentIntent for client_price_cents
    confirm  -> confirm_payment       payment succeeded, job accepted -> scheduled
    approve  -> release_on_approval   transfer contractor_net_cents, payment released
    cancel   -> refund_on_cancel      refund per the cancellation window

Stripe failures surface as ``PaymentError`` from the integration layer.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prereno.core.config import settings
from prereno.integrations.stripe import paymentService, payoutService
from prereno.models import Contractor, Job, JobStatus, Payment, PaymentStatus, utcnow
from prereno.services.jobStateManager import InvalidTransitionError
from prereno.services.refundCalculator import RefundPolicy, RefundQuote, compute_refund
from prereno.services.stores import SqlJobStore

logger = logging.getLogger(__name__)

_PAID_STATUSES = frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.RELEASED})


class PaymentNotFoundError(Exception):
    def __init__(self, job_id: uuid.UUID) -> None:
        self.job_id = job_id
        super().__init__(f"No payment found for job {job_id}.")


@dataclass(frozen=True)
class CaptureResult:
    payment: Payment
    client_secret: str


@dataclass(frozen=True)
class CancellationSettlement:
    quote: RefundQuote
    payment: Optional[Payment]
    stripe_refund_id: Optional[str] = None


def refund_policy_from_settings() -> RefundPolicy:
    return RefundPolicy(
        late_cancellation_fee_cents=settings.late_cancellation_fee_cents,
        free_window=timedelta(hours=settings.free_cancellation_window_hours),
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_payment_for_job(db: AsyncSession, job_id: uuid.UUID) -> Optional[Payment]:
    """Most recent payment row for the job."""
    result = await db.execute(
        select(Payment)
        .where(Payment.job_id == job_id)
        .order_by(Payment.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_payment_by_intent(db: AsyncSession, intent_id: str) -> Optional[Payment]:
    result = await db.execute(
        select(Payment).where(Payment.stripe_payment_intent_id == intent_id)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------

async def capture_on_accept(
    db: AsyncSession,
    job: Job,
    contractor_id: uuid.UUID,
    receipt_email: Optional[str] = None,
) -> CaptureResult:
    """Create the PaymentIntent for an accepted job.

    Calling again for a job whose previous intent is pending or failed
    creates a fresh intent on the same payment row.

    Raises:
        InvalidTransitionError: Job not accepted, or already paid.
        PaymentError: Stripe rejected the intent.
    """
    if job.status != JobStatus.ACCEPTED:
        raise InvalidTransitionError(
            f"Payment can only be collected for accepted jobs (current: '{job.status.value}')."
        )

    payment = await get_payment_for_job(db, job.id)
    if payment is not None and payment.status in _PAID_STATUSES:
        raise InvalidTransitionError(f"Job {job.id} is already paid.")

    intent = await paymentService.create_payment_intent(
        job.id,
        job.client_price_cents,
        contractor_id=contractor_id,
        receipt_email=receipt_email,
    )
    fee_cents = job.client_price_cents - job.contractor_net_cents

    if payment is None:
        payment = Payment(
            job_id=job.id,
            client_id=job.client_id,
            contractor_id=contractor_id,
            stripe_payment_intent_id=intent.id,
            amount_cents=job.client_price_cents,
            fee_cents=fee_cents,
            status=PaymentStatus.PENDING,
        )
        db.add(payment)
    else:
        payment.stripe_payment_intent_id = intent.id
        payment.amount_cents = job.client_price_cents
        payment.fee_cents = fee_cents
        payment.status = PaymentStatus.PENDING
    await db.flush()

    logger.info(
        "Payment pending: job=%s, intent=%s, amount=%d, fee=%d",
        job.id,
        intent.id,
        payment.amount_cents,
        payment.fee_cents,
    )
    return CaptureResult(payment=payment, client_secret=intent.client_secret)


# ---------------------------------------------------------------------------
# Confirmation (API and webhooks)
# ---------------------------------------------------------------------------

async def record_payment_succeeded(db: AsyncSession, intent_id: str) -> Optional[Payment]:
    """Mark the payment succeeded and schedule its job. Safe to repeat."""
    payment = await get_payment_by_intent(db, intent_id)
    if payment is None:
        logger.warning("Payment succeeded for unknown intent %s", intent_id)
        return None

    if payment.status in (PaymentStatus.PENDING, PaymentStatus.FAILED):
        payment.status = PaymentStatus.SUCCEEDED
        await db.flush()

    scheduled = await SqlJobStore(db).compare_and_set_status(
        payment.job_id, JobStatus.ACCEPTED, JobStatus.SCHEDULED
    )
    if scheduled:
        logger.info("Job %s scheduled after payment %s", payment.job_id, intent_id)
    return payment


async def record_payment_failed(db: AsyncSession, intent_id: str) -> Optional[Payment]:
    payment = await get_payment_by_intent(db, intent_id)
    if payment is None:
        logger.warning("Payment failure for unknown intent %s", intent_id)
        return None
    if payment.status == PaymentStatus.PENDING:
        payment.status = PaymentStatus.FAILED
        await db.flush()
    return payment


async def confirm_payment(
    db: AsyncSession,
    job: Job,
    payment_method_id: Optional[str] = None,
) -> Payment:
    """Confirm the job's PaymentIntent server-side.

    Raises:
        PaymentNotFoundError: No intent was created for the job.
        PaymentError: Stripe rejected the confirmation.
    """
    payment = await get_payment_for_job(db, job.id)
    if payment is None:
        raise PaymentNotFoundError(job.id)
    if payment.status in _PAID_STATUSES:
        return payment

    confirmation = await paymentService.confirm_payment(
        payment.stripe_payment_intent_id, payment_method_id
    )
    if confirmation.succeeded:
        await record_payment_succeeded(db, payment.stripe_payment_intent_id)
    else:
        logger.info(
            "Payment %s not yet succeeded: status=%s",
            payment.stripe_payment_intent_id,
            confirmation.status,
        )
    return payment


# ---------------------------------------------------------------------------
# Release
# ---------------------------------------------------------------------------

async def release_on_approval(db: AsyncSession, job: Job) -> Optional[Payment]:
    """Pay the contractor net out to their connected account.

    Contractors without a connected account are marked released and paid
    out manually.
    """
    payment = await get_payment_for_job(db, job.id)
    if payment is None or payment.status != PaymentStatus.SUCCEEDED:
        logger.warning("No settled payment to release for job %s", job.id)
        return payment

    contractor = await db.get(Contractor, payment.contractor_id)
    if contractor is not None and contractor.stripe_account_id:
        transfer = await payoutService.create_transfer(
            job.id,
            contractor.stripe_account_id,
            job.contractor_net_cents,
        )
        payment.stripe_transfer_id = transfer.id
    else:
        logger.warning(
            "Contractor %s has no connected account; payout for job %s is manual",
            payment.contractor_id,
            job.id,
        )

    payment.status = PaymentStatus.RELEASED
    payment.released_at = utcnow()
    await db.flush()

    logger.info(
        "Payment released: job=%s, contractor=%s, net=%d",
        job.id,
        payment.contractor_id,
        job.contractor_net_cents,
    )
    return payment


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

async def quote_cancellation(
    db: AsyncSession,
    job: Job,
    now: Optional[datetime] = None,
) -> tuple[RefundQuote, Optional[Payment]]:
    """Refund preview. Nothing paid means nothing refunded and no fee."""
    payment = await get_payment_for_job(db, job.id)
    if payment is None or payment.status != PaymentStatus.SUCCEEDED:
        return RefundQuote(refund_amount_cents=0, service_fee_cents=0), payment

    quote = compute_refund(
        job.scheduled_at,
        payment.amount_cents,
        now or utcnow(),
        refund_policy_from_settings(),
    )
    return quote, payment


async def refund_on_cancel(
    db: AsyncSession,
    job: Job,
    now: Optional[datetime] = None,
) -> CancellationSettlement:
    """Refund (or void) the job's payment according to the cancellation window."""
    quote, payment = await quote_cancellation(db, job, now)
    if payment is None:
        return CancellationSettlement(quote=quote, payment=None)

    if payment.status == PaymentStatus.PENDING:
        await paymentService.cancel_payment(payment.stripe_payment_intent_id)
        payment.status = PaymentStatus.FAILED
        await db.flush()
        return CancellationSettlement(quote=quote, payment=payment)

    refund_id: Optional[str] = None
    if payment.status == PaymentStatus.SUCCEEDED and quote.refund_amount_cents > 0:
        refund = await paymentService.refund_payment(
            payment.stripe_payment_intent_id,
            quote.refund_amount_cents,
            reason="job_cancelled",
        )
        refund_id = refund.id
        payment.refunded_cents = quote.refund_amount_cents
        payment.status = PaymentStatus.REFUNDED
        await db.flush()

    logger.info(
        "Cancellation settled: job=%s, refund=%d, fee=%d",
        job.id,
        quote.refund_amount_cents,
        quote.service_fee_cents,
    )
    return CancellationSettlement(quote=quote, payment=payment, stripe_refund_id=refund_id)
