"""
Stripe payout to contractors.

After the client approves a completed job the platform keeps its fee and
transfers the contractor net to the contractor's Stripe Connect account.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import stripe

from prereno.core.config import settings

from .paymentService import PLATFORM_TAG, _handle_stripe_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    """Result of a platform -> connected account transfer."""
    id: str
    status: str
    amount_cents: int
    destination: str


async def create_transfer(
    job_id: uuid.UUID,
    contractor_account_id: str,
    amount_cents: int,
    currency: Optional[str] = None,
    source_transaction: Optional[str] = None,
) -> TransferResult:
    """Transfer funds from the platform balance to a contractor's account.

    Args:
        job_id: The job UUID (stored in transfer metadata).
        contractor_account_id: The contractor's Stripe Connect account ID.
        amount_cents: Contractor net in cents.
        currency: ISO currency code (defaults to ``settings.stripe_currency``).
        source_transaction: Charge the transfer is funded from, if known.

    Raises:
        PaymentError: If the transfer fails.
        ValueError: If amount_cents is non-positive.
    """
    if amount_cents <= 0:
        raise ValueError(f"Transfer amount must be positive, got {amount_cents}")

    currency = (currency or settings.stripe_currency).lower()
    params: dict = {
        "amount": amount_cents,
        "currency": currency,
        "destination": contractor_account_id,
        "transfer_group": f"job_{job_id}",
        "metadata": {
            "job_id": str(job_id),
            "platform": PLATFORM_TAG,
        },
    }
    if source_transaction:
        params["source_transaction"] = source_transaction

    try:
        transfer = stripe.Transfer.create(**params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "Transfer created: id=%s, job_id=%s, account=%s, amount=%d %s",
        transfer.id,
        job_id,
        contractor_account_id,
        amount_cents,
        currency,
    )

    return TransferResult(
        id=transfer.id,
        status="pending",
        amount_cents=transfer.amount,
        destination=contractor_account_id,
    )
