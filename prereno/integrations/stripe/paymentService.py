"""
Stripe Payment Service
======================

Client-side payment operations for booked jobs:
- PaymentIntent creation when a contractor accepts (capture-on-accept)
- Server-side confirmation
- Cancellation of unpaid intents and refunds on job cancellation

All monetary amounts are in cents (integers). Keys come from
``prereno.core.config.settings`` (``STRIPE_SECRET_KEY`` and friends).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import stripe

from prereno.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Stripe SDK configuration
# ---------------------------------------------------------------------------

stripe.api_key = settings.stripe_secret_key
stripe.api_version = "2024-06-20"

PLATFORM_TAG = "prereno"


# ---------------------------------------------------------------------------
# Custom exception
# ---------------------------------------------------------------------------

class PaymentError(Exception):
    """Raised when a Stripe payment operation fails.

    Attributes:
        message: Human-readable error description.
        stripe_error_code: The Stripe error code, if available.
        stripe_error_type: The Stripe error type, if available.
        decline_code: The decline code from the card issuer, if available.
    """

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        stripe_error_type: str | None = None,
        decline_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stripe_error_code = stripe_error_code
        self.stripe_error_type = stripe_error_type
        self.decline_code = decline_code


# ---------------------------------------------------------------------------
# Response dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaymentIntentResult:
    """Result of creating a Stripe PaymentIntent."""
    id: str
    client_secret: str
    status: str
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class PaymentConfirmation:
    """Status of a PaymentIntent after server-side confirmation."""
    id: str
    status: str
    amount_cents: int

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class RefundResult:
    """Result of a Stripe refund operation."""
    id: str
    status: str
    amount_cents: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _handle_stripe_error(exc: stripe.StripeError) -> PaymentError:
    """Convert a Stripe SDK exception into a PaymentError."""
    error_body = getattr(exc, "error", None)

    code = getattr(error_body, "code", None) if error_body else None
    error_type = getattr(error_body, "type", None) if error_body else None
    decline_code = getattr(error_body, "decline_code", None) if error_body else None

    logger.error(
        "Stripe API error: %s (code=%s, type=%s, decline_code=%s)",
        str(exc),
        code,
        error_type,
        decline_code,
    )

    return PaymentError(
        message=str(exc),
        stripe_error_code=code,
        stripe_error_type=error_type,
        decline_code=decline_code,
    )


# ---------------------------------------------------------------------------
# Payment Intent operations
# ---------------------------------------------------------------------------

async def create_payment_intent(
    job_id: uuid.UUID,
    amount_cents: int,
    currency: Optional[str] = None,
    contractor_id: Optional[uuid.UUID] = None,
    receipt_email: Optional[str] = None,
) -> PaymentIntentResult:
    """Create a Stripe PaymentIntent for an accepted job.

    Args:
        job_id: The job UUID. Stored in PaymentIntent metadata so webhooks
            can find the job again.
        amount_cents: Client-facing total in cents.
        currency: ISO currency code (defaults to ``settings.stripe_currency``).
        contractor_id: The winning contractor, stored in metadata.
        receipt_email: Where Stripe sends the receipt.

    Raises:
        PaymentError: If the Stripe API call fails.
        ValueError: If amount_cents is non-positive.
    """
    if amount_cents <= 0:
        raise ValueError(f"Payment amount must be positive, got {amount_cents}")

    currency = (currency or settings.stripe_currency).lower()
    metadata = {"job_id": str(job_id), "platform": PLATFORM_TAG}
    if contractor_id is not None:
        metadata["contractor_id"] = str(contractor_id)

    params: dict = {
        "amount": amount_cents,
        "currency": currency,
        "metadata": metadata,
        "automatic_payment_methods": {"enabled": True},
        "capture_method": "automatic",
    }
    if receipt_email:
        params["receipt_email"] = receipt_email

    try:
        intent = stripe.PaymentIntent.create(**params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "PaymentIntent created: id=%s, job_id=%s, amount=%d %s",
        intent.id,
        job_id,
        amount_cents,
        currency,
    )

    return PaymentIntentResult(
        id=intent.id,
        client_secret=intent.client_secret,
        status=intent.status,
        amount_cents=intent.amount,
        currency=intent.currency,
    )


async def confirm_payment(
    payment_intent_id: str,
    payment_method_id: Optional[str] = None,
) -> PaymentConfirmation:
    """Confirm a PaymentIntent server-side.

    Most web flows confirm client-side with the client secret; this is the
    server-driven path used when the browser hands back a payment method.

    Raises:
        PaymentError: If the confirmation fails.
    """
    params: dict = {}
    if payment_method_id:
        params["payment_method"] = payment_method_id

    try:
        intent = stripe.PaymentIntent.confirm(payment_intent_id, **params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "PaymentIntent confirmed: id=%s, status=%s",
        intent.id,
        intent.status,
    )

    return PaymentConfirmation(
        id=intent.id,
        status=intent.status,
        amount_cents=intent.amount,
    )


async def cancel_payment(
    payment_intent_id: str,
    reason: str = "requested_by_customer",
) -> str:
    """Void the intent of a job cancelled before the client paid.

    ``reason`` must be one of Stripe's cancellation reasons.
    """
    try:
        intent = stripe.PaymentIntent.cancel(
            payment_intent_id,
            cancellation_reason=reason,
        )
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info("PaymentIntent voided: id=%s, reason=%s", intent.id, reason)
    return intent.status


async def refund_payment(
    payment_intent_id: str,
    amount_cents: int | None = None,
    reason: str = "",
) -> RefundResult:
    """Refund a PaymentIntent (full when ``amount_cents`` is None).

    Raises:
        PaymentError: If the refund fails.
        ValueError: If amount_cents is negative.
    """
    if amount_cents is not None and amount_cents < 0:
        raise ValueError(f"Refund amount cannot be negative, got {amount_cents}")

    params: dict = {
        "payment_intent": payment_intent_id,
        "metadata": {
            "reason": reason[:500] if reason else "",
            "platform": PLATFORM_TAG,
        },
    }
    if amount_cents is not None and amount_cents > 0:
        params["amount"] = amount_cents

    try:
        refund = stripe.Refund.create(**params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "Refund created: id=%s, payment_intent=%s, amount=%d, status=%s",
        refund.id,
        payment_intent_id,
        refund.amount,
        refund.status,
    )

    return RefundResult(
        id=refund.id,
        status=refund.status,
        amount_cents=refund.amount,
    )
