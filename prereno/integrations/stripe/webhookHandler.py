"""
Stripe Webhook Handler
======================

Processes inbound Stripe webhook events with:
- Signature verification using ``settings.stripe_webhook_secret``
- Idempotent event processing (processed event IDs kept in an in-memory LRU)
- Payment state updates for the job the PaymentIntent belongs to

Supported event types:
  - payment_intent.succeeded       -> payment succeeded, job scheduled
  - payment_intent.payment_failed  -> payment failed, job stays accepted
  - charge.refunded                -> logged (refund rows are written on cancel)

Events not in the handled set are acknowledged but not processed. A handler
failure raises ``WebhookProcessingError`` so the route answers 5xx and Stripe
redelivers the event.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Awaitable, Callable

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from prereno.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Idempotency store
# ---------------------------------------------------------------------------
# LRU of processed event IDs. Per-process only; Stripe retries are also made
# harmless by the status guards in the settlement service.

_MAX_PROCESSED_EVENTS = 10_000
_processed_events: OrderedDict[str, float] = OrderedDict()
_processed_lock = Lock()


def mark_event_processed(event_id: str) -> None:
    with _processed_lock:
        _processed_events[event_id] = time.time()
        while len(_processed_events) > _MAX_PROCESSED_EVENTS:
            _processed_events.popitem(last=False)


def _is_event_processed(event_id: str) -> bool:
    with _processed_lock:
        return event_id in _processed_events


def clear_processed_events() -> None:
    """Clear the processed events store. Useful for testing."""
    with _processed_lock:
        _processed_events.clear()


# ---------------------------------------------------------------------------
# Response dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WebhookResult:
    """Result of processing a webhook event."""
    event_id: str
    event_type: str
    processed: bool
    message: str
    duplicate: bool = False


class WebhookProcessingError(Exception):
    """A verified event whose handler failed; Stripe must redeliver it."""

    def __init__(self, event_id: str, event_type: str) -> None:
        self.event_id = event_id
        self.event_type = event_type
        super().__init__(f"Error processing event {event_id} ({event_type})")


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------

async def _handle_payment_intent_succeeded(db: AsyncSession, event: stripe.Event) -> str:
    from prereno.services import settlementService

    payment_intent = event.data.object
    job_id = payment_intent.metadata.get("job_id", "unknown")

    payment = await settlementService.record_payment_succeeded(db, payment_intent.id)
    if payment is None:
        return f"Payment intent {payment_intent.id} has no payment record"

    logger.info(
        "Payment succeeded: intent=%s, job_id=%s, amount=%d %s",
        payment_intent.id,
        job_id,
        payment_intent.amount,
        payment_intent.currency,
    )
    return f"Payment intent {payment_intent.id} succeeded for job {job_id}"


async def _handle_payment_intent_failed(db: AsyncSession, event: stripe.Event) -> str:
    from prereno.services import settlementService

    payment_intent = event.data.object
    job_id = payment_intent.metadata.get("job_id", "unknown")

    last_error = payment_intent.last_payment_error
    error_message = "Unknown error"
    if last_error:
        error_message = getattr(last_error, "message", str(last_error))

    await settlementService.record_payment_failed(db, payment_intent.id)

    logger.warning(
        "Payment failed: intent=%s, job_id=%s, error=%s",
        payment_intent.id,
        job_id,
        error_message,
    )
    return f"Payment intent {payment_intent.id} failed for job {job_id}: {error_message}"


async def _handle_charge_refunded(db: AsyncSession, event: stripe.Event) -> str:
    charge = event.data.object
    logger.info(
        "Charge refunded: charge=%s, payment_intent=%s, refunded=%d",
        charge.id,
        charge.payment_intent,
        charge.amount_refunded,
    )
    return f"Charge {charge.id} refunded: {charge.amount_refunded} cents"


_EVENT_HANDLERS: dict[str, Callable[[AsyncSession, stripe.Event], Awaitable[str]]] = {
    "payment_intent.succeeded": _handle_payment_intent_succeeded,
    "payment_intent.payment_failed": _handle_payment_intent_failed,
    "charge.refunded": _handle_charge_refunded,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def handle_webhook(
    db: AsyncSession,
    payload: bytes,
    sig_header: str,
) -> WebhookResult:
    """Verify and process an inbound Stripe webhook event.

    The event is not recorded as processed here. The caller marks it with
    ``mark_event_processed`` once the session has committed, so a failed
    commit still lets Stripe's redelivery through.

    Raises:
        ValueError: If the signature or payload is invalid.
        WebhookProcessingError: If the event handler fails.
    """
    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=settings.stripe_webhook_secret,
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("Webhook signature verification failed: %s", str(exc))
        raise ValueError(f"Invalid webhook signature: {str(exc)}") from exc
    except ValueError as exc:
        logger.warning("Webhook payload parsing failed: %s", str(exc))
        raise ValueError(f"Invalid webhook payload: {str(exc)}") from exc

    event_id: str = event.id
    event_type: str = event.type

    if _is_event_processed(event_id):
        logger.info(
            "Webhook event already processed, skipping: id=%s, type=%s",
            event_id,
            event_type,
        )
        return WebhookResult(
            event_id=event_id,
            event_type=event_type,
            processed=False,
            message=f"Event {event_id} already processed (idempotent skip)",
            duplicate=True,
        )

    handler = _EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Webhook event type not handled: id=%s, type=%s", event_id, event_type)
        return WebhookResult(
            event_id=event_id,
            event_type=event_type,
            processed=False,
            message=f"Event type '{event_type}' acknowledged but not handled",
        )

    try:
        message = await handler(db, event)
    except Exception as exc:
        logger.exception(
            "Error processing webhook event: id=%s, type=%s",
            event_id,
            event_type,
        )
        raise WebhookProcessingError(event_id, event_type) from exc

    logger.info("Webhook event processed: id=%s, type=%s", event_id, event_type)

    return WebhookResult(
        event_id=event_id,
        event_type=event_type,
        processed=True,
        message=message,
    )
