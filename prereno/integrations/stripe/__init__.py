"""
Stripe Integration Module
=========================

Central export point for the Stripe integration services.

Usage::

    from prereno.integrations.stripe import (
        PaymentError,
        create_payment_intent,
        confirm_payment,
        refund_payment,
        create_transfer,
        handle_webhook,
    )
"""

from .paymentService import (
    PaymentConfirmation,
    PaymentError,
    PaymentIntentResult,
    RefundResult,
    cancel_payment,
    confirm_payment,
    create_payment_intent,
    refund_payment,
)
from .payoutService import (
    TransferResult,
    create_transfer,
)
from .webhookHandler import (
    WebhookProcessingError,
    WebhookResult,
    clear_processed_events,
    handle_webhook,
    mark_event_processed,
)

__all__ = [
    # Payment Service
    "PaymentError",
    "PaymentIntentResult",
    "PaymentConfirmation",
    "RefundResult",
    "create_payment_intent",
    "confirm_payment",
    "cancel_payment",
    "refund_payment",
    # Payout Service
    "TransferResult",
    "create_transfer",
    # Webhook Handler
    "WebhookProcessingError",
    "WebhookResult",
    "clear_processed_events",
    "handle_webhook",
    "mark_event_processed",
]
