"""
Pydantic v2 schemas for the Payments API.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from prereno.models import PaymentStatus


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    contractor_id: uuid.UUID
    stripe_payment_intent_id: str
    amount_cents: int
    fee_cents: int
    refunded_cents: int
    status: PaymentStatus
    released_at: Optional[datetime] = None


class PaymentIntentResponse(BaseModel):
    payment: PaymentOut
    client_secret: str


class PaymentConfirmRequest(BaseModel):
    payment_method_id: Optional[str] = Field(
        default=None, description="Stripe PaymentMethod id (e.g. pm_card_visa)"
    )


class WebhookResponse(BaseModel):
    received: bool
    event_type: str
    processed: bool
