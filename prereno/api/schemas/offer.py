"""
Pydantic v2 schemas for contractor offers (magic-link actions).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from prereno.models import JobStatus, OfferKind


class OfferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    contractor_id: uuid.UUID
    kind: OfferKind
    counter_net_cents: Optional[int] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime


class OfferCounterRequest(BaseModel):
    counter_net_cents: int = Field(gt=0, description="Requested contractor net, in cents")


class OfferAcceptResponse(BaseModel):
    job_id: uuid.UUID
    status: JobStatus
    scheduled_at: Optional[datetime] = None
    offer: OfferOut
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None


class OfferCounterResponse(BaseModel):
    job_id: uuid.UUID
    offer: OfferOut
    auto_approved: bool
    requires_manual_approval: bool
    contractor_net_cents: int
    client_price_cents: int
    status: JobStatus
