"""
Pydantic v2 schemas for the Job API
===================================

Public contract for job submission, booking, work progress, approval and
cancellation. Money is always integer cents.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from prereno.models import JobCategory, JobStatus


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class JobCreateRequest(BaseModel):
    """Request body for submitting a new repair job."""

    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    category: JobCategory
    city: str = Field(min_length=1, max_length=100)
    zip: str = Field(min_length=2, max_length=20, description="Postal code")
    photos: list[str] = Field(
        default_factory=list,
        max_length=20,
        description="Object-storage references of the uploaded photos",
    )
    rush: bool = False
    after_hours: bool = False
    renter: bool = Field(default=False, description="Client is a tenant")
    landlord_id: Optional[uuid.UUID] = Field(
        default=None, description="Landlord profile to ask for approval (renters only)"
    )


class JobApproveRequest(BaseModel):
    """Client sign-off, with an optional review of the contractor."""

    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=2000)


class JobCancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class JobDisputeRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class JobOut(BaseModel):
    """Full job representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: uuid.UUID
    title: str
    description: Optional[str] = None
    category: JobCategory
    status: JobStatus
    city: str
    zip: str
    condition_tags: list[str] = Field(default_factory=list)
    detection_confidence: Optional[Decimal] = None
    scope_md: Optional[str] = None
    client_price_cents: int
    contractor_net_cents: int
    platform_fee_cents: int
    margin_pct: Decimal
    rush_flag: bool
    after_hours_flag: bool
    renter_flag: bool
    landlord_id: Optional[uuid.UUID] = None
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class JobCreateResponse(BaseModel):
    """Created draft plus the estimate shown before booking."""

    job: JobOut
    estimate_min_cents: int
    estimate_max_cents: int
    confidence: float
    tags: list[str]


class JobBookResponse(BaseModel):
    job: JobOut
    offers_sent: int
    contractors_notified: int
    notification_failures: int


class CancellationQuoteOut(BaseModel):
    job_id: uuid.UUID
    refund_amount_cents: int
    service_fee_cents: int
    is_full_refund: bool


class JobCancelResponse(BaseModel):
    job: JobOut
    refund_amount_cents: int
    service_fee_cents: int
    stripe_refund_id: Optional[str] = None


class LandlordDecisionRequest(BaseModel):
    action: str = Field(pattern=r"^(approve|request_changes|decline)$")
    message: Optional[str] = Field(default=None, max_length=2000)


class LandlordDecisionOut(BaseModel):
    job_id: uuid.UUID
    action: str
    recorded_at: datetime
