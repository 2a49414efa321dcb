"""
SQLAlchemy models for jobs and job_offers.

A job is priced once at submission time; the client-facing total, the
contractor net and the platform margin are stored side by side so later
negotiation can recompute the client price from the same margin.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class JobCategory(str, enum.Enum):
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    PAINT = "paint"
    HANDYMAN = "handyman"
    ROOF = "roof"
    HVAC = "hvac"
    FLOORING = "flooring"


class JobStatus(str, enum.Enum):
    DRAFT = "draft"
    AWAITING_ACCEPT = "awaiting_accept"
    ACCEPTED = "accepted"
    SCHEDULED = "scheduled"                # payment captured
    IN_PROGRESS = "in_progress"
    READY_FOR_REVIEW = "ready_for_review"  # contractor marked complete
    DISPUTED = "disputed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OfferKind(str, enum.Enum):
    BROADCAST = "broadcast"
    ACCEPT = "accept"
    COUNTER = "counter"
    DECLINE = "decline"
    EXPIRED = "expired"


class Job(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "jobs"

    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Request
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[JobCategory] = mapped_column(
        Enum(JobCategory, name="job_category"),
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status"),
        nullable=False,
        default=JobStatus.DRAFT,
    )

    # Location
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    zip: Mapped[str] = mapped_column(String(20), nullable=False)

    # Photo analysis
    photos_json: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    condition_tags_json: Mapped[list[Any]] = mapped_column(
        JSON, nullable=False, default=list
    )
    detection_confidence: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 4), nullable=True
    )
    scope_md: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing (cents)
    client_price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contractor_net_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_fee_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    margin_pct: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)

    # Modifiers
    rush_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    after_hours_flag: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    renter_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    landlord_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Schedule / lifecycle
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def condition_tags(self) -> list[str]:
        return list(self.condition_tags_json or [])

    def __repr__(self) -> str:
        return (
            f"<Job(id={self.id}, category={self.category}, status={self.status}, "
            f"client_price={self.client_price_cents})>"
        )


class JobOffer(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One contractor's negotiation position on one job. Never deleted."""

    __tablename__ = "job_offers"
    __table_args__ = (
        UniqueConstraint("job_id", "contractor_id", name="uq_job_offers_job_contractor"),
    )

    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("contractors.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[OfferKind] = mapped_column(
        Enum(OfferKind, name="offer_kind"),
        nullable=False,
        default=OfferKind.BROADCAST,
    )
    counter_net_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<JobOffer(id={self.id}, job={self.job_id}, "
            f"contractor={self.contractor_id}, kind={self.kind})>"
        )
