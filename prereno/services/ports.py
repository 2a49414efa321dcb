"""
Collaborator interfaces consumed by the pricing and offer-negotiation core.

The core never reaches for a database session, an HTTP client or a global
singleton directly; callers hand it objects satisfying these protocols.
SQLAlchemy-backed implementations live in ``prereno.services.stores``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

from prereno.models import Contractor, Job, JobOffer, JobStatus, OfferKind


@dataclass(frozen=True)
class CostFactors:
    """Local labour/material calibration for one (category, location)."""
    labor_rate_cents_per_hour: int
    material_multiplier: Decimal
    minimum_job_charge_cents: int


@dataclass(frozen=True)
class ConditionAnalysis:
    """Output of the external photo-analysis step. Opaque to the core."""
    tags: list[str]
    confidence: float


class CostFactorSource(Protocol):
    async def get(self, category: str, location_key: str) -> Optional[CostFactors]:
        """Return the cost factors, or None when no row is configured."""
        ...


class ConditionDetector(Protocol):
    async def analyze(self, photo_refs: Sequence[str]) -> ConditionAnalysis:
        ...


class JobStore(Protocol):
    async def get(self, job_id: uuid.UUID) -> Optional[Job]:
        ...

    async def compare_and_set_status(
        self,
        job_id: uuid.UUID,
        expected: JobStatus,
        new: JobStatus,
        **values: Any,
    ) -> bool:
        """Atomically move ``job_id`` from ``expected`` to ``new``.

        Returns False (and writes nothing) when the stored status is no
        longer ``expected`` at write time.
        """
        ...


class OfferStore(Protocol):
    async def create(self, job_id: uuid.UUID, contractor_id: uuid.UUID, expires_at: datetime) -> JobOffer:
        ...

    async def get(self, job_id: uuid.UUID, contractor_id: uuid.UUID) -> Optional[JobOffer]:
        ...

    async def set_kind(self, offer: JobOffer, kind: OfferKind, **values: Any) -> JobOffer:
        ...

    async def expire_others(self, job_id: uuid.UUID, keep_contractor_id: Optional[uuid.UUID]) -> int:
        """Force every other offer on the job to ``expired``; returns the count."""
        ...


class Notifier(Protocol):
    async def notify_provider(self, offer: JobOffer, job: Job) -> None:
        ...


class EligibilityPredicate(Protocol):
    def __call__(self, job: Job, contractor: Contractor) -> bool:
        ...
