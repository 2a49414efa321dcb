"""
SQLAlchemy implementations of the collaborator protocols in
``prereno.services.ports``.

Each store wraps the request's ``AsyncSession`` and only flushes; the
``get_db`` dependency owns commit/rollback.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from prereno.models import (
    Contractor,
    CostFactor,
    Job,
    JobCategory,
    JobOffer,
    JobStatus,
    OfferKind,
    utcnow,
)
from prereno.services.ports import CostFactors

logger = logging.getLogger(__name__)


class SqlJobStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get(self, job_id: uuid.UUID) -> Optional[Job]:
        result = await self._db.execute(
            select(Job)
            .where(Job.id == job_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self,
        job_id: uuid.UUID,
        expected: JobStatus,
        new: JobStatus,
        **values: Any,
    ) -> bool:
        """``UPDATE jobs SET status=:new ... WHERE id=:id AND status=:expected``.

        The status column is the version discriminator: exactly one
        concurrent writer sees ``rowcount == 1``.
        """
        values.setdefault("updated_at", utcnow())
        result = await self._db.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == expected)
            .values(status=new, **values)
            .execution_options(synchronize_session=False)
        )
        won = result.rowcount == 1
        if not won:
            logger.debug(
                "CAS %s -> %s matched no rows for job %s", expected.value, new.value, job_id
            )
        return won


class SqlOfferStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def create(
        self,
        job_id: uuid.UUID,
        contractor_id: uuid.UUID,
        expires_at: datetime,
    ) -> JobOffer:
        offer = JobOffer(
            job_id=job_id,
            contractor_id=contractor_id,
            kind=OfferKind.BROADCAST,
            expires_at=expires_at,
        )
        self._db.add(offer)
        await self._db.flush()
        return offer

    async def get(self, job_id: uuid.UUID, contractor_id: uuid.UUID) -> Optional[JobOffer]:
        result = await self._db.execute(
            select(JobOffer)
            .where(JobOffer.job_id == job_id, JobOffer.contractor_id == contractor_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_kind(self, offer: JobOffer, kind: OfferKind, **values: Any) -> JobOffer:
        offer.kind = kind
        for key, value in values.items():
            setattr(offer, key, value)
        offer.updated_at = utcnow()
        await self._db.flush()
        return offer

    async def expire_others(
        self,
        job_id: uuid.UUID,
        keep_contractor_id: Optional[uuid.UUID],
    ) -> int:
        stmt = update(JobOffer).where(
            JobOffer.job_id == job_id,
            JobOffer.kind != OfferKind.EXPIRED,
        )
        if keep_contractor_id is not None:
            stmt = stmt.where(JobOffer.contractor_id != keep_contractor_id)
        result = await self._db.execute(
            stmt.values(kind=OfferKind.EXPIRED, updated_at=utcnow()).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount or 0

    async def list_for_job(self, job_id: uuid.UUID) -> list[JobOffer]:
        result = await self._db.execute(
            select(JobOffer)
            .where(JobOffer.job_id == job_id)
            .order_by(JobOffer.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_accepted(self, job_id: uuid.UUID) -> Optional[JobOffer]:
        result = await self._db.execute(
            select(JobOffer).where(
                JobOffer.job_id == job_id, JobOffer.kind == OfferKind.ACCEPT
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


class SqlCostFactorSource:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get(self, category: str, location_key: str) -> Optional[CostFactors]:
        result = await self._db.execute(
            select(CostFactor).where(
                CostFactor.location_key == location_key,
                CostFactor.category == JobCategory(category),
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return CostFactors(
            labor_rate_cents_per_hour=row.labor_rate_cents_per_hour,
            material_multiplier=row.material_multiplier,
            minimum_job_charge_cents=row.small_job_min_cents,
        )


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------

def location_prefix(zip_code: str) -> str:
    return zip_code.strip()[:2].lower()


def is_eligible_by_location(job: Job, contractor: Contractor) -> bool:
    """Verified contractors whose licence state starts with the postal prefix."""
    if not contractor.verified or not contractor.license_state:
        return False
    return contractor.license_state.lower().startswith(location_prefix(job.zip))


async def find_eligible_contractors(db: AsyncSession, job: Job) -> list[Contractor]:
    result = await db.execute(
        select(Contractor)
        .where(
            Contractor.verified.is_(True),
            Contractor.license_state.ilike(f"{location_prefix(job.zip)}%"),
        )
        .order_by(Contractor.created_at)
    )
    return list(result.scalars().all())
