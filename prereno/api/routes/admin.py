"""
Admin Routes
============

  GET  /api/v1/admin/contractors/pending        -- Contractors awaiting review
  POST /api/v1/admin/contractors/{id}/verify    -- Set the verified flag
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, status

from prereno.api.deps import AdminUser, DBSession
from prereno.api.schemas.admin import (
    ContractorOut,
    ContractorVerifyRequest,
    PendingContractorOut,
)
from prereno.services import jobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get(
    "/contractors/pending",
    response_model=list[PendingContractorOut],
    summary="Unverified contractors",
)
async def list_pending_contractors(db: DBSession, user: AdminUser) -> list[PendingContractorOut]:
    rows = await jobService.list_pending_contractors(db)
    return [
        PendingContractorOut(
            id=contractor.id,
            profile_id=contractor.profile_id,
            company=contractor.company,
            license_state=contractor.license_state,
            email=profile.email,
            full_name=profile.full_name,
            created_at=contractor.created_at,
        )
        for contractor, profile in rows
    ]


@router.post(
    "/contractors/{contractor_id}/verify",
    response_model=ContractorOut,
    summary="Verify (or un-verify) a contractor",
)
async def verify_contractor(
    contractor_id: uuid.UUID,
    db: DBSession,
    user: AdminUser,
    body: Optional[ContractorVerifyRequest] = None,
) -> ContractorOut:
    body = body or ContractorVerifyRequest()
    try:
        contractor = await jobService.set_contractor_verified(
            db, contractor_id, user, body.verified
        )
    except LookupError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    logger.info(
        "Contractor %s verified=%s by admin %s", contractor.id, contractor.verified, user.id
    )
    return ContractorOut.model_validate(contractor)
