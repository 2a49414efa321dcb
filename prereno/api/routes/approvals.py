"""
Landlord Approval Routes
========================

  POST /api/v1/approvals/{job_id}/landlord  -- Landlord approves, asks for
                                               changes, or declines a
                                               tenant's repair job
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, HTTPException, status

from prereno.api.deps import DBSession, LandlordUser
from prereno.api.errors import DOMAIN_ERRORS, to_http
from prereno.api.schemas.job import LandlordDecisionOut, LandlordDecisionRequest
from prereno.services import jobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/approvals", tags=["Approvals"])


@router.post(
    "/{job_id}/landlord",
    response_model=LandlordDecisionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record the landlord's decision on a tenant job",
)
async def landlord_decision(
    job_id: uuid.UUID,
    body: LandlordDecisionRequest,
    db: DBSession,
    user: LandlordUser,
) -> LandlordDecisionOut:
    try:
        event = await jobService.record_landlord_decision(
            db, job_id, user, body.action, body.message
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc

    return LandlordDecisionOut(
        job_id=job_id,
        action=body.action,
        recorded_at=datetime.fromisoformat(event["timestamp"]),
    )
