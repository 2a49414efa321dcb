"""
Job Event Emission
==================

Business events for the job lifecycle. Each emitter writes an immutable
``AuditLog`` row inside the caller's transaction, logs the event, and
returns the event payload dict so callers (and tests) can inspect it.

Events emitted:
  - job_created
  - job_booked
  - offer_accepted
  - offer_countered
  - offer_declined
  - job_completed
  - job_approved
  - job_disputed
  - job_cancelled
  - landlord_approve | landlord_request_changes | landlord_decline
  - contractor_verified
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from prereno.models import AuditLog

logger = logging.getLogger(__name__)


def _build_event(
    action: str,
    entity: str,
    entity_id: uuid.UUID,
    *,
    data: dict[str, Any] | None = None,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "action": action,
        "entity": entity,
        "entity_id": str(entity_id),
        "actor_id": str(actor_id) if actor_id else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


async def record_event(
    db: AsyncSession,
    action: str,
    entity: str,
    entity_id: uuid.UUID,
    *,
    actor_id: Optional[uuid.UUID] = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Persist an audit row and return the event payload."""
    event = _build_event(action, entity, entity_id, data=data, actor_id=actor_id)
    db.add(
        AuditLog(
            actor_profile_id=actor_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            meta_json=event["data"],
        )
    )
    await db.flush()
    logger.info("Event recorded: %s for %s %s", action, entity, entity_id)
    return event


async def emit_job_created(
    db: AsyncSession,
    job_id: uuid.UUID,
    client_id: uuid.UUID,
    confidence: float,
    client_price_cents: int,
) -> dict[str, Any]:
    return await record_event(
        db,
        "job_created",
        "job",
        job_id,
        actor_id=client_id,
        data={"ai_confidence": confidence, "client_price_cents": client_price_cents},
    )


async def emit_job_booked(
    db: AsyncSession,
    job_id: uuid.UUID,
    client_id: uuid.UUID,
    contractors_notified: int,
) -> dict[str, Any]:
    return await record_event(
        db,
        "job_booked",
        "job",
        job_id,
        actor_id=client_id,
        data={"contractors_notified": contractors_notified},
    )


async def emit_offer_accepted(
    db: AsyncSession,
    job_id: uuid.UUID,
    contractor_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    counter_net_cents: Optional[int] = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {"contractor_id": str(contractor_id)}
    if counter_net_cents is not None:
        data["counter_net_cents"] = counter_net_cents
    return await record_event(
        db, "offer_accepted", "job", job_id, actor_id=actor_id, data=data
    )


async def emit_offer_countered(
    db: AsyncSession,
    job_id: uuid.UUID,
    contractor_id: uuid.UUID,
    counter_net_cents: int,
    actor_id: Optional[uuid.UUID] = None,
) -> dict[str, Any]:
    return await record_event(
        db,
        "offer_countered",
        "job",
        job_id,
        actor_id=actor_id,
        data={
            "contractor_id": str(contractor_id),
            "counter_net_cents": counter_net_cents,
            "requires_manual_approval": True,
        },
    )


async def emit_offer_declined(
    db: AsyncSession,
    job_id: uuid.UUID,
    contractor_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
) -> dict[str, Any]:
    return await record_event(
        db,
        "offer_declined",
        "job",
        job_id,
        actor_id=actor_id,
        data={"contractor_id": str(contractor_id)},
    )


async def emit_job_status_changed(
    db: AsyncSession,
    action: str,
    job_id: uuid.UUID,
    old_status: str,
    new_status: str,
    actor_id: Optional[uuid.UUID] = None,
) -> dict[str, Any]:
    """Status changes without extra data: completed, approved, started."""
    return await record_event(
        db,
        action,
        "job",
        job_id,
        actor_id=actor_id,
        data={"old_status": old_status, "new_status": new_status},
    )


async def emit_job_disputed(
    db: AsyncSession,
    job_id: uuid.UUID,
    disputed_by: uuid.UUID,
    old_status: str,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    return await record_event(
        db,
        "job_disputed",
        "job",
        job_id,
        actor_id=disputed_by,
        data={"old_status": old_status, "new_status": "disputed", "reason": reason},
    )


async def emit_job_cancelled(
    db: AsyncSession,
    job_id: uuid.UUID,
    cancelled_by: uuid.UUID,
    refund_amount_cents: int,
    service_fee_cents: int,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    return await record_event(
        db,
        "job_cancelled",
        "job",
        job_id,
        actor_id=cancelled_by,
        data={
            "reason": reason,
            "refund_amount_cents": refund_amount_cents,
            "service_fee_cents": service_fee_cents,
        },
    )


async def emit_landlord_decision(
    db: AsyncSession,
    job_id: uuid.UUID,
    landlord_id: uuid.UUID,
    decision: str,
    message: Optional[str] = None,
) -> dict[str, Any]:
    """``decision`` is one of approve / request_changes / decline."""
    return await record_event(
        db,
        f"landlord_{decision}",
        "job",
        job_id,
        actor_id=landlord_id,
        data={"message": message},
    )


async def emit_contractor_verified(
    db: AsyncSession,
    contractor_id: uuid.UUID,
    admin_id: uuid.UUID,
    verified: bool,
) -> dict[str, Any]:
    return await record_event(
        db,
        "contractor_verified",
        "contractor",
        contractor_id,
        actor_id=admin_id,
        data={"verified": verified},
    )
