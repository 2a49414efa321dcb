"""
Webhook Routes
==============

  POST /api/v1/webhooks/stripe  -- Stripe event delivery (signature verified)

A handler failure answers 500 so Stripe redelivers the event. Events are
marked processed only after the session commits.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from prereno.api.deps import DBSession
from prereno.api.schemas.payment import WebhookResponse
from prereno.integrations.stripe import (
    WebhookProcessingError,
    handle_webhook,
    mark_event_processed,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/stripe", response_model=WebhookResponse, summary="Stripe webhook endpoint")
async def stripe_webhook(request: Request, db: DBSession) -> WebhookResponse:
    # Raw body is required for signature verification
    payload = await request.body()
    sig_header = request.headers.get("Stripe-Signature", "")

    if not sig_header:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        result = await handle_webhook(db, payload, sig_header)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except WebhookProcessingError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    if not result.duplicate:
        await db.commit()
        mark_event_processed(result.event_id)

    return WebhookResponse(
        received=True,
        event_type=result.event_type,
        processed=result.processed,
    )
