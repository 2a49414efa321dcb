"""
Pricing API Routes
==================

Routes:
  POST /api/v1/pricing/quote              -- Price preview (authenticated)
  GET  /api/v1/cost/{zip}/{category}      -- Public cost guide for an area
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from prereno.api.deps import CurrentUser, DBSession
from prereno.api.errors import DOMAIN_ERRORS, to_http
from prereno.api.schemas.pricing import CostGuideOut, PriceBreakdownOut, PriceQuoteRequest
from prereno.core.config import settings
from prereno.models import JobCategory
from prereno.services import pricingEngine
from prereno.services.stores import SqlCostFactorSource

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pricing"])


@router.post(
    "/pricing/quote",
    response_model=PriceBreakdownOut,
    summary="Preview the price of a job",
    description=(
        "Runs the pricing engine on a category, postal code and list of "
        "condition tags without creating a job."
    ),
)
async def quote_price(
    body: PriceQuoteRequest,
    db: DBSession,
    user: CurrentUser,
) -> PriceBreakdownOut:
    try:
        breakdown = await pricingEngine.price_job(
            SqlCostFactorSource(db),
            body.category.value,
            body.zip,
            body.tags,
            rush=body.rush,
            after_hours=body.after_hours,
            margin_fraction=settings.default_margin_fraction,
        )
    except DOMAIN_ERRORS as exc:
        raise to_http(exc) from exc
    return PriceBreakdownOut.model_validate(breakdown)


@router.get(
    "/cost/{zip}/{category}",
    response_model=CostGuideOut,
    summary="Public cost guide",
)
async def get_cost_guide(zip: str, category: str, db: DBSession) -> CostGuideOut:
    try:
        category_enum = JobCategory(category)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown category '{category}'.",
        ) from exc

    try:
        factors = await pricingEngine.get_cost_factors(
            SqlCostFactorSource(db), category_enum.value, zip
        )
    except pricingEngine.NotConfiguredError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    return CostGuideOut.model_validate(
        pricingEngine.cost_guide(category_enum.value, zip, factors)
    )
