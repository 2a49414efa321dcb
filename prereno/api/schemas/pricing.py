"""
Pydantic v2 schemas for the Pricing API
=======================================

Request/response contract for price previews and the public cost guide.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from prereno.models import JobCategory


class PriceQuoteRequest(BaseModel):
    """Price preview for a category, postal code and detected conditions."""

    category: JobCategory
    zip: str = Field(min_length=2, max_length=20)
    tags: list[str] = Field(default_factory=list, max_length=50)
    rush: bool = False
    after_hours: bool = False


class ModifierOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    multiplier: Decimal


class PriceBreakdownOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    location_key: str
    tags: list[str]
    complexity_score: Decimal
    labor_hours: Decimal
    labor_cost_cents: int
    material_cost_cents: int
    base_cost_cents: int
    modifier_multiplier: Decimal
    adjusted_cost_cents: int
    provider_net_cents: int
    client_price_cents: int
    platform_fee_cents: int
    margin_fraction: Decimal
    modifiers: list[ModifierOut] = Field(default_factory=list)


class CostGuideOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    location_key: str
    category: str
    labor_rate_per_hour_cents: int
    typical_min_cents: int
    typical_max_cents: int
