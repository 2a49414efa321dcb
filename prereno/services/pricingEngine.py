"""
Job Pricing Engine.

Prices a repair job from the detected condition tags and the local cost
factors for its category and postal code:

- Complexity: 0.5 per distinct condition tag, +1 when ``water_damage`` is present
- Labour hours: 1 + complexity, clamped to [1, 8]
- Materials: 40% of labour, scaled by the local material multiplier
- Small-job minimum applied to labour + materials
- Modifiers: rush 1.5x, after-hours 1.25x (multiplicative, single rounding)
- Platform margin is added on top of the contractor net:
  client_price = round(net / (1 - margin))

Everything here is pure except ``price_job``, which performs the cost-factor
lookup through an injected ``CostFactorSource``. All amounts are integer
cents; intermediate arithmetic uses ``Decimal`` with half-up rounding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from prereno.models import JobCategory
from prereno.services.ports import CostFactorSource, CostFactors

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MARGIN_FRACTION = Decimal("0.20")

TAG_COMPLEXITY_WEIGHT = Decimal("0.5")
WATER_DAMAGE_TAG = "water_damage"
WATER_DAMAGE_COMPLEXITY = Decimal("1")

MIN_LABOR_HOURS = Decimal("1")
MAX_LABOR_HOURS = Decimal("8")

# Materials are estimated as a fraction of labour cost
MATERIAL_LABOR_RATIO = Decimal("0.4")

RUSH_MULTIPLIER = Decimal("1.5")
AFTER_HOURS_MULTIPLIER = Decimal("1.25")

# Public cost guide shows minimum .. minimum x 5
COST_GUIDE_RANGE_FACTOR = 5


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class NotConfiguredError(Exception):
    """Raised when no cost factors exist for a category and location."""

    def __init__(self, category: str, location_key: str) -> None:
        self.category = category
        self.location_key = location_key
        super().__init__(
            f"No cost factors configured for category '{category}' "
            f"at location '{location_key}'."
        )


# ---------------------------------------------------------------------------
# Response DTOs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModifierDetail:
    """A price modifier that was applied."""
    name: str
    multiplier: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    """Full price computation for a job."""
    category: str
    location_key: str
    tags: tuple[str, ...]

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

    modifiers: list[ModifierDetail] = field(default_factory=list)


@dataclass(frozen=True)
class CostGuide:
    """Public, pre-submission cost guidance for an area and trade."""
    location_key: str
    category: str
    labor_rate_per_hour_cents: int
    typical_min_cents: int
    typical_max_cents: int


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------

def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _check_margin(margin_fraction: Decimal) -> Decimal:
    margin = Decimal(str(margin_fraction))
    if margin < 0 or margin >= 1:
        raise ValueError(f"Margin fraction must be in [0, 1), got {margin}")
    return margin


def client_price_for(provider_net_cents: int, margin_fraction: Decimal) -> int:
    """Client-facing total that leaves ``provider_net_cents`` after the margin."""
    margin = _check_margin(margin_fraction)
    return _round_cents(Decimal(provider_net_cents) / (Decimal("1") - margin))


def complexity_score(tags: Iterable[str]) -> Decimal:
    unique_tags = set(tags)
    score = TAG_COMPLEXITY_WEIGHT * len(unique_tags)
    if WATER_DAMAGE_TAG in unique_tags:
        score += WATER_DAMAGE_COMPLEXITY
    return score


def compute_price(
    category: str,
    location_key: str,
    tags: Iterable[str],
    rush: bool,
    after_hours: bool,
    cost_factors: CostFactors,
    margin_fraction: Decimal = DEFAULT_MARGIN_FRACTION,
) -> PriceBreakdown:
    """Price a job from its condition tags and the local cost factors.

    Deterministic for identical inputs. Modifiers are multiplied together
    exactly and the adjusted cost is rounded once, so rush + after-hours
    equals ``round(base * 1.5 * 1.25)``.

    Args:
        category: Trade category (one of ``JobCategory``).
        location_key: Postal code the cost factors belong to.
        tags: Condition tags from photo analysis; duplicates count once.
        rush: Rush booking (+50%).
        after_hours: After-hours work (+25%).
        cost_factors: Labour rate, material multiplier and minimum charge.
        margin_fraction: Platform margin in [0, 1).

    Returns:
        PriceBreakdown with every intermediate figure.

    Raises:
        ValueError: Unknown category or margin outside [0, 1).
    """
    category_value = JobCategory(category).value
    margin = _check_margin(margin_fraction)
    unique_tags = tuple(dict.fromkeys(tags))

    score = complexity_score(unique_tags)
    labor_hours = min(max(Decimal("1") + score, MIN_LABOR_HOURS), MAX_LABOR_HOURS)

    labor_rate = Decimal(cost_factors.labor_rate_cents_per_hour)
    material_multiplier = Decimal(str(cost_factors.material_multiplier))

    labor_cost = _round_cents(labor_hours * labor_rate)
    material_cost = _round_cents(
        Decimal(labor_cost) * MATERIAL_LABOR_RATIO * material_multiplier
    )
    base_cost = max(labor_cost + material_cost, cost_factors.minimum_job_charge_cents)

    modifiers: list[ModifierDetail] = []
    multiplier = Decimal("1")
    if rush:
        multiplier *= RUSH_MULTIPLIER
        modifiers.append(ModifierDetail(name="rush", multiplier=RUSH_MULTIPLIER))
    if after_hours:
        multiplier *= AFTER_HOURS_MULTIPLIER
        modifiers.append(ModifierDetail(name="after_hours", multiplier=AFTER_HOURS_MULTIPLIER))

    adjusted_cost = _round_cents(Decimal(base_cost) * multiplier)
    provider_net = adjusted_cost
    client_price = client_price_for(provider_net, margin)

    return PriceBreakdown(
        category=category_value,
        location_key=location_key,
        tags=unique_tags,
        complexity_score=score,
        labor_hours=labor_hours,
        labor_cost_cents=labor_cost,
        material_cost_cents=material_cost,
        base_cost_cents=base_cost,
        modifier_multiplier=multiplier,
        adjusted_cost_cents=adjusted_cost,
        provider_net_cents=provider_net,
        client_price_cents=client_price,
        platform_fee_cents=client_price - provider_net,
        margin_fraction=margin,
        modifiers=modifiers,
    )


def cost_guide(
    category: str,
    location_key: str,
    cost_factors: CostFactors,
) -> CostGuide:
    """Summarise cost factors as the public "typical range" guide."""
    minimum = cost_factors.minimum_job_charge_cents
    return CostGuide(
        location_key=location_key,
        category=JobCategory(category).value,
        labor_rate_per_hour_cents=cost_factors.labor_rate_cents_per_hour,
        typical_min_cents=minimum,
        typical_max_cents=minimum * COST_GUIDE_RANGE_FACTOR,
    )


# ---------------------------------------------------------------------------
# Lookup + compute
# ---------------------------------------------------------------------------

async def get_cost_factors(
    source: CostFactorSource,
    category: str,
    location_key: str,
) -> CostFactors:
    """Fetch cost factors or raise ``NotConfiguredError``. Never defaults."""
    factors = await source.get(category, location_key)
    if factors is None:
        logger.warning(
            "Cost factors missing: category=%s, location=%s",
            category,
            location_key,
        )
        raise NotConfiguredError(category, location_key)
    return factors


async def price_job(
    source: CostFactorSource,
    category: str,
    location_key: str,
    tags: Iterable[str],
    rush: bool = False,
    after_hours: bool = False,
    margin_fraction: Optional[Decimal] = None,
) -> PriceBreakdown:
    """Look up the cost factors for the job's area and price it."""
    factors = await get_cost_factors(source, category, location_key)
    breakdown = compute_price(
        category,
        location_key,
        tags,
        rush,
        after_hours,
        factors,
        margin_fraction if margin_fraction is not None else DEFAULT_MARGIN_FRACTION,
    )

    logger.info(
        "Priced %s job at %s: net=%d, client=%d (hours=%s, modifiers=%s)",
        breakdown.category,
        location_key,
        breakdown.provider_net_cents,
        breakdown.client_price_cents,
        breakdown.labor_hours,
        [m.name for m in breakdown.modifiers] or "none",
    )
    return breakdown
