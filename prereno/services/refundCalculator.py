"""
Cancellation refund calculator.

Cancelling more than ``free_window`` before the scheduled time refunds the
full amount paid. Inside the window a flat late-cancellation fee is kept and
the remainder refunded, floored at zero. Pure; the caller supplies ``now``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

DEFAULT_LATE_CANCELLATION_FEE_CENTS = 2500
DEFAULT_FREE_CANCELLATION_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class RefundPolicy:
    late_cancellation_fee_cents: int = DEFAULT_LATE_CANCELLATION_FEE_CENTS
    free_window: timedelta = DEFAULT_FREE_CANCELLATION_WINDOW


@dataclass(frozen=True)
class RefundQuote:
    refund_amount_cents: int
    service_fee_cents: int

    @property
    def is_full_refund(self) -> bool:
        return self.service_fee_cents == 0


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def compute_refund(
    scheduled_at: Optional[datetime],
    paid_amount_cents: int,
    now: datetime,
    policy: RefundPolicy = RefundPolicy(),
) -> RefundQuote:
    """Quote the refund for cancelling a job at ``now``.

    A job with no scheduled time has nothing to lose by cancelling and is
    refunded in full. The reported service fee is the flat fee even when it
    exceeds the amount paid.
    """
    if paid_amount_cents < 0:
        raise ValueError("paid_amount_cents must not be negative")

    if scheduled_at is None or ensure_utc(scheduled_at) - ensure_utc(now) > policy.free_window:
        return RefundQuote(refund_amount_cents=paid_amount_cents, service_fee_cents=0)

    fee = policy.late_cancellation_fee_cents
    return RefundQuote(
        refund_amount_cents=max(0, paid_amount_cents - fee),
        service_fee_cents=fee,
    )
