"""
Unit tests for the cancellation refund calculator.
"""

from datetime import datetime, timedelta, timezone

import pytest

from prereno.services.refundCalculator import (
    RefundPolicy,
    RefundQuote,
    compute_refund,
    ensure_utc,
)

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


class TestComputeRefund:

    def test_more_than_24h_ahead_is_full_refund(self):
        quote = compute_refund(NOW + timedelta(hours=24, minutes=1), 22800, NOW)
        assert quote == RefundQuote(refund_amount_cents=22800, service_fee_cents=0)
        assert quote.is_full_refund is True

    def test_inside_window_keeps_flat_fee(self):
        quote = compute_refund(NOW + timedelta(hours=23, minutes=59), 22800, NOW)
        assert quote == RefundQuote(refund_amount_cents=20300, service_fee_cents=2500)
        assert quote.is_full_refund is False

    def test_exactly_24h_is_inside_window(self):
        quote = compute_refund(NOW + timedelta(hours=24), 22800, NOW)
        assert quote.service_fee_cents == 2500

    def test_after_scheduled_time_still_charges_fee(self):
        quote = compute_refund(NOW - timedelta(hours=2), 22800, NOW)
        assert quote.refund_amount_cents == 20300

    def test_refund_floored_at_zero(self):
        quote = compute_refund(NOW + timedelta(hours=1), 1000, NOW)
        assert quote.refund_amount_cents == 0
        assert quote.service_fee_cents == 2500

    def test_unscheduled_job_is_full_refund(self):
        quote = compute_refund(None, 18750, NOW)
        assert quote == RefundQuote(refund_amount_cents=18750, service_fee_cents=0)

    def test_nothing_paid(self):
        quote = compute_refund(NOW + timedelta(days=3), 0, NOW)
        assert quote.refund_amount_cents == 0

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            compute_refund(None, -1, NOW)

    def test_naive_scheduled_at_treated_as_utc(self):
        naive = (NOW + timedelta(hours=30)).replace(tzinfo=None)
        quote = compute_refund(naive, 22800, NOW)
        assert quote.is_full_refund is True

    def test_custom_policy(self):
        policy = RefundPolicy(late_cancellation_fee_cents=5000, free_window=timedelta(hours=48))
        quote = compute_refund(NOW + timedelta(hours=30), 22800, NOW, policy)
        assert quote == RefundQuote(refund_amount_cents=17800, service_fee_cents=5000)


class TestEnsureUtc:

    def test_aware_value_unchanged(self):
        assert ensure_utc(NOW) is NOW

    def test_naive_value_gets_utc(self):
        assert ensure_utc(datetime(2026, 1, 1)).tzinfo is timezone.utc
