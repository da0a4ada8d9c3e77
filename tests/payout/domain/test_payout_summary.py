"""Payout aggregate and balance arithmetic."""

from types import SimpleNamespace

import pytest
from marketplace.payout.events import PayoutCompleted, PayoutRejected
from marketplace.payout.payout import Payout, PayoutStatus
from marketplace.payout.summary import earnings_from, summarize
from protean.exceptions import InvalidOperationError, ValidationError


def _order(*lines):
    items = [
        SimpleNamespace(provider_earning=round(line_total - commission, 2)) for line_total, commission in lines
    ]
    return SimpleNamespace(items=items)


def _payout(amount, status=PayoutStatus.PENDING):
    payout = Payout.request("prov-001", "bank-001", amount)
    payout.status = status.value
    return payout


class TestPayoutAggregate:
    def test_request_starts_pending(self):
        payout = Payout.request("prov-001", "bank-001", 50.004)
        assert payout.status == PayoutStatus.PENDING.value
        assert payout.amount == 50.0
        assert payout.requested_at is not None

    def test_complete(self):
        payout = Payout.request("prov-001", "bank-001", 50)
        payout.complete("bank-ref-1")
        assert payout.status == PayoutStatus.COMPLETED.value
        assert payout.external_reference == "bank-ref-1"
        assert payout.processed_at is not None
        assert isinstance(payout._events[-1], PayoutCompleted)

    def test_reject_needs_reason(self):
        payout = Payout.request("prov-001", "bank-001", 50)
        with pytest.raises(ValidationError):
            payout.reject("  ")
        payout.reject("Account closed")
        assert payout.status == PayoutStatus.REJECTED.value
        assert payout.rejection_reason == "Account closed"
        assert isinstance(payout._events[-1], PayoutRejected)

    def test_processed_payout_is_final(self):
        payout = Payout.request("prov-001", "bank-001", 50)
        payout.complete()
        with pytest.raises(InvalidOperationError):
            payout.reject("Too late")


class TestSummary:
    def test_earnings_are_line_totals_less_commission(self):
        orders = [_order((100.0, 20.0), (50.0, 5.0)), _order((30.0, 3.0))]
        assert earnings_from(orders) == 152.0

    def test_balance_deducts_pending_and_completed(self):
        orders = [_order((100.0, 20.0))]
        payouts = [
            _payout(10),
            _payout(20, PayoutStatus.COMPLETED),
            _payout(40, PayoutStatus.REJECTED),
        ]

        summary = summarize("prov-001", orders, payouts)

        assert summary.total_earnings == 80.0
        assert summary.pending_payouts == 10.0
        assert summary.completed_payouts == 20.0
        assert summary.available_balance == 50.0
        assert summary.settled_order_count == 1

    def test_no_history(self):
        summary = summarize("prov-001", [], [])
        assert summary.available_balance == 0.0
