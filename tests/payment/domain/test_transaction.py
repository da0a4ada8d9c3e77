"""Tests for the Transaction aggregate."""

from datetime import timedelta

import pytest
from marketplace.payment.events import (
    TransactionCompleted,
    TransactionFailed,
    TransactionInitiated,
    TransactionRefundRequested,
)
from marketplace.payment.transaction import FailureReason, RefundReason, Transaction, TransactionStatus
from marketplace.shared.ledger import utc_now
from protean.exceptions import InvalidOperationError


def _transaction():
    return Transaction.initiate(
        customer_id="cust-001",
        order_ids=["ord-1", "ord-2"],
        amount=150.005,
        gateway="fake",
    )


class TestInitiate:
    def test_starts_initiated(self):
        transaction = _transaction()
        assert transaction.status == TransactionStatus.INITIATED.value
        assert transaction.linked_order_ids == ["ord-1", "ord-2"]
        assert transaction.amount == 150.01
        assert not transaction.is_final

    def test_description_carries_transaction_id(self):
        transaction = _transaction()
        assert transaction.description == f"TID:{transaction.id}"

    def test_raises_initiated_event(self):
        transaction = _transaction()
        assert isinstance(transaction._events[-1], TransactionInitiated)


class TestOutcomes:
    def test_complete(self):
        transaction = _transaction()
        transaction.complete("gw-123", "00")
        assert transaction.status == TransactionStatus.COMPLETED.value
        assert transaction.gateway_reference == "gw-123"
        assert transaction.completed_at is not None
        assert transaction.is_final
        assert isinstance(transaction._events[-1], TransactionCompleted)

    def test_fail(self):
        transaction = _transaction()
        transaction.fail(FailureReason.DECLINED, "24")
        assert transaction.status == TransactionStatus.FAILED.value
        assert transaction.failure_reason == "declined"
        assert isinstance(transaction._events[-1], TransactionFailed)

    @pytest.mark.parametrize("finish", ["complete", "fail"])
    def test_final_transactions_cannot_change(self, finish):
        transaction = _transaction()
        transaction.complete()
        with pytest.raises(InvalidOperationError):
            if finish == "complete":
                transaction.complete()
            else:
                transaction.fail(FailureReason.EXPIRED)
        assert transaction.status == TransactionStatus.COMPLETED.value


class TestStaleness:
    def test_older_than_cutoff_is_stale(self):
        transaction = _transaction()
        assert transaction.is_stale(utc_now() + timedelta(minutes=1))

    def test_recent_is_not_stale(self):
        transaction = _transaction()
        assert not transaction.is_stale(utc_now() - timedelta(minutes=15))

    def test_final_is_never_stale(self):
        transaction = _transaction()
        transaction.fail(FailureReason.DECLINED)
        assert not transaction.is_stale(utc_now() + timedelta(days=1))


class TestRefundFlag:
    def test_flag_refund_records_amount_and_reason(self):
        transaction = _transaction()
        transaction.complete("GW-1", "00")

        transaction.flag_refund(75.004, ["ord-2"], RefundReason.ORDERS_UNAVAILABLE)

        assert transaction.refund_requested
        assert transaction.refund_amount == 75.0
        assert transaction.refund_reason == "orders_unavailable"
        event = transaction._events[-1]
        assert isinstance(event, TransactionRefundRequested)
        assert event.order_ids == '["ord-2"]'

    def test_refund_is_flagged_once(self):
        transaction = _transaction()
        transaction.fail(FailureReason.EXPIRED)
        transaction.flag_refund(150.01, transaction.linked_order_ids, RefundReason.PAID_AFTER_EXPIRY)

        with pytest.raises(InvalidOperationError):
            transaction.flag_refund(150.01, transaction.linked_order_ids, RefundReason.PAID_AFTER_EXPIRY)
