"""Transaction aggregate: one payment attempt covering one or more orders.

initiated -> completed | failed. Both outcomes are final; a completed
transaction is never rolled back or edited, cancellations of paid orders are
handled on the order side. Captured money that no order absorbed (orders
already paid elsewhere, or a success arriving after the transaction expired)
is flagged for refund on the transaction instead.
"""

import json
from enum import Enum

from protean.exceptions import InvalidOperationError
from protean.fields import DateTime, Float, Identifier, String, Text

from marketplace.domain import marketplace
from marketplace.payment.events import (
    TransactionCompleted,
    TransactionFailed,
    TransactionInitiated,
    TransactionRefundRequested,
)
from marketplace.shared.ledger import DEFAULT_CURRENCY, as_naive_utc, round_money, utc_now


class TransactionStatus(Enum):
    INITIATED = "initiated"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureReason(Enum):
    DECLINED = "declined"
    EXPIRED = "expired"
    AMOUNT_MISMATCH = "amount_mismatch"


class RefundReason(Enum):
    ORDERS_UNAVAILABLE = "orders_unavailable"
    PAID_AFTER_EXPIRY = "paid_after_expiry"


@marketplace.aggregate
class Transaction:
    customer_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON list
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default=DEFAULT_CURRENCY)
    status = String(choices=TransactionStatus, default=TransactionStatus.INITIATED.value)
    description = String(max_length=255)
    note = Text()
    gateway = String(max_length=50)
    gateway_reference = String(max_length=255)
    response_code = String(max_length=20)
    failure_reason = String(max_length=255)
    created_at = DateTime()
    completed_at = DateTime()
    failed_at = DateTime()
    refund_amount = Float(default=0.0, min_value=0.0)
    refund_reason = String(max_length=50)
    refund_requested_at = DateTime()

    @classmethod
    def initiate(cls, customer_id, order_ids, amount, gateway, note=None):
        now = utc_now()
        transaction = cls(
            customer_id=customer_id,
            order_ids=json.dumps([str(o) for o in order_ids]),
            amount=round_money(amount),
            status=TransactionStatus.INITIATED.value,
            gateway=gateway,
            note=note,
            created_at=now,
        )
        transaction.description = f"TID:{transaction.id}"
        transaction.raise_(
            TransactionInitiated(
                transaction_id=str(transaction.id),
                customer_id=str(customer_id),
                order_ids=transaction.order_ids,
                amount=transaction.amount,
                initiated_at=now,
            )
        )
        return transaction

    @property
    def linked_order_ids(self) -> list[str]:
        return json.loads(self.order_ids) if self.order_ids else []

    @property
    def refund_requested(self) -> bool:
        return self.refund_requested_at is not None

    @property
    def is_final(self) -> bool:
        return TransactionStatus(self.status) != TransactionStatus.INITIATED

    def is_stale(self, cutoff) -> bool:
        return not self.is_final and as_naive_utc(self.created_at) < as_naive_utc(cutoff)

    def _ensure_open(self):
        if self.is_final:
            raise InvalidOperationError(f"Transaction is already {self.status}")

    def complete(self, gateway_reference=None, response_code=None):
        self._ensure_open()
        now = utc_now()
        self.status = TransactionStatus.COMPLETED.value
        self.gateway_reference = gateway_reference
        self.response_code = response_code
        self.completed_at = now
        self.raise_(
            TransactionCompleted(
                transaction_id=str(self.id),
                customer_id=str(self.customer_id),
                amount=self.amount,
                gateway_reference=gateway_reference,
                completed_at=now,
            )
        )

    def fail(self, reason: FailureReason, response_code=None):
        self._ensure_open()
        now = utc_now()
        self.status = TransactionStatus.FAILED.value
        self.failure_reason = reason.value
        self.response_code = response_code
        self.failed_at = now
        self.raise_(
            TransactionFailed(
                transaction_id=str(self.id),
                customer_id=str(self.customer_id),
                reason=reason.value,
                failed_at=now,
            )
        )

    def flag_refund(self, amount, order_ids, reason: RefundReason):
        """Record money captured by the gateway that has to go back to the customer."""
        if self.refund_requested:
            raise InvalidOperationError("A refund has already been requested for this transaction")
        now = utc_now()
        self.refund_amount = round_money(amount)
        self.refund_reason = reason.value
        self.refund_requested_at = now
        self.raise_(
            TransactionRefundRequested(
                transaction_id=str(self.id),
                customer_id=str(self.customer_id),
                amount=self.refund_amount,
                order_ids=json.dumps([str(o) for o in order_ids]),
                reason=reason.value,
                requested_at=now,
            )
        )


@marketplace.repository(part_of=Transaction)
class TransactionRepository:
    def initiated(self) -> list[Transaction]:
        return self._dao.query.filter(status=TransactionStatus.INITIATED.value).all().items

    def open_order_ids(self) -> set[str]:
        """Orders already covered by a payment attempt that is still waiting on the gateway."""
        return {order_id for transaction in self.initiated() for order_id in transaction.linked_order_ids}
