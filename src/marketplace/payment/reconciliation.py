"""Gateway callback reconciliation.

Completing a transaction and approving its orders happen in one unit of
work. Callbacks for a transaction that is already final change nothing, so
duplicate deliveries are harmless.

Captured money is never dropped: orders cancelled while the customer was at
the gateway get an order-level refund, and whatever no order absorbed is
flagged for refund on the transaction.
"""

from dataclasses import dataclass, field

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.order.state_machine import ActorRole, OrderStatus
from marketplace.payment.transaction import FailureReason, RefundReason, Transaction
from marketplace.shared.ledger import round_money, sum_money

logger = structlog.get_logger(__name__)


@dataclass
class CallbackOutcome:
    # completed | refund_requested | failed | duplicate | amount_mismatch | late_payment | not_found
    status: str
    transaction_id: str
    approved_order_ids: list[str] = field(default_factory=list)
    refunded_order_ids: list[str] = field(default_factory=list)
    skipped_order_ids: list[str] = field(default_factory=list)
    refund_amount: float = 0.0


@marketplace.command(part_of="Transaction")
class ReconcilePayment:
    transaction_id = Identifier(required=True)
    success = Boolean(required=True)
    response_code = String(max_length=20)
    amount = Float()
    gateway_reference = String(max_length=255)


@marketplace.command_handler(part_of=Transaction)
class ReconcilePaymentHandler:
    @handle(ReconcilePayment)
    def reconcile_payment(self, command):
        repo = current_domain.repository_for(Transaction)
        transaction = repo.get(command.transaction_id)
        transaction_id = str(transaction.id)

        if transaction.is_final:
            if self._paid_after_expiry(transaction, command):
                captured = command.amount if command.amount is not None else transaction.amount
                transaction.flag_refund(captured, transaction.linked_order_ids, RefundReason.PAID_AFTER_EXPIRY)
                repo.add(transaction)
                logger.warning(
                    "Payment captured for an expired transaction; refund requested",
                    transaction_id=transaction_id,
                    amount=transaction.refund_amount,
                )
                return CallbackOutcome(
                    status="late_payment",
                    transaction_id=transaction_id,
                    refund_amount=transaction.refund_amount,
                )
            logger.info("Duplicate gateway callback ignored", transaction_id=transaction_id, status=transaction.status)
            return CallbackOutcome(status="duplicate", transaction_id=transaction_id)

        if command.amount is not None and round_money(command.amount) != round_money(transaction.amount):
            logger.warning(
                "Gateway amount does not match transaction",
                transaction_id=transaction_id,
                expected=transaction.amount,
                received=command.amount,
            )
            transaction.fail(FailureReason.AMOUNT_MISMATCH, command.response_code)
            repo.add(transaction)
            return CallbackOutcome(status="amount_mismatch", transaction_id=transaction_id)

        if not command.success:
            transaction.fail(FailureReason.DECLINED, command.response_code)
            repo.add(transaction)
            logger.info("Payment failed", transaction_id=transaction_id, response_code=command.response_code)
            return CallbackOutcome(status="failed", transaction_id=transaction_id)

        transaction.complete(command.gateway_reference, command.response_code)

        outcome = CallbackOutcome(status="completed", transaction_id=transaction_id)
        absorbed = []
        order_repo = current_domain.repository_for(Order)
        for order_id in transaction.linked_order_ids:
            try:
                order = order_repo.get(order_id)
            except ObjectNotFoundError:
                order = None

            if order is not None and order.current_status == OrderStatus.PENDING and not order.transaction_id:
                order.approve(role=ActorRole.SYSTEM, transaction_id=transaction_id)
                order_repo.add(order)
                outcome.approved_order_ids.append(order_id)
                absorbed.append(order.pricing.total_amount)
                continue

            if order is not None and order.current_status == OrderStatus.CANCELLED and not order.transaction_id:
                # Cancelled while the customer was at the gateway: refunded per order.
                order.record_payment_after_cancel(transaction_id)
                order_repo.add(order)
                outcome.refunded_order_ids.append(order_id)
                absorbed.append(order.pricing.total_amount)
                continue

            logger.warning(
                "Paid order is no longer payable; skipped",
                transaction_id=transaction_id,
                order_id=order_id,
                status=order.status if order else None,
            )
            outcome.skipped_order_ids.append(order_id)

        unabsorbed = round_money(transaction.amount - sum_money(absorbed))
        if outcome.skipped_order_ids and unabsorbed > 0:
            transaction.flag_refund(unabsorbed, outcome.skipped_order_ids, RefundReason.ORDERS_UNAVAILABLE)
            outcome.refund_amount = transaction.refund_amount
        repo.add(transaction)

        if not outcome.approved_order_ids:
            outcome.status = "refund_requested"

        logger.info(
            "Payment completed",
            transaction_id=transaction_id,
            approved=len(outcome.approved_order_ids),
            refunded=len(outcome.refunded_order_ids),
            skipped=len(outcome.skipped_order_ids),
        )
        return outcome

    @staticmethod
    def _paid_after_expiry(transaction, command) -> bool:
        return (
            command.success
            and transaction.failure_reason == FailureReason.EXPIRED.value
            and not transaction.refund_requested
        )
