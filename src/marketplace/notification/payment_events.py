"""Payment notifications: tells the customer when captured money is going back."""

import structlog
from protean.utils.mixins import handle

from marketplace.domain import marketplace
from marketplace.notification.order_events import notify
from marketplace.payment.events import TransactionRefundRequested
from marketplace.payment.transaction import Transaction

logger = structlog.get_logger(__name__)


@marketplace.event_handler(part_of=Transaction)
class PaymentNotificationsHandler:
    @handle(TransactionRefundRequested)
    def on_refund_requested(self, event: TransactionRefundRequested) -> None:
        logger.info(
            "Transaction refund requested",
            transaction_id=str(event.transaction_id),
            amount=event.amount,
            reason=event.reason,
        )
        notify(
            str(event.customer_id),
            "payment_refund_requested",
            {"transaction_id": str(event.transaction_id), "amount": event.amount, "reason": event.reason},
        )
