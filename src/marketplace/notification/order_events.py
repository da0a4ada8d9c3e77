"""Order lifecycle notifications.

Reacts to Order events after they are committed and tells the customer and
provider through the notifier. Delivery is best effort: a failing notifier
is logged and never propagated, so it cannot undo the state change that
raised the event.
"""

import structlog
from protean.utils.mixins import handle

from marketplace.domain import marketplace
from marketplace.notification import get_notifier
from marketplace.order.events import DepositSettled, OrderPlaced, OrderRefundRequested, OrderStatusChanged
from marketplace.order.order import Order

logger = structlog.get_logger(__name__)

# Provider-facing changes are mostly their own actions; they only hear about these
PROVIDER_TEMPLATES_BY_STATUS = {
    "approved": "order_paid",
    "cancelled": "order_cancelled",
}


def notify(recipient_id: str, template: str, data: dict) -> None:
    try:
        get_notifier().send(recipient_id, template, data)
    except Exception:
        logger.warning(
            "Notification delivery failed",
            recipient_id=recipient_id,
            template=template,
            order_id=data.get("order_id"),
            exc_info=True,
        )


@marketplace.event_handler(part_of=Order)
class OrderNotificationsHandler:
    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        data = {"order_id": str(event.order_id), "total_amount": event.total_amount}
        notify(str(event.customer_id), "order_placed", data)
        notify(str(event.provider_id), "new_order", data)

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        data = {
            "order_id": str(event.order_id),
            "from_status": event.from_status,
            "to_status": event.to_status,
        }
        notify(str(event.customer_id), f"order_{event.to_status}", data)

        provider_template = PROVIDER_TEMPLATES_BY_STATUS.get(event.to_status)
        if provider_template:
            notify(str(event.provider_id), provider_template, data)

    @handle(OrderRefundRequested)
    def on_refund_requested(self, event: OrderRefundRequested) -> None:
        notify(
            str(event.customer_id),
            "refund_requested",
            {"order_id": str(event.order_id), "amount": event.amount},
        )

    @handle(DepositSettled)
    def on_deposit_settled(self, event: DepositSettled) -> None:
        notify(
            str(event.customer_id),
            "deposit_settled",
            {
                "order_id": str(event.order_id),
                "refund_amount": event.refund_amount,
                "penalty_total": event.penalty_total,
            },
        )
