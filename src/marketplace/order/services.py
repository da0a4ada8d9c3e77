"""Order entry points used by the API.

Transitions run under the order's lock so that two mutually exclusive
requests (a cancel racing a delivery confirmation) cannot both commit. Stock
taken at checkout is handed back to the catalog only after a cancellation
has been committed.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.catalog import get_catalog
from marketplace.catalog.port import TransactionType
from marketplace.exceptions import InternalError, UnauthorizedError
from marketplace.order.order import Order
from marketplace.order.state_machine import ActorRole, OrderAction
from marketplace.order.transitions import TransitionOrder
from marketplace.utils.locks import locked, order_key

logger = structlog.get_logger(__name__)


def transition_order(order_id, action, actor_id=None, actor_role=ActorRole.SYSTEM) -> Order:
    action = OrderAction(action)
    actor_role = ActorRole(actor_role)

    with locked(order_key(order_id)):
        current_domain.process(
            TransitionOrder(
                order_id=order_id,
                action=action.value,
                actor_id=actor_id,
                actor_role=actor_role.value,
            ),
            asynchronous=False,
        )
        order = current_domain.repository_for(Order).get(order_id)

    logger.info(
        "Order transitioned",
        order_id=str(order_id),
        action=action.value,
        status=order.status,
        actor_role=actor_role.value,
    )

    if action == OrderAction.CANCEL:
        restore_order_stock(order)
    return order


def restore_order_stock(order: Order) -> None:
    """Give back every unit the order took at checkout."""
    catalog = get_catalog()
    failed = []
    for item in order.items:
        try:
            catalog.restore_stock(item.product_id, TransactionType(item.transaction_type), item.quantity)
        except Exception:
            logger.error(
                "Stock restore failed",
                order_id=str(order.id),
                product_id=str(item.product_id),
                quantity=item.quantity,
                exc_info=True,
            )
            failed.append(str(item.product_id))
    if failed:
        raise InternalError()


def get_order(order_id, actor_id, actor_role) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    if not order.is_visible_to(actor_id, ActorRole(actor_role)):
        raise UnauthorizedError()
    return order


def list_customer_orders(customer_id) -> list[Order]:
    return current_domain.repository_for(Order).for_customer(customer_id)


def list_provider_orders(provider_id) -> list[Order]:
    return current_domain.repository_for(Order).for_provider(provider_id)
