"""Payment request creation: one transaction for a batch of pending orders."""

import json
from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.exceptions import NoValidOrdersError
from marketplace.order.order import Order
from marketplace.order.state_machine import OrderStatus
from marketplace.payment.gateway import get_gateway
from marketplace.payment.transaction import Transaction
from marketplace.shared.ledger import sum_money

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentRequest:
    transaction_id: str
    payment_url: str
    amount: float
    order_ids: list[str]


@marketplace.command(part_of="Transaction")
class CreatePaymentRequest:
    customer_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON list
    note = Text()
    client_ip = String(max_length=64, default="127.0.0.1")


def payable_orders(customer_id, order_ids) -> list[Order]:
    """Orders from ``order_ids`` the customer owns and can still pay for.

    Unknown ids, orders that are not pending and orders already covered by
    another initiated transaction are dropped, not reported. The customer can
    pay those again once that attempt completes, fails or expires.
    """
    repo = current_domain.repository_for(Order)
    in_flight = current_domain.repository_for(Transaction).open_order_ids()
    payable = []
    for order_id in dict.fromkeys(str(o) for o in order_ids):
        try:
            order = repo.get(order_id)
        except ObjectNotFoundError:
            continue
        if str(order.customer_id) != str(customer_id):
            continue
        if order.current_status != OrderStatus.PENDING or order.transaction_id:
            continue
        if str(order.id) in in_flight:
            continue
        payable.append(order)
    return payable


@marketplace.command_handler(part_of=Transaction)
class CreatePaymentRequestHandler:
    @handle(CreatePaymentRequest)
    def create_payment_request(self, command):
        order_ids = json.loads(command.order_ids) if command.order_ids else []
        if not order_ids:
            raise ValidationError({"order_ids": ["At least one order is required"]})

        orders = payable_orders(command.customer_id, order_ids)
        if not orders:
            raise NoValidOrdersError()

        gateway = get_gateway()
        amount = sum_money(o.pricing.total_amount for o in orders)
        transaction = Transaction.initiate(
            customer_id=command.customer_id,
            order_ids=[o.id for o in orders],
            amount=amount,
            gateway=gateway.name,
            note=command.note,
        )
        current_domain.repository_for(Transaction).add(transaction)

        dropped = len(set(map(str, order_ids))) - len(orders)
        if dropped:
            logger.info(
                "Payment request dropped ineligible orders",
                transaction_id=str(transaction.id),
                dropped=dropped,
            )

        return PaymentRequest(
            transaction_id=str(transaction.id),
            payment_url=gateway.create_payment_url(
                str(transaction.id), amount, transaction.description, command.client_ip
            ),
            amount=amount,
            order_ids=[str(o.id) for o in orders],
        )
