"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """A provider-scoped order was created at checkout."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    item_count = Integer(required=True)
    total_amount = Float(required=True)
    total_deposit = Float(required=True)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    action = String(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    actor_role = String(required=True)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderRefundRequested:
    """A paid order was cancelled; the external refund workflow picks this up."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    transaction_id = Identifier(required=True)
    amount = Float(required=True)
    requested_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class DepositSettled:
    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    total_deposit = Float(required=True)
    penalty_total = Float(required=True)
    refund_amount = Float(required=True)
    settled_at = DateTime(required=True)
