"""Domain events for the Transaction aggregate."""

from protean.fields import DateTime, Float, Identifier, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Transaction")
class TransactionInitiated:
    __version__ = 1

    transaction_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON list
    amount = Float(required=True)
    initiated_at = DateTime(required=True)


@marketplace.event(part_of="Transaction")
class TransactionCompleted:
    __version__ = 1

    transaction_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True)
    gateway_reference = String(max_length=255)
    completed_at = DateTime(required=True)


@marketplace.event(part_of="Transaction")
class TransactionFailed:
    __version__ = 1

    transaction_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    reason = String(required=True, max_length=255)
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Transaction")
class TransactionRefundRequested:
    """Money the gateway captured that no order can absorb; the external refund workflow picks this up."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True)
    order_ids = Text(required=True)  # JSON list
    reason = String(required=True, max_length=50)
    requested_at = DateTime(required=True)
