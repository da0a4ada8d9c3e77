"""Domain events for the RentalViolation aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="RentalViolation")
class ViolationRecorded:
    __version__ = 1

    violation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    violation_type = String(required=True)
    penalty_amount = Float(required=True)
    recorded_at = DateTime(required=True)


@marketplace.event(part_of="RentalViolation")
class ViolationRevised:
    __version__ = 1

    violation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_penalty_amount = Float(required=True)
    penalty_amount = Float(required=True)
    revised_at = DateTime(required=True)


@marketplace.event(part_of="RentalViolation")
class ViolationResponded:
    """The customer accepted or disputed a violation."""

    __version__ = 1

    violation_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    status = String(required=True)
    responded_at = DateTime(required=True)
