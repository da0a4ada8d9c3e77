"""RentalViolation aggregate.

A provider records a violation (damage, late return, item not returned)
against one rental item of one of their orders. The penalty is given either
as a percentage of the item's deposit or as a fixed amount; both are stored.
Across all violations of an item, penalties can never exceed that item's
deposit (deposit_per_unit x quantity).
"""

from enum import Enum

from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String, Text

from marketplace.domain import marketplace
from marketplace.exceptions import UnauthorizedError
from marketplace.shared.ledger import (
    as_percentage,
    percentage_of,
    round_money,
    sum_money,
    utc_now,
    validate_percentage,
)
from marketplace.violation.events import ViolationRecorded, ViolationResponded, ViolationRevised


class ViolationType(Enum):
    DAMAGED = "damaged"
    LATE_RETURN = "late_return"
    NOT_RETURNED = "not_returned"


class ViolationStatus(Enum):
    PENDING = "pending"
    CUSTOMER_ACCEPTED = "customer_accepted"
    CUSTOMER_REJECTED = "customer_rejected"
    RESOLVED = "resolved"


SETTLED_STATUSES = frozenset({ViolationStatus.CUSTOMER_ACCEPTED, ViolationStatus.RESOLVED})


def resolve_penalty(deposit_total, penalty_percentage=None, penalty_amount=None) -> tuple[float, float]:
    """Return (percentage, amount) from whichever of the two the caller supplied.

    Exactly one must be given. The percentage applies to the item's total
    deposit; a fixed amount is also expressed back as a percentage.
    """
    if (penalty_percentage is None) == (penalty_amount is None):
        raise ValidationError({"penalty": ["Provide either a penalty percentage or a penalty amount"]})

    if penalty_percentage is not None:
        validate_percentage(penalty_percentage, "penalty_percentage")
        return round_money(penalty_percentage), percentage_of(deposit_total, penalty_percentage)

    if penalty_amount < 0:
        raise ValidationError({"penalty_amount": ["Must not be negative"]})
    return as_percentage(penalty_amount, deposit_total), round_money(penalty_amount)


@marketplace.entity(part_of="RentalViolation")
class ViolationEvidence:
    url = String(required=True, max_length=1000)
    file_type = String(max_length=50)
    uploaded_at = DateTime()


@marketplace.aggregate
class RentalViolation:
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    violation_type = String(required=True, choices=ViolationType)
    description = Text(required=True)
    damage_percentage = Float(min_value=0.0, max_value=100.0)
    penalty_percentage = Float(required=True, min_value=0.0, max_value=100.0)
    penalty_amount = Float(required=True, min_value=0.0)
    status = String(choices=ViolationStatus, default=ViolationStatus.PENDING.value)
    customer_notes = Text()
    evidence = HasMany(ViolationEvidence)
    created_at = DateTime()
    updated_at = DateTime()
    customer_responded_at = DateTime()

    @classmethod
    def record(
        cls,
        order,
        item,
        violation_type,
        description,
        penalty_percentage,
        penalty_amount,
        damage_percentage=None,
        evidence_urls=(),
    ):
        now = utc_now()
        violation = cls(
            order_id=str(order.id),
            order_item_id=str(item.id),
            provider_id=str(order.provider_id),
            customer_id=str(order.customer_id),
            violation_type=ViolationType(violation_type).value,
            description=description,
            damage_percentage=damage_percentage,
            penalty_percentage=penalty_percentage,
            penalty_amount=penalty_amount,
            status=ViolationStatus.PENDING.value,
            evidence=[ViolationEvidence(url=url, file_type=_file_type(url), uploaded_at=now) for url in evidence_urls],
            created_at=now,
            updated_at=now,
        )
        violation.raise_(
            ViolationRecorded(
                violation_id=str(violation.id),
                order_id=str(order.id),
                order_item_id=str(item.id),
                provider_id=str(order.provider_id),
                customer_id=str(order.customer_id),
                violation_type=violation.violation_type,
                penalty_amount=penalty_amount,
                recorded_at=now,
            )
        )
        return violation

    @property
    def is_settled(self) -> bool:
        return ViolationStatus(self.status) in SETTLED_STATUSES

    def ensure_owned_by_provider(self, provider_id):
        if str(self.provider_id) != str(provider_id):
            raise UnauthorizedError("Only the provider who recorded this violation may change it")

    def revise(self, penalty_percentage, penalty_amount, description=None, violation_type=None, evidence_urls=None):
        """Provider edit. Puts the violation back in front of the customer."""
        if ViolationStatus(self.status) == ViolationStatus.RESOLVED:
            raise InvalidOperationError("Resolved violations cannot be changed")

        now = utc_now()
        previous = self.penalty_amount
        self.penalty_percentage = penalty_percentage
        self.penalty_amount = penalty_amount
        if description:
            self.description = description
        if violation_type:
            self.violation_type = ViolationType(violation_type).value
        for url in evidence_urls or ():
            self.add_evidence(ViolationEvidence(url=url, file_type=_file_type(url), uploaded_at=now))
        self.status = ViolationStatus.PENDING.value
        self.customer_notes = None
        self.updated_at = now

        self.raise_(
            ViolationRevised(
                violation_id=str(self.id),
                order_id=str(self.order_id),
                previous_penalty_amount=previous,
                penalty_amount=penalty_amount,
                revised_at=now,
            )
        )

    def respond(self, customer_id, accept: bool, notes=None):
        if str(self.customer_id) != str(customer_id):
            raise UnauthorizedError("Only the order's customer may respond to this violation")
        if ViolationStatus(self.status) != ViolationStatus.PENDING:
            raise InvalidOperationError("Only pending violations can be accepted or rejected")

        now = utc_now()
        self.status = (ViolationStatus.CUSTOMER_ACCEPTED if accept else ViolationStatus.CUSTOMER_REJECTED).value
        self.customer_notes = notes
        self.customer_responded_at = now
        self.updated_at = now

        self.raise_(
            ViolationResponded(
                violation_id=str(self.id),
                order_id=str(self.order_id),
                customer_id=str(customer_id),
                status=self.status,
                responded_at=now,
            )
        )

    def resolve(self):
        self.status = ViolationStatus.RESOLVED.value
        self.updated_at = utc_now()


def _file_type(url: str) -> str | None:
    tail = url.rsplit("/", 1)[-1]
    return tail.rsplit(".", 1)[-1].lower() if "." in tail else None


@marketplace.repository(part_of=RentalViolation)
class RentalViolationRepository:
    def for_order(self, order_id) -> list[RentalViolation]:
        violations = self._dao.query.filter(order_id=str(order_id)).all().items
        return sorted(violations, key=lambda v: v.created_at)

    def penalty_total_for_order(self, order_id) -> float:
        return sum_money(v.penalty_amount for v in self.for_order(order_id))

    def penalty_total_for_item(self, order_item_id, excluding=None) -> float:
        violations = self._dao.query.filter(order_item_id=str(order_item_id)).all().items
        return sum_money(v.penalty_amount for v in violations if str(v.id) != str(excluding))
