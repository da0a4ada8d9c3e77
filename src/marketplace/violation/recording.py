"""Batch violation recording.

All lines of a batch are validated (ownership, order status, item
membership, moderation, cumulative deposit cap) before anything is added to
the unit of work, so a rejected line leaves no violation from its batch behind.
"""

import json
from collections import defaultdict

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from marketplace.catalog.port import TransactionType
from marketplace.domain import marketplace
from marketplace.exceptions import PenaltyExceedsDepositError, UnauthorizedError
from marketplace.moderation import ensure_acceptable
from marketplace.order.order import Order
from marketplace.order.state_machine import VIOLATION_ADMISSIBLE_STATUSES, ActorRole, OrderAction, OrderStatus
from marketplace.shared.ledger import round_money
from marketplace.violation.violation import RentalViolation, resolve_penalty

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="RentalViolation")
class CreateMultipleViolations:
    """Record several violations on one order.

    ``violations`` is a JSON list of objects with order_item_id,
    violation_type, description, penalty_percentage or penalty_amount,
    and optional damage_percentage and evidence_urls.
    """

    order_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    violations = Text(required=True)


def ensure_order_open_for_violations(order: Order, provider_id) -> None:
    if str(order.provider_id) != str(provider_id):
        raise UnauthorizedError("Only the order's provider may record violations")
    if order.is_deposit_settled:
        raise InvalidOperationError("The deposit for this order has already been settled")
    if order.current_status not in VIOLATION_ADMISSIBLE_STATUSES:
        raise InvalidOperationError(f"Violations cannot be recorded on an order in status {order.status}")


def ensure_within_deposit(item, penalty_total) -> None:
    if round_money(penalty_total) > item.deposit_total:
        raise PenaltyExceedsDepositError(
            f"Penalties for item {item.id} would total {round_money(penalty_total)}, "
            f"above its deposit of {item.deposit_total}",
            order_item_id=str(item.id),
        )


@marketplace.command_handler(part_of=RentalViolation)
class CreateMultipleViolationsHandler:
    @handle(CreateMultipleViolations)
    def create_multiple_violations(self, command):
        order_repo = current_domain.repository_for(Order)
        violation_repo = current_domain.repository_for(RentalViolation)

        order = order_repo.get(command.order_id)
        ensure_order_open_for_violations(order, command.provider_id)

        lines = json.loads(command.violations)
        if not lines:
            raise ValidationError({"violations": ["At least one violation is required"]})

        running_totals = defaultdict(float)
        violations = []
        for line in lines:
            item = order.find_item(line.get("order_item_id"))
            if item.transaction_type != TransactionType.RENTAL.value:
                raise ValidationError({"order_item_id": ["Violations apply to rental items only"]})

            description = (line.get("description") or "").strip()
            if not description:
                raise ValidationError({"description": ["A description is required"]})
            ensure_acceptable("description", description)

            percentage, amount = resolve_penalty(
                item.deposit_total,
                line.get("penalty_percentage"),
                line.get("penalty_amount"),
            )

            key = str(item.id)
            if key not in running_totals:
                running_totals[key] = violation_repo.penalty_total_for_item(item.id)
            running_totals[key] += amount
            ensure_within_deposit(item, running_totals[key])

            violations.append(
                RentalViolation.record(
                    order=order,
                    item=item,
                    violation_type=line.get("violation_type"),
                    description=description,
                    penalty_percentage=percentage,
                    penalty_amount=amount,
                    damage_percentage=line.get("damage_percentage"),
                    evidence_urls=line.get("evidence_urls") or (),
                )
            )

        for violation in violations:
            violation_repo.add(violation)

        if order.current_status == OrderStatus.RETURNING:
            order.apply_action(OrderAction.MARK_RETURNED_WITH_ISSUE, role=ActorRole.SYSTEM)
            order_repo.add(order)

        logger.info(
            "Violations recorded",
            order_id=str(order.id),
            provider_id=str(command.provider_id),
            count=len(violations),
        )
        return [str(v.id) for v in violations]
