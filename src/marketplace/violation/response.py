"""Customer response to a violation.

When the last outstanding violation of a ``returned_with_issue`` order is
accepted, the order is resolved and its deposit settled in the same unit of
work.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.moderation import ensure_acceptable
from marketplace.order.order import Order
from marketplace.order.state_machine import ActorRole, OrderAction, OrderStatus
from marketplace.shared.ledger import sum_money
from marketplace.violation.violation import RentalViolation

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="RentalViolation")
class RespondToViolation:
    violation_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    accept = Boolean(required=True)
    notes = Text()


@marketplace.command_handler(part_of=RentalViolation)
class RespondToViolationHandler:
    @handle(RespondToViolation)
    def respond_to_violation(self, command):
        repo = current_domain.repository_for(RentalViolation)
        violation = repo.get(command.violation_id)
        ensure_acceptable("notes", command.notes)

        violation.respond(command.customer_id, command.accept, command.notes)
        repo.add(violation)

        if command.accept:
            self._resolve_order_if_settled(violation)

    def _resolve_order_if_settled(self, responded):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(responded.order_id)
        if order.current_status != OrderStatus.RETURNED_WITH_ISSUE:
            return

        siblings = [
            responded if str(v.id) == str(responded.id) else v
            for v in current_domain.repository_for(RentalViolation).for_order(order.id)
        ]
        if not all(v.is_settled for v in siblings):
            return

        order.complete_return(
            OrderAction.RESOLVE_ISSUES,
            sum_money(v.penalty_amount for v in siblings),
            role=ActorRole.SYSTEM,
        )
        order_repo.add(order)
        logger.info("Order issues resolved after customer acceptance", order_id=str(order.id))
