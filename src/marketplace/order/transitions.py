"""Order status transitions: one command, dispatched through the transition table."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.order.state_machine import SETTLING_ACTIONS, ActorRole, OrderAction
from marketplace.violation.violation import RentalViolation


@marketplace.command(part_of="Order")
class TransitionOrder:
    order_id = Identifier(required=True)
    action = String(required=True, choices=OrderAction)
    actor_id = Identifier()
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command_handler(part_of=Order)
class TransitionOrderHandler:
    @handle(TransitionOrder)
    def transition_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        action = OrderAction(command.action)
        role = ActorRole(command.actor_role)

        if action == OrderAction.CANCEL:
            order.cancel(command.actor_id, role)
        elif action in SETTLING_ACTIONS:
            violation_repo = current_domain.repository_for(RentalViolation)
            penalties = violation_repo.penalty_total_for_order(order.id)
            order.complete_return(action, penalties, command.actor_id, role)

            if action == OrderAction.RESOLVE_ISSUES:
                for violation in violation_repo.for_order(order.id):
                    if not violation.is_settled:
                        violation.resolve()
                        violation_repo.add(violation)
        else:
            order.apply_action(action, command.actor_id, role)

        repo.add(order)
        return order.status
