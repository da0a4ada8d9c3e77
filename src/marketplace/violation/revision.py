"""Provider edits to a recorded violation."""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.moderation import ensure_acceptable
from marketplace.order.order import Order
from marketplace.violation.recording import ensure_order_open_for_violations, ensure_within_deposit
from marketplace.violation.violation import RentalViolation, ViolationType, resolve_penalty


@marketplace.command(part_of="RentalViolation")
class UpdateViolation:
    violation_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    violation_type = String(choices=ViolationType)
    description = Text()
    penalty_percentage = Float()
    penalty_amount = Float()
    evidence_urls = Text()  # JSON list


@marketplace.command_handler(part_of=RentalViolation)
class UpdateViolationHandler:
    @handle(UpdateViolation)
    def update_violation(self, command):
        repo = current_domain.repository_for(RentalViolation)
        violation = repo.get(command.violation_id)
        violation.ensure_owned_by_provider(command.provider_id)

        order = current_domain.repository_for(Order).get(violation.order_id)
        ensure_order_open_for_violations(order, command.provider_id)
        ensure_acceptable("description", command.description)

        item = order.find_item(violation.order_item_id)
        percentage, amount = resolve_penalty(item.deposit_total, command.penalty_percentage, command.penalty_amount)
        ensure_within_deposit(item, repo.penalty_total_for_item(item.id, excluding=violation.id) + amount)

        violation.revise(
            penalty_percentage=percentage,
            penalty_amount=amount,
            description=command.description,
            violation_type=command.violation_type,
            evidence_urls=json.loads(command.evidence_urls) if command.evidence_urls else (),
        )
        repo.add(violation)
