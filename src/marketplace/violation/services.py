"""Violation entry points used by the API.

Recording, revising and answering violations can move the order
(returned_with_issue, resolve_issues) and all of them read the per-item
penalty totals, so each runs under the order's lock, the same lock order
transitions take.
"""

import json

from protean.utils.globals import current_domain

from marketplace.utils.locks import locked, order_key
from marketplace.violation.recording import CreateMultipleViolations
from marketplace.violation.response import RespondToViolation
from marketplace.violation.revision import UpdateViolation
from marketplace.violation.violation import RentalViolation


def record_violations(order_id, provider_id, violations: list[dict]) -> list[str]:
    with locked(order_key(order_id)):
        return current_domain.process(
            CreateMultipleViolations(
                order_id=order_id,
                provider_id=provider_id,
                violations=json.dumps(violations),
            ),
            asynchronous=False,
        )


def update_violation(
    violation_id,
    provider_id,
    violation_type=None,
    description=None,
    penalty_percentage=None,
    penalty_amount=None,
    evidence_urls=None,
) -> RentalViolation:
    repo = current_domain.repository_for(RentalViolation)
    order_id = repo.get(violation_id).order_id
    with locked(order_key(order_id)):
        current_domain.process(
            UpdateViolation(
                violation_id=violation_id,
                provider_id=provider_id,
                violation_type=violation_type,
                description=description,
                penalty_percentage=penalty_percentage,
                penalty_amount=penalty_amount,
                evidence_urls=json.dumps(evidence_urls) if evidence_urls else None,
            ),
            asynchronous=False,
        )
    return repo.get(violation_id)


def respond_to_violation(violation_id, customer_id, accept, notes=None) -> RentalViolation:
    repo = current_domain.repository_for(RentalViolation)
    order_id = repo.get(violation_id).order_id
    with locked(order_key(order_id)):
        current_domain.process(
            RespondToViolation(
                violation_id=violation_id,
                customer_id=customer_id,
                accept=accept,
                notes=notes,
            ),
            asynchronous=False,
        )
    return repo.get(violation_id)


def violations_for_order(order_id) -> list[RentalViolation]:
    return current_domain.repository_for(RentalViolation).for_order(order_id)
