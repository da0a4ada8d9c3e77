"""Order status state machine.

Every legal status change is one row in ``TRANSITIONS``: the statuses it may
start from, the status it ends in, the roles allowed to trigger it and the
timestamp it stamps. ``Order`` consults this table and nothing else, so an
illegal transition is rejected in exactly one place.

    pending -> approved -> in_transit -> in_use -> returning -> returned
    returning -> returned_with_issue -> returned
    pending | approved -> cancelled
"""

from dataclasses import dataclass
from enum import Enum


class OrderStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_TRANSIT = "in_transit"
    IN_USE = "in_use"
    RETURNING = "returning"
    RETURNED = "returned"
    RETURNED_WITH_ISSUE = "returned_with_issue"
    CANCELLED = "cancelled"


class OrderAction(Enum):
    APPROVE = "approve"
    MARK_SHIPPING = "mark_shipping"
    CONFIRM_DELIVERY = "confirm_delivery"
    MARK_RETURNING = "mark_returning"
    MARK_RETURNED = "mark_returned"
    MARK_RETURNED_WITH_ISSUE = "mark_returned_with_issue"
    CANCEL = "cancel"
    RESOLVE_ISSUES = "resolve_issues"


class ActorRole(Enum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    STAFF = "staff"
    SYSTEM = "system"


@dataclass(frozen=True)
class Transition:
    sources: frozenset[OrderStatus]
    target: OrderStatus
    actors: frozenset[ActorRole]
    stamps: str


def _t(sources, target, actors, stamps) -> Transition:
    return Transition(frozenset(sources), target, frozenset(actors), stamps)


TRANSITIONS: dict[OrderAction, Transition] = {
    OrderAction.APPROVE: _t(
        {OrderStatus.PENDING},
        OrderStatus.APPROVED,
        {ActorRole.PROVIDER, ActorRole.STAFF, ActorRole.SYSTEM},
        "approved_at",
    ),
    OrderAction.MARK_SHIPPING: _t(
        {OrderStatus.APPROVED},
        OrderStatus.IN_TRANSIT,
        {ActorRole.PROVIDER},
        "shipped_at",
    ),
    OrderAction.CONFIRM_DELIVERY: _t(
        {OrderStatus.IN_TRANSIT},
        OrderStatus.IN_USE,
        {ActorRole.PROVIDER},
        "delivered_at",
    ),
    OrderAction.MARK_RETURNING: _t(
        {OrderStatus.IN_USE},
        OrderStatus.RETURNING,
        {ActorRole.PROVIDER},
        "returning_at",
    ),
    OrderAction.MARK_RETURNED: _t(
        {OrderStatus.RETURNING},
        OrderStatus.RETURNED,
        {ActorRole.PROVIDER},
        "returned_at",
    ),
    # SYSTEM: recording violations on a returning order
    OrderAction.MARK_RETURNED_WITH_ISSUE: _t(
        {OrderStatus.RETURNING},
        OrderStatus.RETURNED_WITH_ISSUE,
        {ActorRole.PROVIDER, ActorRole.SYSTEM},
        "returned_at",
    ),
    OrderAction.CANCEL: _t(
        {OrderStatus.PENDING, OrderStatus.APPROVED},
        OrderStatus.CANCELLED,
        {ActorRole.CUSTOMER, ActorRole.STAFF},
        "cancelled_at",
    ),
    OrderAction.RESOLVE_ISSUES: _t(
        {OrderStatus.RETURNED_WITH_ISSUE},
        OrderStatus.RETURNED,
        {ActorRole.STAFF, ActorRole.SYSTEM},
        "resolved_at",
    ),
}

# Reaching RETURNED settles the deposit
SETTLING_ACTIONS = frozenset({OrderAction.MARK_RETURNED, OrderAction.RESOLVE_ISSUES})

VIOLATION_ADMISSIBLE_STATUSES = frozenset({OrderStatus.RETURNING, OrderStatus.RETURNED_WITH_ISSUE})


def available_actions(status: OrderStatus) -> list[OrderAction]:
    return [action for action, t in TRANSITIONS.items() if status in t.sources]
