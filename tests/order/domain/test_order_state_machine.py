"""Order state machine: legal transitions, guards and actor permissions."""

from datetime import UTC, datetime, timedelta

import pytest
from marketplace.exceptions import InvalidTransitionError, UnauthorizedError
from marketplace.order.events import OrderRefundRequested, OrderStatusChanged
from marketplace.order.order import ContactSnapshot, Order, RefundStatus
from marketplace.order.state_machine import (
    TRANSITIONS,
    ActorRole,
    OrderAction,
    OrderStatus,
    available_actions,
)
from marketplace.shared.ledger import RentalPeriod
from protean.exceptions import InvalidOperationError

START = datetime(2026, 11, 1, 9, 0, tzinfo=UTC)

PROVIDER = ActorRole.PROVIDER


def _make_order():
    return Order.place(
        customer_id="cust-001",
        provider_id="prov-001",
        items_data=[
            {
                "product_id": "prod-001",
                "product_name": "Silk Ao Dai",
                "transaction_type": "rental",
                "quantity": 2,
                "unit_price": 50.0,
                "rental_days": 1,
                "line_total": 100.0,
                "deposit_per_unit": 20.0,
                "commission_rate": 20.0,
                "commission_amount": 20.0,
            }
        ],
        rental_period=RentalPeriod(start=START, end=START + timedelta(days=1)),
        contact=ContactSnapshot(full_name="Mai", phone="0901234567", address="12 Le Loi"),
    )


# Provider-driven path from pending to each status
_PATH = [
    (OrderAction.APPROVE, OrderStatus.APPROVED),
    (OrderAction.MARK_SHIPPING, OrderStatus.IN_TRANSIT),
    (OrderAction.CONFIRM_DELIVERY, OrderStatus.IN_USE),
    (OrderAction.MARK_RETURNING, OrderStatus.RETURNING),
]


def _order_at_state(target_status):
    order = _make_order()
    order._events.clear()
    if target_status == OrderStatus.PENDING:
        return order

    if target_status == OrderStatus.CANCELLED:
        order.cancel("cust-001", ActorRole.CUSTOMER)
        order._events.clear()
        return order

    for action, status in _PATH:
        order.apply_action(action, "prov-001", PROVIDER)
        if status == target_status:
            order._events.clear()
            return order

    if target_status == OrderStatus.RETURNED:
        order.complete_return(OrderAction.MARK_RETURNED, 0.0, "prov-001", PROVIDER)
    elif target_status == OrderStatus.RETURNED_WITH_ISSUE:
        order.apply_action(OrderAction.MARK_RETURNED_WITH_ISSUE, role=ActorRole.SYSTEM)
    else:
        raise ValueError(f"Cannot create order at state {target_status}")
    order._events.clear()
    return order


# ---------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------
class TestValidTransitions:
    def test_new_order_is_pending(self):
        assert _make_order().status == OrderStatus.PENDING.value

    def test_pending_to_approved(self):
        order = _order_at_state(OrderStatus.PENDING)
        order.approve(role=ActorRole.SYSTEM, transaction_id="txn-001")
        assert order.status == OrderStatus.APPROVED.value
        assert order.transaction_id == "txn-001"
        assert order.approved_at is not None

    def test_approved_to_in_transit(self):
        order = _order_at_state(OrderStatus.APPROVED)
        order.apply_action(OrderAction.MARK_SHIPPING, "prov-001", PROVIDER)
        assert order.status == OrderStatus.IN_TRANSIT.value
        assert order.shipped_at is not None

    def test_in_transit_to_in_use(self):
        order = _order_at_state(OrderStatus.IN_TRANSIT)
        order.apply_action(OrderAction.CONFIRM_DELIVERY, "prov-001", PROVIDER)
        assert order.status == OrderStatus.IN_USE.value
        assert order.delivered_at is not None

    def test_in_use_to_returning(self):
        order = _order_at_state(OrderStatus.IN_USE)
        order.apply_action(OrderAction.MARK_RETURNING, "prov-001", PROVIDER)
        assert order.status == OrderStatus.RETURNING.value

    def test_returning_to_returned_settles_full_deposit(self):
        order = _order_at_state(OrderStatus.RETURNING)
        order.complete_return(OrderAction.MARK_RETURNED, 0.0, "prov-001", PROVIDER)
        assert order.status == OrderStatus.RETURNED.value
        assert order.deposit_refund_amount == 40.0
        assert order.deposit_penalty_total == 0.0
        assert order.is_deposit_settled

    def test_returning_to_returned_with_issue(self):
        order = _order_at_state(OrderStatus.RETURNING)
        order.apply_action(OrderAction.MARK_RETURNED_WITH_ISSUE, role=ActorRole.SYSTEM)
        assert order.status == OrderStatus.RETURNED_WITH_ISSUE.value
        assert not order.is_deposit_settled

    def test_resolving_issues_settles_net_of_penalties(self):
        order = _order_at_state(OrderStatus.RETURNED_WITH_ISSUE)
        order.complete_return(OrderAction.RESOLVE_ISSUES, 15.0, role=ActorRole.STAFF)
        assert order.status == OrderStatus.RETURNED.value
        assert order.deposit_penalty_total == 15.0
        assert order.deposit_refund_amount == 25.0
        assert order.resolved_at is not None

    def test_transition_raises_status_changed_event(self):
        order = _order_at_state(OrderStatus.APPROVED)
        order.apply_action(OrderAction.MARK_SHIPPING, "prov-001", PROVIDER)
        events = [e for e in order._events if isinstance(e, OrderStatusChanged)]
        assert len(events) == 1
        assert events[0].from_status == "approved"
        assert events[0].to_status == "in_transit"
        assert events[0].actor_role == "provider"


# ---------------------------------------------------------------
# Illegal transitions
# ---------------------------------------------------------------
class TestInvalidTransitions:
    @pytest.mark.parametrize(
        "state, action",
        [
            (OrderStatus.PENDING, OrderAction.MARK_SHIPPING),
            (OrderStatus.PENDING, OrderAction.CONFIRM_DELIVERY),
            (OrderStatus.APPROVED, OrderAction.APPROVE),
            (OrderStatus.IN_TRANSIT, OrderAction.MARK_RETURNING),
            (OrderStatus.IN_USE, OrderAction.MARK_RETURNED),
            (OrderStatus.RETURNED, OrderAction.MARK_SHIPPING),
            (OrderStatus.CANCELLED, OrderAction.APPROVE),
        ],
    )
    def test_rejected_and_status_unchanged(self, state, action):
        order = _order_at_state(state)
        with pytest.raises(InvalidTransitionError) as exc:
            order.apply_action(action, "prov-001", PROVIDER)
        assert exc.value.current == state.value
        assert exc.value.requested == action.value
        assert order.status == state.value
        assert order._events == []

    @pytest.mark.parametrize(
        "state",
        [OrderStatus.IN_TRANSIT, OrderStatus.IN_USE, OrderStatus.RETURNING, OrderStatus.RETURNED],
    )
    def test_cannot_cancel_after_shipping(self, state):
        order = _order_at_state(state)
        with pytest.raises(InvalidTransitionError):
            order.cancel("cust-001", ActorRole.CUSTOMER)
        assert order.status == state.value

    def test_error_names_both_statuses(self):
        order = _order_at_state(OrderStatus.PENDING)
        with pytest.raises(InvalidTransitionError) as exc:
            order.apply_action(OrderAction.MARK_SHIPPING, "prov-001", PROVIDER)
        assert exc.value.to_dict() == {
            "error": "invalid_transition",
            "message": "Cannot mark_shipping an order in status pending",
            "current": "pending",
            "requested": "mark_shipping",
        }


# ---------------------------------------------------------------
# Actor permissions
# ---------------------------------------------------------------
class TestAuthorization:
    def test_customer_cannot_ship(self):
        order = _order_at_state(OrderStatus.APPROVED)
        with pytest.raises(UnauthorizedError):
            order.apply_action(OrderAction.MARK_SHIPPING, "cust-001", ActorRole.CUSTOMER)
        assert order.status == OrderStatus.APPROVED.value

    def test_other_provider_cannot_ship(self):
        order = _order_at_state(OrderStatus.APPROVED)
        with pytest.raises(UnauthorizedError):
            order.apply_action(OrderAction.MARK_SHIPPING, "prov-999", PROVIDER)

    def test_other_customer_cannot_cancel(self):
        order = _order_at_state(OrderStatus.PENDING)
        with pytest.raises(UnauthorizedError):
            order.cancel("cust-999", ActorRole.CUSTOMER)

    def test_provider_cannot_cancel(self):
        order = _order_at_state(OrderStatus.PENDING)
        with pytest.raises(UnauthorizedError):
            order.cancel("prov-001", PROVIDER)

    def test_authorization_checked_before_status(self):
        order = _order_at_state(OrderStatus.PENDING)
        with pytest.raises(UnauthorizedError):
            order.apply_action(OrderAction.MARK_SHIPPING, "cust-001", ActorRole.CUSTOMER)

    def test_staff_can_cancel_any_order(self):
        order = _order_at_state(OrderStatus.APPROVED)
        order.cancel("staff-001", ActorRole.STAFF)
        assert order.status == OrderStatus.CANCELLED.value

    def test_provider_cannot_resolve_issues(self):
        order = _order_at_state(OrderStatus.RETURNED_WITH_ISSUE)
        with pytest.raises(UnauthorizedError):
            order.complete_return(OrderAction.RESOLVE_ISSUES, 0.0, "prov-001", PROVIDER)


# ---------------------------------------------------------------
# Cancellation and refunds
# ---------------------------------------------------------------
class TestCancellation:
    def test_unpaid_cancellation_needs_no_refund(self):
        order = _order_at_state(OrderStatus.PENDING)
        order.cancel("cust-001", ActorRole.CUSTOMER)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.refund_status == RefundStatus.NONE.value
        assert not any(isinstance(e, OrderRefundRequested) for e in order._events)

    def test_paid_cancellation_marks_refund_eligible(self):
        order = _make_order()
        order.approve(transaction_id="txn-001")
        order._events.clear()

        order.cancel("cust-001", ActorRole.CUSTOMER)

        assert order.refund_status == RefundStatus.ELIGIBLE.value
        refunds = [e for e in order._events if isinstance(e, OrderRefundRequested)]
        assert len(refunds) == 1
        assert refunds[0].amount == 100.0
        assert refunds[0].transaction_id == "txn-001"

    def test_payment_landing_after_cancellation_is_refunded(self):
        order = _order_at_state(OrderStatus.PENDING)
        order.cancel("cust-001", ActorRole.CUSTOMER)
        order._events.clear()

        order.record_payment_after_cancel("txn-002")

        assert order.transaction_id == "txn-002"
        assert order.refund_status == RefundStatus.ELIGIBLE.value
        [refund] = order._events
        assert isinstance(refund, OrderRefundRequested)
        assert refund.amount == 100.0

    def test_late_payment_needs_a_cancelled_unpaid_order(self):
        pending = _order_at_state(OrderStatus.PENDING)
        with pytest.raises(InvalidOperationError):
            pending.record_payment_after_cancel("txn-002")

        paid = _make_order()
        paid.approve(transaction_id="txn-001")
        paid.cancel("cust-001", ActorRole.CUSTOMER)
        with pytest.raises(InvalidOperationError):
            paid.record_payment_after_cancel("txn-002")


class TestTransitionTable:
    def test_every_action_has_a_row(self):
        assert set(TRANSITIONS) == set(OrderAction)

    def test_terminal_statuses_have_no_actions(self):
        assert available_actions(OrderStatus.RETURNED) == []
        assert available_actions(OrderStatus.CANCELLED) == []

    def test_pending_actions(self):
        assert set(available_actions(OrderStatus.PENDING)) == {OrderAction.APPROVE, OrderAction.CANCEL}
