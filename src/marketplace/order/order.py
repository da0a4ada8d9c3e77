"""Order aggregate.

An order belongs to exactly one customer and one provider. Items, prices,
deposits and commissions are frozen when the order is placed; after that the
order only changes through the state machine in ``state_machine.py`` and
through deposit settlement.
"""

from enum import Enum

from protean import invariant
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from marketplace.catalog.port import TransactionType
from marketplace.domain import marketplace
from marketplace.exceptions import InvalidTransitionError, UnauthorizedError
from marketplace.order.events import DepositSettled, OrderPlaced, OrderRefundRequested, OrderStatusChanged
from marketplace.order.state_machine import (
    SETTLING_ACTIONS,
    TRANSITIONS,
    ActorRole,
    OrderAction,
    OrderStatus,
)
from marketplace.shared.ledger import DEFAULT_CURRENCY, RentalPeriod, round_money, sum_money, utc_now


class RefundStatus(Enum):
    NONE = "none"
    ELIGIBLE = "eligible"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class ContactSnapshot:
    """Delivery contact captured at checkout. Later profile edits do not touch it."""

    full_name = String(required=True, max_length=255)
    phone = String(required=True, max_length=30)
    email = String(max_length=255)
    address = String(required=True, max_length=500)
    note = Text()


@marketplace.value_object(part_of="Order")
class OrderPricing:
    subtotal = Float(default=0.0, min_value=0.0)
    discount_amount = Float(default=0.0, min_value=0.0)
    total_amount = Float(default=0.0, min_value=0.0)
    total_deposit = Float(default=0.0, min_value=0.0)
    currency = String(max_length=3, default=DEFAULT_CURRENCY)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderItem:
    """A product snapshot: price, deposit and commission as they were at checkout."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    transaction_type = String(required=True, choices=TransactionType)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    rental_days = Integer(default=0, min_value=0)
    line_total = Float(required=True, min_value=0.0)
    deposit_per_unit = Float(default=0.0, min_value=0.0)
    commission_rate = Float(required=True, min_value=0.0, max_value=100.0)
    commission_amount = Float(required=True, min_value=0.0)

    @property
    def deposit_total(self) -> float:
        return round_money(self.deposit_per_unit * self.quantity)

    @property
    def provider_earning(self) -> float:
        return round_money(self.line_total - self.commission_amount)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    customer_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    items = HasMany(OrderItem)
    pricing = ValueObject(OrderPricing)
    discount_code = String(max_length=50)
    rental_period = ValueObject(RentalPeriod)
    contact = ValueObject(ContactSnapshot)
    transaction_id = Identifier()
    refund_status = String(choices=RefundStatus, default=RefundStatus.NONE.value)

    deposit_penalty_total = Float(default=0.0)
    deposit_refund_amount = Float(default=0.0)
    deposit_settled_at = DateTime()

    created_at = DateTime()
    updated_at = DateTime()
    approved_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    returning_at = DateTime()
    returned_at = DateTime()
    resolved_at = DateTime()
    cancelled_at = DateTime()

    @invariant.post
    def total_must_equal_subtotal_less_discount(self):
        if self.pricing is None:
            return
        expected = round_money(self.pricing.subtotal - self.pricing.discount_amount)
        if round_money(self.pricing.total_amount) != expected:
            raise ValidationError({"pricing": ["Total amount must equal subtotal minus discount"]})

    @invariant.post
    def discount_cannot_exceed_subtotal(self):
        if self.pricing and self.pricing.discount_amount > self.pricing.subtotal:
            raise ValidationError({"discount_amount": ["Discount cannot exceed the subtotal"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id,
        provider_id,
        items_data,
        rental_period: RentalPeriod,
        contact: ContactSnapshot,
        discount_amount=0.0,
        discount_code=None,
    ):
        """Create a pending order from priced item snapshots.

        Args:
            items_data: dicts with product_id, product_name, transaction_type,
                quantity, unit_price, rental_days, line_total, deposit_per_unit,
                commission_rate, commission_amount.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = utc_now()
        items = [OrderItem(**data) for data in items_data]
        subtotal = sum_money(i.line_total for i in items)
        discount_amount = round_money(discount_amount or 0.0)

        order = cls(
            customer_id=customer_id,
            provider_id=provider_id,
            status=OrderStatus.PENDING.value,
            items=items,
            pricing=OrderPricing(
                subtotal=subtotal,
                discount_amount=discount_amount,
                total_amount=round_money(subtotal - discount_amount),
                total_deposit=sum_money(i.deposit_total for i in items),
            ),
            discount_code=discount_code,
            rental_period=rental_period,
            contact=contact,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(customer_id),
                provider_id=str(provider_id),
                item_count=len(items),
                total_amount=order.pricing.total_amount,
                total_deposit=order.pricing.total_deposit,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_deposit_settled(self) -> bool:
        return self.deposit_settled_at is not None

    def find_item(self, item_id) -> OrderItem:
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"order_item_id": [f"Item {item_id} does not belong to this order"]})
        return item

    def is_visible_to(self, actor_id, role: ActorRole) -> bool:
        if role in (ActorRole.STAFF, ActorRole.SYSTEM):
            return True
        if role == ActorRole.CUSTOMER:
            return str(self.customer_id) == str(actor_id)
        return str(self.provider_id) == str(actor_id)

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _authorize(self, transition, actor_id, role: ActorRole):
        if role not in transition.actors or not self.is_visible_to(actor_id, role):
            raise UnauthorizedError()

    def apply_action(self, action: OrderAction, actor_id=None, role: ActorRole = ActorRole.SYSTEM):
        """Run ``action`` through the transition table.

        Raises UnauthorizedError when the actor may not trigger it and
        InvalidTransitionError when the current status is not a legal source.
        """
        action = OrderAction(action)
        transition = TRANSITIONS[action]
        self._authorize(transition, actor_id, role)

        current = self.current_status
        if current not in transition.sources:
            raise InvalidTransitionError(current=current.value, requested=action.value)

        now = utc_now()
        self.status = transition.target.value
        setattr(self, transition.stamps, now)
        self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                provider_id=str(self.provider_id),
                action=action.value,
                from_status=current.value,
                to_status=transition.target.value,
                actor_role=role.value,
                changed_at=now,
            )
        )

    def approve(self, actor_id=None, role: ActorRole = ActorRole.SYSTEM, transaction_id=None):
        self.apply_action(OrderAction.APPROVE, actor_id, role)
        if transaction_id:
            self.transaction_id = transaction_id

    def cancel(self, actor_id, role: ActorRole):
        self.apply_action(OrderAction.CANCEL, actor_id, role)

        if self.transaction_id:
            self._request_refund(self.cancelled_at)

    def record_payment_after_cancel(self, transaction_id):
        """A payment for this order was captured after it had been cancelled."""
        if self.current_status != OrderStatus.CANCELLED:
            raise InvalidOperationError("Only a cancelled order can take a late payment")
        if self.transaction_id:
            raise InvalidOperationError("Order is already linked to a payment")
        self.transaction_id = transaction_id
        self._request_refund(utc_now())

    def _request_refund(self, requested_at):
        self.refund_status = RefundStatus.ELIGIBLE.value
        self.raise_(
            OrderRefundRequested(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                transaction_id=str(self.transaction_id),
                amount=self.pricing.total_amount,
                requested_at=requested_at,
            )
        )

    def complete_return(self, action: OrderAction, penalty_total, actor_id=None, role=ActorRole.SYSTEM):
        """mark_returned / resolve_issues: reach RETURNED and settle the deposit."""
        if action not in SETTLING_ACTIONS:
            raise InvalidOperationError(f"{action.value} does not complete a return")
        self.apply_action(action, actor_id, role)
        self._settle_deposit(penalty_total)

    def _settle_deposit(self, penalty_total):
        if self.is_deposit_settled:
            raise InvalidOperationError("Deposit has already been settled")

        deposit = self.pricing.total_deposit
        penalty_total = round_money(min(penalty_total, deposit))
        now = utc_now()

        self.deposit_penalty_total = penalty_total
        self.deposit_refund_amount = round_money(deposit - penalty_total)
        self.deposit_settled_at = now

        self.raise_(
            DepositSettled(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                provider_id=str(self.provider_id),
                total_deposit=deposit,
                penalty_total=penalty_total,
                refund_amount=self.deposit_refund_amount,
                settled_at=now,
            )
        )


@marketplace.repository(part_of=Order)
class OrderRepository:
    def for_customer(self, customer_id) -> list[Order]:
        orders = self._dao.query.filter(customer_id=customer_id).all().items
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def for_provider(self, provider_id) -> list[Order]:
        orders = self._dao.query.filter(provider_id=provider_id).all().items
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def settled_for_provider(self, provider_id) -> list[Order]:
        orders = self._dao.query.filter(provider_id=provider_id, status=OrderStatus.RETURNED.value).all().items
        return [o for o in orders if o.is_deposit_settled]
