"""Checkout: turn a customer's cart into one order per provider.

The cart is partitioned by provider and each group is an independent unit:

1. Price every cart line from the catalog's current terms (frozen into the order).
2. Take stock for each group with compare-and-decrement. A group that cannot
   be fully served is released and reported; other groups carry on.
3. Split the discount across the groups that got their stock, in proportion
   to their subtotals.
4. Place each group's order in its own unit of work, which also removes the
   group's lines from the cart. A group whose placement fails gets its stock
   back and is reported like an out-of-stock group; the checkout only fails
   when no order at all was placed. The discount is redeemed once if any
   placed order carries a share of it.

Lines belonging to a provider whose stock check or placement failed stay in
the cart.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.catalog import get_catalog
from marketplace.catalog.port import Catalog, DiscountCode, DiscountType, TransactionType
from marketplace.exceptions import EmptyCartError, InternalError, StockUnavailableError
from marketplace.moderation import ensure_acceptable
from marketplace.order.order import ContactSnapshot, Order
from marketplace.order.placement import PlaceProviderOrder
from marketplace.shared.ledger import (
    RentalPeriod,
    allocate_proportionally,
    as_naive_utc,
    percentage_of,
    round_money,
    sum_money,
    utc_now,
)
from marketplace.utils.locks import customer_key, locked

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutRequest:
    rental_start: datetime
    rental_end: datetime
    agreed_to_policies: bool
    full_name: str
    phone: str
    address: str
    email: str | None = None
    note: str | None = None
    discount_code: str | None = None


@dataclass(frozen=True)
class PricedLine:
    cart_item_id: str
    product_id: str
    transaction_type: TransactionType
    quantity: int
    snapshot: dict


@dataclass
class ProviderGroup:
    provider_id: str
    lines: list[PricedLine] = field(default_factory=list)

    @property
    def subtotal(self) -> float:
        return sum_money(line.snapshot["line_total"] for line in self.lines)


@dataclass(frozen=True)
class ProviderFailure:
    provider_id: str
    code: str
    message: str


@dataclass
class CheckoutResult:
    orders: list[Order]
    failures: list[ProviderFailure] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure steps
# ---------------------------------------------------------------------------
def validate_request(request: CheckoutRequest) -> tuple[RentalPeriod, ContactSnapshot]:
    if not request.agreed_to_policies:
        raise ValidationError({"agreed_to_policies": ["Rental policies must be accepted"]})
    if as_naive_utc(request.rental_end) <= as_naive_utc(request.rental_start):
        raise ValidationError({"rental_end": ["Rental end must be after rental start"]})
    ensure_acceptable("note", request.note)

    period = RentalPeriod(start=request.rental_start, end=request.rental_end)
    contact = ContactSnapshot(
        full_name=request.full_name,
        phone=request.phone,
        email=request.email,
        address=request.address,
        note=request.note,
    )
    return period, contact


def price_line(item, catalog: Catalog, rental_days: int) -> tuple[str, PricedLine]:
    """Price one cart line from the catalog's current terms; returns (provider_id, line)."""
    product = catalog.get_product(str(item.product_id))
    if product is None:
        raise ValidationError({"product_id": [f"Product {item.product_id} is no longer available"]})

    transaction_type = TransactionType(item.transaction_type)
    if transaction_type == TransactionType.RENTAL:
        unit_price, days, deposit = product.rental_price_per_day, rental_days, product.deposit_per_unit
        line_total = round_money(unit_price * days * item.quantity)
    else:
        unit_price, days, deposit = product.purchase_price, 0, 0.0
        line_total = round_money(unit_price * item.quantity)

    rate = catalog.commission_rate(transaction_type)
    snapshot = {
        "product_id": product.product_id,
        "product_name": product.name,
        "transaction_type": transaction_type.value,
        "quantity": item.quantity,
        "unit_price": round_money(unit_price),
        "rental_days": days,
        "line_total": line_total,
        "deposit_per_unit": round_money(deposit),
        "commission_rate": rate,
        "commission_amount": percentage_of(line_total, rate),
    }
    line = PricedLine(
        cart_item_id=str(item.id),
        product_id=product.product_id,
        transaction_type=transaction_type,
        quantity=item.quantity,
        snapshot=snapshot,
    )
    return product.provider_id, line


def group_by_provider(priced: list[tuple[str, PricedLine]]) -> list[ProviderGroup]:
    """Partition priced lines by provider, keeping first-seen provider order."""
    groups: dict[str, ProviderGroup] = {}
    for provider_id, line in priced:
        groups.setdefault(provider_id, ProviderGroup(provider_id=provider_id)).lines.append(line)
    return list(groups.values())


def lookup_discount(code: str | None, catalog: Catalog) -> DiscountCode | None:
    if not code:
        return None
    discount = catalog.get_discount(code)
    if discount is None:
        raise ValidationError({"discount_code": ["Unknown discount code"]})
    if discount.expires_at and as_naive_utc(discount.expires_at) <= as_naive_utc(utc_now()):
        raise ValidationError({"discount_code": ["Discount code has expired"]})
    if discount.remaining_uses is not None and discount.remaining_uses <= 0:
        raise ValidationError({"discount_code": ["Discount code has been fully used"]})
    return discount


def discount_amount(discount: DiscountCode | None, subtotal: float) -> float:
    if discount is None:
        return 0.0
    if DiscountType(discount.discount_type) == DiscountType.PERCENTAGE:
        amount = percentage_of(subtotal, discount.value)
    else:
        amount = round_money(discount.value)
    return round_money(min(amount, subtotal))


# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------
def take_stock(group: ProviderGroup, catalog: Catalog) -> None:
    """Decrement stock for every line of the group, or for none of them."""
    taken: list[PricedLine] = []
    for line in group.lines:
        if not catalog.decrement_stock(line.product_id, line.transaction_type, line.quantity):
            release_stock(taken, catalog)
            raise StockUnavailableError(
                f"Product {line.product_id} does not have {line.quantity} unit(s) available",
                provider_id=group.provider_id,
                product_id=line.product_id,
            )
        taken.append(line)


def release_stock(lines: list[PricedLine], catalog: Catalog) -> None:
    for line in lines:
        catalog.restore_stock(line.product_id, line.transaction_type, line.quantity)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------
def checkout(customer_id, request: CheckoutRequest) -> CheckoutResult:
    period, contact = validate_request(request)
    catalog = get_catalog()

    with locked(customer_key(customer_id)):
        cart = current_domain.repository_for(Cart).for_customer(customer_id)
        if cart is None or not cart.items:
            raise EmptyCartError()

        groups = group_by_provider([price_line(item, catalog, period.days) for item in cart.items])
        discount = lookup_discount(request.discount_code, catalog)

        reserved: list[ProviderGroup] = []
        failures: list[ProviderFailure] = []
        for group in groups:
            try:
                take_stock(group, catalog)
            except StockUnavailableError as exc:
                logger.warning("Provider group out of stock", customer_id=str(customer_id), **exc.context)
                failures.append(ProviderFailure(group.provider_id, exc.code, exc.message))
            else:
                reserved.append(group)

        if not reserved:
            raise StockUnavailableError(failures[0].message if failures else None)

        total_discount = discount_amount(discount, sum_money(g.subtotal for g in reserved))
        shares = allocate_proportionally(total_discount, [g.subtotal for g in reserved])

        order_ids = []
        discount_used = False
        first_error = None
        for group, share in zip(reserved, shares, strict=True):
            try:
                order_ids.append(_place(customer_id, group, share, discount, period, contact))
            except Exception as exc:
                release_stock(group.lines, catalog)
                logger.error(
                    "Order placement failed",
                    customer_id=str(customer_id),
                    provider_id=group.provider_id,
                    placed=len(order_ids),
                    exc_info=True,
                )
                failures.append(_placement_failure(group, exc))
                first_error = first_error or exc
            else:
                discount_used = discount_used or share > 0

        if not order_ids:
            if isinstance(first_error, ValidationError):
                raise first_error
            raise InternalError() from first_error

        if discount is not None and discount_used:
            catalog.redeem_discount(discount.code)

    repo = current_domain.repository_for(Order)
    orders = [repo.get(order_id) for order_id in order_ids]
    logger.info(
        "Checkout completed",
        customer_id=str(customer_id),
        orders=len(orders),
        failed_providers=len(failures),
    )
    return CheckoutResult(orders=orders, failures=failures)


def _place(customer_id, group: ProviderGroup, share, discount, period: RentalPeriod, contact: ContactSnapshot) -> str:
    return current_domain.process(
        PlaceProviderOrder(
            customer_id=customer_id,
            provider_id=group.provider_id,
            items=json.dumps([line.snapshot for line in group.lines]),
            cart_item_ids=json.dumps([line.cart_item_id for line in group.lines]),
            rental_start=period.start,
            rental_end=period.end,
            full_name=contact.full_name,
            phone=contact.phone,
            email=contact.email,
            address=contact.address,
            note=contact.note,
            discount_code=discount.code if discount and share > 0 else None,
            discount_amount=share,
        ),
        asynchronous=False,
    )


def _placement_failure(group: ProviderGroup, exc: Exception) -> ProviderFailure:
    if isinstance(exc, ValidationError):
        return ProviderFailure(group.provider_id, "invalid_order", "; ".join(_flatten(exc.messages)))
    error = InternalError()
    return ProviderFailure(group.provider_id, error.code, error.message)


def _flatten(messages: dict) -> list[str]:
    return [f"{field}: {message}" for field, errors in messages.items() for message in errors]
