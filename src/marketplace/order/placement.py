"""Provider-order placement: one order plus the cart lines it consumed.

Dispatched by the checkout orchestrator once per provider group after stock
has been taken. Order creation and cart-line removal share this handler's
unit of work, so either both are committed or neither is.
"""

import json

from protean import handle
from protean.fields import DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.domain import marketplace
from marketplace.order.order import ContactSnapshot, Order
from marketplace.shared.ledger import RentalPeriod


@marketplace.command(part_of="Order")
class PlaceProviderOrder:
    customer_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of priced item snapshots
    cart_item_ids = Text(required=True)  # JSON list
    rental_start = DateTime(required=True)
    rental_end = DateTime(required=True)
    full_name = String(required=True, max_length=255)
    phone = String(required=True, max_length=30)
    email = String(max_length=255)
    address = String(required=True, max_length=500)
    note = Text()
    discount_code = String(max_length=50)
    discount_amount = Float(default=0.0, min_value=0.0)


@marketplace.command_handler(part_of=Order)
class PlaceProviderOrderHandler:
    @handle(PlaceProviderOrder)
    def place_provider_order(self, command):
        order = Order.place(
            customer_id=command.customer_id,
            provider_id=command.provider_id,
            items_data=json.loads(command.items),
            rental_period=RentalPeriod(start=command.rental_start, end=command.rental_end),
            contact=ContactSnapshot(
                full_name=command.full_name,
                phone=command.phone,
                email=command.email,
                address=command.address,
                note=command.note,
            ),
            discount_amount=command.discount_amount,
            discount_code=command.discount_code,
        )
        current_domain.repository_for(Order).add(order)

        cart_repo = current_domain.repository_for(Cart)
        cart = cart_repo.for_customer(command.customer_id)
        if cart is not None:
            cart.checkout_items(json.loads(command.cart_item_ids))
            cart_repo.add(cart)

        return str(order.id)
