"""Domain events for the Cart aggregate."""

from protean.fields import Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Cart")
class CartItemAdded:
    __version__ = 1

    cart_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    transaction_type = String(required=True)
    quantity = Integer(required=True)


@marketplace.event(part_of="Cart")
class CartItemQuantityChanged:
    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@marketplace.event(part_of="Cart")
class CartItemRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
