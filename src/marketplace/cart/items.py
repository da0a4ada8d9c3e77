"""Cart item management: commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.catalog import get_catalog
from marketplace.catalog.port import TransactionType
from marketplace.domain import marketplace


@marketplace.command(part_of="Cart")
class AddToCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    transaction_type = String(required=True, choices=TransactionType)


@marketplace.command(part_of="Cart")
class UpdateCartItemQuantity:
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    new_quantity = Integer(required=True, min_value=1)


@marketplace.command(part_of="Cart")
class RemoveCartItem:
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)


def _cart_for(repo, customer_id) -> Cart:
    cart = repo.for_customer(customer_id)
    if cart is None:
        raise ValidationError({"cart": ["Customer has no cart"]})
    return cart


@marketplace.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        if get_catalog().get_product(command.product_id) is None:
            raise ValidationError({"product_id": ["Unknown product"]})

        repo = current_domain.repository_for(Cart)
        cart = repo.for_customer(command.customer_id) or Cart.create(command.customer_id)
        item_id = cart.add_item(
            product_id=command.product_id,
            quantity=command.quantity,
            transaction_type=command.transaction_type,
        )
        repo.add(cart)
        return item_id

    @handle(UpdateCartItemQuantity)
    def update_cart_item_quantity(self, command):
        repo = current_domain.repository_for(Cart)
        cart = _cart_for(repo, command.customer_id)
        cart.update_item_quantity(command.item_id, command.new_quantity)
        repo.add(cart)

    @handle(RemoveCartItem)
    def remove_cart_item(self, command):
        repo = current_domain.repository_for(Cart)
        cart = _cart_for(repo, command.customer_id)
        cart.remove_item(command.item_id)
        repo.add(cart)
