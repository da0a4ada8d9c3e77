"""Application tests for cart item commands."""

import pytest
from marketplace.cart.cart import Cart
from marketplace.cart.items import AddToCart, RemoveCartItem, UpdateCartItemQuantity
from protean import current_domain
from protean.exceptions import ValidationError


def _cart():
    return current_domain.repository_for(Cart).for_customer("customer-1")


class TestAddToCart:
    def test_creates_cart_lazily(self, add_to_cart):
        assert _cart() is None
        item_id = add_to_cart("dress-a", 2)
        cart = _cart()
        assert [str(i.id) for i in cart.items] == [item_id]
        assert cart.items[0].quantity == 2

    def test_reuses_existing_cart(self, add_to_cart):
        add_to_cart("dress-a")
        add_to_cart("suit-b", 1, "rental")
        assert len(current_domain.repository_for(Cart)._dao.query.all().items) == 1
        assert len(_cart().items) == 2

    def test_unknown_product_is_rejected(self, catalog):
        with pytest.raises(ValidationError) as exc:
            current_domain.process(
                AddToCart(customer_id="customer-1", product_id="missing", quantity=1, transaction_type="purchase"),
                asynchronous=False,
            )
        assert "product_id" in exc.value.messages

    def test_quantity_must_be_positive(self, catalog):
        with pytest.raises(ValidationError):
            AddToCart(customer_id="customer-1", product_id="dress-a", quantity=0, transaction_type="purchase")


class TestChangeCartItems:
    def test_update_quantity(self, add_to_cart):
        item_id = add_to_cart("dress-a")
        current_domain.process(
            UpdateCartItemQuantity(customer_id="customer-1", item_id=item_id, new_quantity=3),
            asynchronous=False,
        )
        assert _cart().items[0].quantity == 3

    def test_remove_item(self, add_to_cart):
        item_id = add_to_cart("dress-a")
        current_domain.process(RemoveCartItem(customer_id="customer-1", item_id=item_id), asynchronous=False)
        assert len(_cart().items) == 0

    def test_changes_without_cart_are_rejected(self, catalog):
        with pytest.raises(ValidationError) as exc:
            current_domain.process(RemoveCartItem(customer_id="customer-1", item_id="x"), asynchronous=False)
        assert "cart" in exc.value.messages
