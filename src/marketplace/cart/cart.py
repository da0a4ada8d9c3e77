"""Cart aggregate.

One cart per customer. Items reference catalog products and are only
revalidated (price, stock, provider) at checkout. Checkout removes the items
it turned into orders; the cart itself is never deleted. Rental lines carry
no dates: the rental window is chosen once, at checkout, for the whole cart.
"""

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from marketplace.cart.events import CartItemAdded, CartItemQuantityChanged, CartItemRemoved
from marketplace.catalog.port import TransactionType
from marketplace.domain import marketplace
from marketplace.shared.ledger import utc_now


@marketplace.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    transaction_type = String(required=True, choices=TransactionType)
    added_at = DateTime()

    @property
    def is_rental(self) -> bool:
        return self.transaction_type == TransactionType.RENTAL.value


@marketplace.aggregate
class Cart:
    customer_id = Identifier(required=True)
    items = HasMany(CartItem)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, customer_id):
        now = utc_now()
        return cls(customer_id=customer_id, created_at=now, updated_at=now)

    def find_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})
        return item

    def add_item(self, product_id, quantity, transaction_type):
        """Add a line, or grow the matching line (same product and kind)."""
        transaction_type = TransactionType(transaction_type)

        existing = next(
            (
                i
                for i in self.items
                if str(i.product_id) == str(product_id) and i.transaction_type == transaction_type.value
            ),
            None,
        )

        now = utc_now()
        if existing:
            existing.quantity += quantity
            item_id = str(existing.id)
        else:
            item = CartItem(
                product_id=product_id,
                quantity=quantity,
                transaction_type=transaction_type.value,
                added_at=now,
            )
            self.add_items(item)
            item_id = str(item.id)

        self.updated_at = now
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                customer_id=str(self.customer_id),
                item_id=item_id,
                product_id=str(product_id),
                transaction_type=transaction_type.value,
                quantity=quantity,
            )
        )
        return item_id

    def update_item_quantity(self, item_id, new_quantity):
        item = self.find_item(item_id)
        previous_quantity = item.quantity
        item.quantity = new_quantity
        self.updated_at = utc_now()

        self.raise_(
            CartItemQuantityChanged(
                cart_id=str(self.id),
                item_id=str(item_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
        )

    def remove_item(self, item_id):
        item = self.find_item(item_id)
        self.remove_items(item)
        self.updated_at = utc_now()
        self.raise_(CartItemRemoved(cart_id=str(self.id), item_id=str(item_id)))

    def checkout_items(self, item_ids):
        """Drop the lines that became an order. No per-line events: OrderPlaced covers them."""
        wanted = {str(i) for i in item_ids}
        for item in [i for i in self.items if str(i.id) in wanted]:
            self.remove_items(item)
        self.updated_at = utc_now()


@marketplace.repository(part_of=Cart)
class CartRepository:
    def for_customer(self, customer_id) -> Cart | None:
        carts = self._dao.query.filter(customer_id=customer_id).all().items
        return carts[0] if carts else None
