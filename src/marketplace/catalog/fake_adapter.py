"""In-memory catalog for development and tests.

Stock is tracked per (product, transaction type). Decrements are a
compare-and-decrement under a mutex, so concurrent checkouts can never take
the same unit twice.
"""

import threading

from marketplace.catalog.port import Catalog, DiscountCode, ProductSnapshot, TransactionType

DEFAULT_COMMISSION_RATES = {
    TransactionType.PURCHASE: 10.0,
    TransactionType.RENTAL: 20.0,
}


class FakeCatalog(Catalog):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.products: dict[str, ProductSnapshot] = {}
        self.stock: dict[tuple[str, TransactionType], int] = {}
        self.commission_rates: dict[TransactionType, float] = dict(DEFAULT_COMMISSION_RATES)
        self.discounts: dict[str, DiscountCode] = {}
        self.redemptions: list[str] = []

    def add_product(
        self,
        product: ProductSnapshot,
        purchase_stock: int = 0,
        rental_stock: int = 0,
    ) -> ProductSnapshot:
        with self._lock:
            self.products[product.product_id] = product
            self.stock[(product.product_id, TransactionType.PURCHASE)] = purchase_stock
            self.stock[(product.product_id, TransactionType.RENTAL)] = rental_stock
        return product

    def update_product(self, product_id: str, **changes) -> ProductSnapshot:
        """Replace a product's terms, the way a provider edit would."""
        current = self.products[product_id]
        updated = ProductSnapshot(**{**current.__dict__, **changes})
        self.products[product_id] = updated
        return updated

    def add_discount(self, discount: DiscountCode) -> None:
        self.discounts[discount.code.upper()] = discount

    def get_product(self, product_id: str) -> ProductSnapshot | None:
        return self.products.get(product_id)

    def commission_rate(self, transaction_type: TransactionType) -> float:
        return self.commission_rates[transaction_type]

    def available_stock(self, product_id: str, transaction_type: TransactionType) -> int:
        return self.stock.get((product_id, transaction_type), 0)

    def decrement_stock(self, product_id: str, transaction_type: TransactionType, quantity: int) -> bool:
        key = (product_id, transaction_type)
        with self._lock:
            available = self.stock.get(key, 0)
            if quantity > available:
                return False
            self.stock[key] = available - quantity
            return True

    def restore_stock(self, product_id: str, transaction_type: TransactionType, quantity: int) -> None:
        key = (product_id, transaction_type)
        with self._lock:
            self.stock[key] = self.stock.get(key, 0) + quantity

    def get_discount(self, code: str) -> DiscountCode | None:
        return self.discounts.get(code.upper())

    def redeem_discount(self, code: str) -> None:
        with self._lock:
            self.redemptions.append(code.upper())
            discount = self.discounts.get(code.upper())
            if discount and discount.remaining_uses is not None:
                self.discounts[code.upper()] = DiscountCode(
                    code=discount.code,
                    discount_type=discount.discount_type,
                    value=discount.value,
                    expires_at=discount.expires_at,
                    remaining_uses=discount.remaining_uses - 1,
                )
