"""Catalog port.

The marketplace does not own products. Prices, deposits, stock counts,
commission rates and discount codes are read through this interface, and
stock is decremented/restored through it at checkout and cancellation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TransactionType(Enum):
    PURCHASE = "purchase"
    RENTAL = "rental"


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class ProductSnapshot:
    """Current commercial terms of a product."""

    product_id: str
    provider_id: str
    name: str
    purchase_price: float
    rental_price_per_day: float
    deposit_per_unit: float
    size: str | None = None
    color: str | None = None


@dataclass(frozen=True)
class DiscountCode:
    code: str
    discount_type: DiscountType
    value: float
    expires_at: datetime | None = None
    remaining_uses: int | None = None


class Catalog(ABC):
    @abstractmethod
    def get_product(self, product_id: str) -> ProductSnapshot | None: ...

    @abstractmethod
    def commission_rate(self, transaction_type: TransactionType) -> float:
        """Marketplace commission, in percent, for the given transaction type."""
        ...

    @abstractmethod
    def available_stock(self, product_id: str, transaction_type: TransactionType) -> int: ...

    @abstractmethod
    def decrement_stock(self, product_id: str, transaction_type: TransactionType, quantity: int) -> bool:
        """Atomically take ``quantity`` units; return False (and change nothing) if fewer are available."""
        ...

    @abstractmethod
    def restore_stock(self, product_id: str, transaction_type: TransactionType, quantity: int) -> None: ...

    @abstractmethod
    def get_discount(self, code: str) -> DiscountCode | None: ...

    @abstractmethod
    def redeem_discount(self, code: str) -> None:
        """Record one use of a discount code."""
        ...
