"""Marketplace API package."""

from marketplace.api.errors import register_error_handlers
from marketplace.api.routes import (
    bank_account_router,
    cart_router,
    order_router,
    payment_router,
    payout_router,
    routers,
    violation_router,
)

__all__ = [
    "bank_account_router",
    "cart_router",
    "order_router",
    "payment_router",
    "payout_router",
    "register_error_handlers",
    "routers",
    "violation_router",
]
