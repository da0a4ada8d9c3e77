"""Marketplace error taxonomy.

Input-shape problems use Protean's own ``ValidationError`` and state-rule
violations that are not transitions use ``InvalidOperationError``; both are
raised directly from aggregates and handlers. The classes below cover the
remaining business failures. Each carries a stable, user-facing ``message``
and the HTTP status the API maps it to.
"""


class MarketplaceError(Exception):
    code = "marketplace_error"
    status_code = 400
    default_message = "The request could not be completed"

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class EmptyCartError(MarketplaceError):
    code = "empty_cart"
    default_message = "Cart is empty"


class StockUnavailableError(MarketplaceError):
    code = "stock_unavailable"
    status_code = 409
    default_message = "Requested quantity is no longer in stock"


class NoValidOrdersError(MarketplaceError):
    code = "no_valid_orders"
    default_message = "None of the given orders can be paid"


class InvalidSignatureError(MarketplaceError):
    """Callback checksum mismatch. The message never echoes callback content."""

    code = "invalid_signature"
    status_code = 401
    default_message = "Invalid signature"


class InvalidTransitionError(MarketplaceError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot {requested} an order in status {current}",
            current=current,
            requested=requested,
        )

    def to_dict(self) -> dict:
        return {**super().to_dict(), "current": self.current, "requested": self.requested}


class UnauthorizedError(MarketplaceError):
    code = "unauthorized"
    status_code = 403
    default_message = "Not allowed to act on this resource"


class PenaltyExceedsDepositError(MarketplaceError):
    code = "penalty_exceeds_deposit"
    default_message = "Total penalty exceeds the item's deposit"


class InvalidAmountError(MarketplaceError):
    code = "invalid_amount"
    default_message = "Amount must be greater than zero"


class InsufficientBalanceError(MarketplaceError):
    code = "insufficient_balance"
    status_code = 409
    default_message = "Requested amount exceeds the available balance"


class ConcurrentUpdateError(MarketplaceError):
    code = "concurrent_update"
    status_code = 409
    default_message = "Another request changed this resource first; retry"


class InternalError(MarketplaceError):
    code = "internal_error"
    status_code = 500
    default_message = "An internal error occurred"
