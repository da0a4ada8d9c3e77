"""Payment gateway port.

A gateway builds the redirect URL a customer pays through and, later,
authenticates and decodes the callback it sends back. Callback parameters
are untrusted until ``verify_callback`` has passed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CallbackResult:
    """Decoded gateway callback."""

    transaction_id: str
    success: bool
    response_code: str
    amount: float | None = None
    gateway_reference: str | None = None


class PaymentGateway(ABC):
    name: str = "gateway"

    @abstractmethod
    def create_payment_url(self, transaction_id: str, amount: float, description: str, client_ip: str) -> str:
        """Return the URL the customer is redirected to for payment."""
        ...

    @abstractmethod
    def verify_callback(self, params: dict[str, str]) -> bool:
        """Recompute the callback checksum and compare it with the one supplied."""
        ...

    @abstractmethod
    def parse_callback(self, params: dict[str, str]) -> CallbackResult: ...
