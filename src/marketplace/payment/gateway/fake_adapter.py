"""Fake payment gateway for development and tests.

Signs callbacks with HMAC-SHA256 over the sorted ``key=value`` pairs and a
shared test secret, so tests can produce valid and tampered callbacks
without a real gateway.
"""

import hashlib
import hmac
from uuid import uuid4

from marketplace.payment.gateway.port import CallbackResult, PaymentGateway

SUCCESS_CODE = "00"


class FakeGateway(PaymentGateway):
    name = "fake"

    def __init__(self, secret: str = "test-secret") -> None:
        self.secret = secret
        self.calls: list[dict] = []

    def _digest(self, params: dict[str, str]) -> str:
        payload = "&".join(f"{k}={params[k]}" for k in sorted(params) if k != "signature")
        return hmac.new(self.secret.encode(), payload.encode(), hashlib.sha256).hexdigest()

    def signed_callback(self, transaction_id: str, amount: float, success: bool = True, **extra) -> dict[str, str]:
        """Build a callback payload the way the gateway would send it."""
        params = {
            "transaction_id": transaction_id,
            "amount": f"{amount:.2f}",
            "response_code": SUCCESS_CODE if success else "24",
            "gateway_reference": f"fake_{uuid4().hex[:12]}",
            **{k: str(v) for k, v in extra.items()},
        }
        params["signature"] = self._digest(params)
        return params

    def create_payment_url(self, transaction_id: str, amount: float, description: str, client_ip: str) -> str:
        self.calls.append(
            {
                "method": "create_payment_url",
                "transaction_id": transaction_id,
                "amount": amount,
                "description": description,
                "client_ip": client_ip,
            }
        )
        return f"https://pay.example.test/checkout?ref={transaction_id}&amount={amount:.2f}"

    def verify_callback(self, params: dict[str, str]) -> bool:
        supplied = params.get("signature") or ""
        return bool(supplied) and hmac.compare_digest(self._digest(params), supplied)

    def parse_callback(self, params: dict[str, str]) -> CallbackResult:
        return CallbackResult(
            transaction_id=params.get("transaction_id", ""),
            success=params.get("response_code") == SUCCESS_CODE,
            response_code=params.get("response_code", ""),
            amount=float(params["amount"]) if params.get("amount") else None,
            gateway_reference=params.get("gateway_reference"),
        )
