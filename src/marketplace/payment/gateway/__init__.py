"""Payment gateway factory.

get_gateway() returns the VNPay adapter when VNPAY_HASH_SECRET is configured
and the FakeGateway otherwise. set_gateway() overrides it (tests).
"""

import os

from marketplace.payment.gateway.fake_adapter import FakeGateway
from marketplace.payment.gateway.port import PaymentGateway
from marketplace.payment.gateway.vnpay_adapter import VnpayGateway

_current_gateway: PaymentGateway | None = None


def gateway_from_env() -> PaymentGateway:
    secret = os.getenv("VNPAY_HASH_SECRET")
    if not secret:
        return FakeGateway()
    return VnpayGateway(
        tmn_code=os.environ["VNPAY_TMN_CODE"],
        hash_secret=secret,
        payment_url=os.getenv("VNPAY_PAYMENT_URL", "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"),
        return_url=os.getenv("VNPAY_RETURN_URL", "http://localhost:8000/payments/return"),
    )


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = gateway_from_env()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
