"""VNPay gateway adapter.

Request and callback parameters are signed with HMAC-SHA512 over the sorted,
URL-encoded ``vnp_*`` fields, excluding the hash fields themselves. Amounts
travel as integers in hundredths of the currency unit. The IPN is answered
with a ``{"RspCode", "Message"}`` body and HTTP 200 whatever the outcome.
"""

import hashlib
import hmac
from datetime import UTC, datetime, timedelta
from urllib.parse import quote_plus, urlencode

from marketplace.payment.gateway.port import CallbackResult, PaymentGateway

SUCCESS_CODE = "00"
HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")
VIETNAM_OFFSET = timedelta(hours=7)

CONFIRMED = ("00", "Confirm Success")
ALREADY_CONFIRMED = ("02", "Order already confirmed")
UNKNOWN_ERROR = ("99", "Unknown error")

# Callback outcome -> (RspCode, Message) VNPay expects back from the IPN.
# VNPay keeps retrying an IPN until it gets 00 or 02.
IPN_REPLIES = {
    "completed": CONFIRMED,
    "refund_requested": CONFIRMED,
    "failed": CONFIRMED,
    "duplicate": ALREADY_CONFIRMED,
    "late_payment": ALREADY_CONFIRMED,
    "not_found": ("01", "Order not found"),
    "amount_mismatch": ("04", "Invalid amount"),
    "invalid_signature": ("97", "Invalid signature"),
}


def canonical_query(params: dict[str, str]) -> str:
    fields = sorted((k, str(v)) for k, v in params.items() if k.startswith("vnp_") and k not in HASH_FIELDS and v != "")
    return urlencode(fields, quote_via=quote_plus)


def sign(params: dict[str, str], secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), canonical_query(params).encode("utf-8"), hashlib.sha512).hexdigest()


def ipn_reply(status: str) -> dict[str, str]:
    code, message = IPN_REPLIES.get(status, UNKNOWN_ERROR)
    return {"RspCode": code, "Message": message}


class VnpayGateway(PaymentGateway):
    name = "vnpay"

    def __init__(self, tmn_code: str, hash_secret: str, payment_url: str, return_url: str):
        self.tmn_code = tmn_code
        self.hash_secret = hash_secret
        self.payment_url = payment_url
        self.return_url = return_url

    def create_payment_url(self, transaction_id: str, amount: float, description: str, client_ip: str) -> str:
        created = datetime.now(UTC) + VIETNAM_OFFSET
        params = {
            "vnp_Version": "2.1.0",
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            "vnp_Amount": str(int(round(amount * 100))),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": transaction_id,
            "vnp_OrderInfo": description,
            "vnp_OrderType": "other",
            "vnp_Locale": "vn",
            "vnp_ReturnUrl": self.return_url,
            "vnp_IpAddr": client_ip,
            "vnp_CreateDate": created.strftime("%Y%m%d%H%M%S"),
            "vnp_ExpireDate": (created + timedelta(minutes=15)).strftime("%Y%m%d%H%M%S"),
        }
        query = canonical_query(params)
        return f"{self.payment_url}?{query}&vnp_SecureHash={sign(params, self.hash_secret)}"

    def verify_callback(self, params: dict[str, str]) -> bool:
        supplied = params.get("vnp_SecureHash") or ""
        if not supplied:
            return False
        return hmac.compare_digest(sign(params, self.hash_secret), supplied.lower())

    def parse_callback(self, params: dict[str, str]) -> CallbackResult:
        response_code = params.get("vnp_ResponseCode", "")
        status = params.get("vnp_TransactionStatus", response_code)
        raw_amount = params.get("vnp_Amount")
        return CallbackResult(
            transaction_id=params.get("vnp_TxnRef", ""),
            success=response_code == SUCCESS_CODE and status == SUCCESS_CODE,
            response_code=response_code,
            amount=int(raw_amount) / 100 if raw_amount else None,
            gateway_reference=params.get("vnp_TransactionNo"),
        )
