"""Pydantic request/response schemas for the marketplace API.

These are external contracts, kept separate from the Protean commands they
are translated into.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from marketplace.catalog.port import TransactionType
from marketplace.violation.violation import ViolationType


# ---------------------------------------------------------------------------
# Cart & checkout
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    transaction_type: TransactionType


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(ge=1)


class CartItemIdResponse(BaseModel):
    item_id: str


class CheckoutRequestSchema(BaseModel):
    rental_start: datetime
    rental_end: datetime
    agreed_to_policies: bool
    full_name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=1, max_length=30)
    address: str = Field(min_length=1, max_length=500)
    email: str | None = None
    note: str | None = None
    discount_code: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "rental_start": "2026-11-01T09:00:00Z",
                    "rental_end": "2026-11-04T09:00:00Z",
                    "agreed_to_policies": True,
                    "full_name": "Tran Thi Mai",
                    "phone": "0901234567",
                    "address": "12 Le Loi, District 1, Ho Chi Minh City",
                    "discount_code": "WELCOME10",
                }
            ]
        }
    }


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    product_name: str
    transaction_type: str
    quantity: int
    unit_price: float
    rental_days: int
    line_total: float
    deposit_per_unit: float
    commission_rate: float
    commission_amount: float


class OrderResponse(BaseModel):
    id: str
    customer_id: str
    provider_id: str
    status: str
    subtotal: float
    discount_amount: float
    total_amount: float
    total_deposit: float
    discount_code: str | None = None
    transaction_id: str | None = None
    refund_status: str
    deposit_refund_amount: float
    deposit_penalty_total: float
    deposit_settled_at: datetime | None = None
    delivered_at: datetime | None = None
    returned_at: datetime | None = None
    created_at: datetime | None = None
    items: list[OrderItemResponse]

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=str(order.id),
            customer_id=str(order.customer_id),
            provider_id=str(order.provider_id),
            status=order.status,
            subtotal=order.pricing.subtotal,
            discount_amount=order.pricing.discount_amount,
            total_amount=order.pricing.total_amount,
            total_deposit=order.pricing.total_deposit,
            discount_code=order.discount_code,
            transaction_id=str(order.transaction_id) if order.transaction_id else None,
            refund_status=order.refund_status,
            deposit_refund_amount=order.deposit_refund_amount or 0.0,
            deposit_penalty_total=order.deposit_penalty_total or 0.0,
            deposit_settled_at=order.deposit_settled_at,
            delivered_at=order.delivered_at,
            returned_at=order.returned_at,
            created_at=order.created_at,
            items=[
                OrderItemResponse(
                    id=str(item.id),
                    product_id=str(item.product_id),
                    product_name=item.product_name,
                    transaction_type=item.transaction_type,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    rental_days=item.rental_days or 0,
                    line_total=item.line_total,
                    deposit_per_unit=item.deposit_per_unit,
                    commission_rate=item.commission_rate,
                    commission_amount=item.commission_amount,
                )
                for item in order.items
            ],
        )


class ProviderFailureResponse(BaseModel):
    provider_id: str
    code: str
    message: str


class CheckoutResponse(BaseModel):
    orders: list[OrderResponse]
    failures: list[ProviderFailureResponse] = []


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class CreatePaymentRequestSchema(BaseModel):
    order_ids: list[str] = Field(min_length=1)
    note: str | None = None


class PaymentUrlResponse(BaseModel):
    transaction_id: str
    payment_url: str
    amount: float
    order_ids: list[str]


class CallbackResponse(BaseModel):
    status: str
    transaction_id: str
    approved_order_ids: list[str] = []
    refunded_order_ids: list[str] = []
    skipped_order_ids: list[str] = []
    refund_amount: float = 0.0


class IpnAcknowledgement(BaseModel):
    """VNPay's IPN reply contract; the field names are fixed by VNPay."""

    RspCode: str
    Message: str


class ExpireStaleRequest(BaseModel):
    older_than_minutes: int = Field(default=15, ge=1)


class ExpiredCountResponse(BaseModel):
    expired: int


# ---------------------------------------------------------------------------
# Violations
# ---------------------------------------------------------------------------
class ViolationLine(BaseModel):
    order_item_id: str
    violation_type: ViolationType
    description: str = Field(min_length=1)
    penalty_percentage: float | None = None
    penalty_amount: float | None = None
    damage_percentage: float | None = Field(default=None, ge=0, le=100)
    evidence_urls: list[str] = []


class CreateViolationsRequest(BaseModel):
    violations: list[ViolationLine] = Field(min_length=1)


class UpdateViolationRequest(BaseModel):
    violation_type: ViolationType | None = None
    description: str | None = None
    penalty_percentage: float | None = None
    penalty_amount: float | None = None
    evidence_urls: list[str] = []


class RespondToViolationRequest(BaseModel):
    accept: bool
    notes: str | None = None


class ViolationResponse(BaseModel):
    id: str
    order_id: str
    order_item_id: str
    violation_type: str
    description: str
    penalty_percentage: float
    penalty_amount: float
    status: str
    customer_notes: str | None = None
    evidence_urls: list[str] = []

    @classmethod
    def from_violation(cls, violation) -> "ViolationResponse":
        return cls(
            id=str(violation.id),
            order_id=str(violation.order_id),
            order_item_id=str(violation.order_item_id),
            violation_type=violation.violation_type,
            description=violation.description,
            penalty_percentage=violation.penalty_percentage,
            penalty_amount=violation.penalty_amount,
            status=violation.status,
            customer_notes=violation.customer_notes,
            evidence_urls=[e.url for e in violation.evidence],
        )


class ViolationIdsResponse(BaseModel):
    violation_ids: list[str]


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------
class AddBankAccountRequest(BaseModel):
    bank_name: str = Field(min_length=1, max_length=100)
    account_number: str = Field(min_length=4, max_length=50)
    account_holder: str = Field(min_length=1, max_length=255)
    make_primary: bool = False


class BankAccountResponse(BaseModel):
    id: str
    bank_name: str
    account_number: str
    account_holder: str
    is_primary: bool


class RequestPayoutSchema(BaseModel):
    # Positivity is a domain rule (InvalidAmountError), not a schema rule
    amount: float
    bank_account_id: str | None = None
    notes: str | None = None


class ProcessPayoutRequest(BaseModel):
    approve: bool
    rejection_reason: str | None = None
    external_reference: str | None = None


class PayoutResponse(BaseModel):
    id: str
    provider_id: str
    bank_account_id: str
    amount: float
    status: str
    rejection_reason: str | None = None
    requested_at: datetime | None = None
    processed_at: datetime | None = None

    @classmethod
    def from_payout(cls, payout) -> "PayoutResponse":
        return cls(
            id=str(payout.id),
            provider_id=str(payout.provider_id),
            bank_account_id=str(payout.bank_account_id),
            amount=payout.amount,
            status=payout.status,
            rejection_reason=payout.rejection_reason,
            requested_at=payout.requested_at,
            processed_at=payout.processed_at,
        )


class PayoutSummaryResponse(BaseModel):
    provider_id: str
    total_earnings: float
    pending_payouts: float
    completed_payouts: float
    available_balance: float
    settled_order_count: int


class StatusResponse(BaseModel):
    status: str
