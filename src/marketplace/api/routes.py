"""FastAPI routes for the marketplace: cart, checkout, orders, payments, violations, payouts.

Authentication lives in front of this service; the caller's identity arrives
as ``X-Actor-Id`` / ``X-Actor-Role`` headers.
"""

from fastapi import APIRouter, Depends, Header, Request
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AddBankAccountRequest,
    AddToCartRequest,
    BankAccountResponse,
    CallbackResponse,
    CartItemIdResponse,
    CheckoutRequestSchema,
    CheckoutResponse,
    CreatePaymentRequestSchema,
    CreateViolationsRequest,
    ExpiredCountResponse,
    ExpireStaleRequest,
    IpnAcknowledgement,
    OrderResponse,
    PaymentUrlResponse,
    PayoutResponse,
    PayoutSummaryResponse,
    ProcessPayoutRequest,
    ProviderFailureResponse,
    RequestPayoutSchema,
    RespondToViolationRequest,
    StatusResponse,
    UpdateCartItemRequest,
    UpdateViolationRequest,
    ViolationIdsResponse,
    ViolationResponse,
)
from marketplace.cart.items import AddToCart, RemoveCartItem, UpdateCartItemQuantity
from marketplace.checkout.orchestrator import CheckoutRequest, checkout
from marketplace.exceptions import UnauthorizedError
from marketplace.order import services as orders
from marketplace.order.state_machine import ActorRole, OrderAction
from marketplace.payment import services as payments
from marketplace.payout import services as payouts
from marketplace.violation import services as violations


class Actor:
    def __init__(self, actor_id: str, role: ActorRole):
        self.id = actor_id
        self.role = role

    def require(self, *roles: ActorRole) -> "Actor":
        if self.role not in roles:
            raise UnauthorizedError()
        return self


def current_actor(
    x_actor_id: str = Header(...),
    x_actor_role: ActorRole = Header(...),
) -> Actor:
    return Actor(x_actor_id, x_actor_role)


def customer(actor: Actor = Depends(current_actor)) -> Actor:
    return actor.require(ActorRole.CUSTOMER)


def provider(actor: Actor = Depends(current_actor)) -> Actor:
    return actor.require(ActorRole.PROVIDER)


def staff(actor: Actor = Depends(current_actor)) -> Actor:
    return actor.require(ActorRole.STAFF)


# ---------------------------------------------------------------------------
# Cart & checkout
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.post("/items", status_code=201, response_model=CartItemIdResponse)
async def add_to_cart(body: AddToCartRequest, actor: Actor = Depends(customer)) -> CartItemIdResponse:
    command = AddToCart(
        customer_id=actor.id,
        product_id=body.product_id,
        quantity=body.quantity,
        transaction_type=body.transaction_type.value,
    )
    item_id = current_domain.process(command, asynchronous=False)
    return CartItemIdResponse(item_id=item_id)


@cart_router.patch("/items/{item_id}", response_model=StatusResponse)
async def update_cart_item(
    item_id: str, body: UpdateCartItemRequest, actor: Actor = Depends(customer)
) -> StatusResponse:
    current_domain.process(
        UpdateCartItemQuantity(customer_id=actor.id, item_id=item_id, new_quantity=body.quantity),
        asynchronous=False,
    )
    return StatusResponse(status="updated")


@cart_router.delete("/items/{item_id}", response_model=StatusResponse)
async def remove_cart_item(item_id: str, actor: Actor = Depends(customer)) -> StatusResponse:
    current_domain.process(RemoveCartItem(customer_id=actor.id, item_id=item_id), asynchronous=False)
    return StatusResponse(status="removed")


@cart_router.post("/checkout", status_code=201, response_model=CheckoutResponse)
async def checkout_cart(body: CheckoutRequestSchema, actor: Actor = Depends(customer)) -> CheckoutResponse:
    result = checkout(actor.id, CheckoutRequest(**body.model_dump()))
    return CheckoutResponse(
        orders=[OrderResponse.from_order(o) for o in result.orders],
        failures=[ProviderFailureResponse(**f.__dict__) for f in result.failures],
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=list[OrderResponse])
async def list_orders(actor: Actor = Depends(current_actor)) -> list[OrderResponse]:
    if actor.role == ActorRole.CUSTOMER:
        found = orders.list_customer_orders(actor.id)
    elif actor.role == ActorRole.PROVIDER:
        found = orders.list_provider_orders(actor.id)
    else:
        raise UnauthorizedError()
    return [OrderResponse.from_order(o) for o in found]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: Actor = Depends(current_actor)) -> OrderResponse:
    return OrderResponse.from_order(orders.get_order(order_id, actor.id, actor.role))


@order_router.post("/{order_id}/transitions/{action}", response_model=OrderResponse)
async def transition_order(order_id: str, action: OrderAction, actor: Actor = Depends(current_actor)) -> OrderResponse:
    order = orders.transition_order(order_id, action, actor.id, actor.role)
    return OrderResponse.from_order(order)


@order_router.post("/{order_id}/violations", status_code=201, response_model=ViolationIdsResponse)
async def create_violations(
    order_id: str,
    body: CreateViolationsRequest,
    actor: Actor = Depends(provider),
) -> ViolationIdsResponse:
    violation_ids = violations.record_violations(
        order_id, actor.id, [line.model_dump(mode="json") for line in body.violations]
    )
    return ViolationIdsResponse(violation_ids=violation_ids)


@order_router.get("/{order_id}/violations", response_model=list[ViolationResponse])
async def list_violations(order_id: str, actor: Actor = Depends(current_actor)) -> list[ViolationResponse]:
    orders.get_order(order_id, actor.id, actor.role)
    return [ViolationResponse.from_violation(v) for v in violations.violations_for_order(order_id)]


# ---------------------------------------------------------------------------
# Violations
# ---------------------------------------------------------------------------
violation_router = APIRouter(prefix="/violations", tags=["violations"])


@violation_router.patch("/{violation_id}", response_model=ViolationResponse)
async def update_violation(
    violation_id: str,
    body: UpdateViolationRequest,
    actor: Actor = Depends(provider),
) -> ViolationResponse:
    violation = violations.update_violation(
        violation_id,
        actor.id,
        violation_type=body.violation_type.value if body.violation_type else None,
        description=body.description,
        penalty_percentage=body.penalty_percentage,
        penalty_amount=body.penalty_amount,
        evidence_urls=body.evidence_urls,
    )
    return ViolationResponse.from_violation(violation)


@violation_router.post("/{violation_id}/response", response_model=ViolationResponse)
async def respond_to_violation(
    violation_id: str,
    body: RespondToViolationRequest,
    actor: Actor = Depends(customer),
) -> ViolationResponse:
    violation = violations.respond_to_violation(violation_id, actor.id, body.accept, body.notes)
    return ViolationResponse.from_violation(violation)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("", status_code=201, response_model=PaymentUrlResponse)
async def create_payment(
    body: CreatePaymentRequestSchema,
    request: Request,
    actor: Actor = Depends(customer),
) -> PaymentUrlResponse:
    client_ip = request.client.host if request.client else "127.0.0.1"
    result = payments.create_payment_request(actor.id, body.order_ids, body.note, client_ip)
    return PaymentUrlResponse(**result.__dict__)


def _callback_response(params: dict) -> CallbackResponse:
    outcome = payments.handle_gateway_callback({k: str(v) for k, v in params.items()})
    return CallbackResponse(**outcome.__dict__)


@payment_router.get("/callback", response_model=CallbackResponse)
async def gateway_callback_get(request: Request) -> CallbackResponse:
    """Gateway IPN delivered as query parameters."""
    return _callback_response(dict(request.query_params))


@payment_router.post("/callback", response_model=CallbackResponse)
async def gateway_callback_post(params: dict[str, str | int | float]) -> CallbackResponse:
    return _callback_response(params)


@payment_router.get("/vnpay/ipn", response_model=IpnAcknowledgement)
async def vnpay_ipn_get(request: Request) -> IpnAcknowledgement:
    """VNPay IPN. Always answered with 200; the outcome travels in ``RspCode``."""
    return IpnAcknowledgement(**payments.acknowledge_ipn(dict(request.query_params)))


@payment_router.post("/vnpay/ipn", response_model=IpnAcknowledgement)
async def vnpay_ipn_post(request: Request) -> IpnAcknowledgement:
    return IpnAcknowledgement(**payments.acknowledge_ipn(dict(request.query_params)))


@payment_router.post("/maintenance/expire-stale", response_model=ExpiredCountResponse)
async def expire_stale_transactions(body: ExpireStaleRequest, actor: Actor = Depends(staff)) -> ExpiredCountResponse:
    expired = payments.expire_stale_transactions(older_than_minutes=body.older_than_minutes)
    return ExpiredCountResponse(expired=expired)


# ---------------------------------------------------------------------------
# Payouts & bank accounts
# ---------------------------------------------------------------------------
payout_router = APIRouter(prefix="/payouts", tags=["payouts"])


@payout_router.get("/summary", response_model=PayoutSummaryResponse)
async def payout_summary(actor: Actor = Depends(provider)) -> PayoutSummaryResponse:
    return PayoutSummaryResponse(**payouts.payout_summary(actor.id).__dict__)


@payout_router.post("", status_code=201, response_model=PayoutResponse)
async def request_payout(body: RequestPayoutSchema, actor: Actor = Depends(provider)) -> PayoutResponse:
    payout = payouts.request_payout(actor.id, body.amount, body.bank_account_id, body.notes)
    return PayoutResponse.from_payout(payout)


@payout_router.get("", response_model=list[PayoutResponse])
async def payout_history(actor: Actor = Depends(provider)) -> list[PayoutResponse]:
    return [PayoutResponse.from_payout(p) for p in payouts.payout_history(actor.id)]


@payout_router.post("/{payout_id}/process", response_model=PayoutResponse)
async def process_payout(payout_id: str, body: ProcessPayoutRequest, actor: Actor = Depends(staff)) -> PayoutResponse:
    payout = payouts.process_payout(payout_id, body.approve, body.rejection_reason, body.external_reference)
    return PayoutResponse.from_payout(payout)


bank_account_router = APIRouter(prefix="/bank-accounts", tags=["payouts"])


def _bank_account_response(account) -> BankAccountResponse:
    return BankAccountResponse(
        id=str(account.id),
        bank_name=account.bank_name,
        account_number=account.masked_number,
        account_holder=account.account_holder,
        is_primary=bool(account.is_primary),
    )


@bank_account_router.post("", status_code=201, response_model=BankAccountResponse)
async def add_bank_account(body: AddBankAccountRequest, actor: Actor = Depends(provider)) -> BankAccountResponse:
    account = payouts.add_bank_account(actor.id, **body.model_dump())
    return _bank_account_response(account)


@bank_account_router.get("", response_model=list[BankAccountResponse])
async def list_bank_accounts(actor: Actor = Depends(provider)) -> list[BankAccountResponse]:
    return [_bank_account_response(a) for a in payouts.bank_accounts(actor.id)]


@bank_account_router.post("/{bank_account_id}/primary", response_model=StatusResponse)
async def set_primary_bank_account(bank_account_id: str, actor: Actor = Depends(provider)) -> StatusResponse:
    payouts.set_primary_bank_account(actor.id, bank_account_id)
    return StatusResponse(status="primary")


routers = [
    cart_router,
    order_router,
    violation_router,
    payment_router,
    payout_router,
    bank_account_router,
]
