"""Payment entry points used by the API.

Payment requests lock the orders they name, so two requests cannot both
claim the same pending order. Callbacks lock the transaction and every order
it covers before the reconciliation unit of work runs, so a concurrent cancel
cannot interleave with approval. The expiry sweep locks its candidates the
same way and expires only those, judged against the cutoff it locked them at.
"""

import json

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.exceptions import InvalidSignatureError
from marketplace.payment.expiry import ExpireStaleTransactions, stale_cutoff
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.vnpay_adapter import ipn_reply
from marketplace.payment.reconciliation import CallbackOutcome, ReconcilePayment
from marketplace.payment.requests import CreatePaymentRequest, PaymentRequest
from marketplace.payment.transaction import Transaction
from marketplace.shared.ledger import utc_now
from marketplace.utils.locks import locked, order_keys, transaction_key

logger = structlog.get_logger(__name__)


def create_payment_request(customer_id, order_ids, note=None, client_ip="127.0.0.1") -> PaymentRequest:
    order_ids = [str(o) for o in order_ids or []]
    with locked(*order_keys(order_ids)):
        return current_domain.process(
            CreatePaymentRequest(
                customer_id=customer_id,
                order_ids=json.dumps(order_ids),
                note=note,
                client_ip=client_ip,
            ),
            asynchronous=False,
        )


def handle_gateway_callback(params: dict[str, str]) -> CallbackOutcome:
    """Authenticate a gateway callback and apply it.

    Raises InvalidSignatureError when the checksum does not match; no field of
    the payload is trusted before that check.
    """
    gateway = get_gateway()
    if not gateway.verify_callback(params):
        logger.warning("Gateway callback rejected: bad signature", gateway=gateway.name)
        raise InvalidSignatureError()

    result = gateway.parse_callback(params)
    try:
        transaction = current_domain.repository_for(Transaction).get(result.transaction_id)
    except ObjectNotFoundError:
        logger.warning("Gateway callback for unknown transaction", transaction_id=result.transaction_id)
        return CallbackOutcome(status="not_found", transaction_id=result.transaction_id)

    with locked(transaction_key(transaction.id), *order_keys(transaction.linked_order_ids)):
        return current_domain.process(
            ReconcilePayment(
                transaction_id=str(transaction.id),
                success=result.success,
                response_code=result.response_code,
                amount=result.amount,
                gateway_reference=result.gateway_reference,
            ),
            asynchronous=False,
        )


def expire_stale_transactions(older_than_minutes=None, as_of=None) -> int:
    as_of = as_of or utc_now()
    cutoff = stale_cutoff(older_than_minutes, as_of)
    candidates = [t for t in current_domain.repository_for(Transaction).initiated() if t.is_stale(cutoff)]
    if not candidates:
        return 0

    options = {"older_than_minutes": older_than_minutes} if older_than_minutes else {}
    with locked(*(transaction_key(t.id) for t in candidates)):
        return current_domain.process(
            ExpireStaleTransactions(
                as_of=as_of,
                transaction_ids=json.dumps([str(t.id) for t in candidates]),
                **options,
            ),
            asynchronous=False,
        )


def acknowledge_ipn(params: dict[str, str]) -> dict[str, str]:
    """Apply a VNPay IPN and build the acknowledgement body VNPay expects."""
    try:
        outcome = handle_gateway_callback(params)
    except InvalidSignatureError:
        return ipn_reply("invalid_signature")
    except (ValidationError, ValueError):
        logger.warning("Malformed gateway callback", exc_info=True)
        return ipn_reply("malformed")
    return ipn_reply(outcome.status)
