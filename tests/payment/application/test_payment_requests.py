"""Creating payment requests for one or more pending orders."""

import threading

import pytest
from marketplace.domain import marketplace
from marketplace.exceptions import NoValidOrdersError
from marketplace.order.services import transition_order
from marketplace.order.state_machine import ActorRole
from marketplace.payment.services import create_payment_request, handle_gateway_callback
from marketplace.payment.transaction import Transaction, TransactionStatus
from protean import current_domain
from protean.exceptions import ValidationError

CUSTOMER_ID = "customer-1"


class TestCreatePaymentRequest:
    def test_covers_all_pending_orders(self, two_provider_checkout, gateway):
        order_a, order_b = two_provider_checkout

        request = create_payment_request(CUSTOMER_ID, [order_a.id, order_b.id])

        assert request.amount == 200.0
        assert set(request.order_ids) == {str(order_a.id), str(order_b.id)}
        assert request.payment_url.startswith("https://pay.example.test/checkout")
        assert f"ref={request.transaction_id}" in request.payment_url

    def test_persists_initiated_transaction(self, two_provider_checkout, gateway):
        order_a, _ = two_provider_checkout

        request = create_payment_request(CUSTOMER_ID, [order_a.id], note="gift")

        transaction = current_domain.repository_for(Transaction).get(request.transaction_id)
        assert transaction.status == TransactionStatus.INITIATED.value
        assert transaction.amount == 100.0
        assert transaction.linked_order_ids == [str(order_a.id)]
        assert transaction.gateway == "fake"
        assert transaction.note == "gift"

    def test_gateway_receives_description_and_client_ip(self, two_provider_checkout, gateway):
        order_a, _ = two_provider_checkout

        request = create_payment_request(CUSTOMER_ID, [order_a.id], client_ip="10.1.2.3")

        call = gateway.calls[-1]
        assert call["description"] == f"TID:{request.transaction_id}"
        assert call["client_ip"] == "10.1.2.3"
        assert call["amount"] == 100.0

    def test_duplicate_ids_are_counted_once(self, two_provider_checkout, gateway):
        order_a, _ = two_provider_checkout
        request = create_payment_request(CUSTOMER_ID, [order_a.id, order_a.id])
        assert request.amount == 100.0
        assert request.order_ids == [str(order_a.id)]


class TestIneligibleOrders:
    def test_ineligible_orders_are_dropped(self, two_provider_checkout, gateway):
        order_a, order_b = two_provider_checkout
        transition_order(str(order_b.id), "cancel", CUSTOMER_ID, ActorRole.CUSTOMER)

        request = create_payment_request(CUSTOMER_ID, [order_a.id, order_b.id, "missing-order"])

        assert request.order_ids == [str(order_a.id)]
        assert request.amount == 100.0

    def test_other_customers_orders_are_dropped(self, two_provider_checkout, gateway):
        order_a, _ = two_provider_checkout
        with pytest.raises(NoValidOrdersError):
            create_payment_request("customer-2", [order_a.id])

    def test_nothing_payable(self, two_provider_checkout, gateway):
        order_a, _ = two_provider_checkout
        transition_order(str(order_a.id), "cancel", CUSTOMER_ID, ActorRole.CUSTOMER)

        with pytest.raises(NoValidOrdersError):
            create_payment_request(CUSTOMER_ID, [order_a.id])
        assert current_domain.repository_for(Transaction)._dao.query.all().items == []

    def test_already_paid_order_is_not_payable(self, two_provider_checkout, pay):
        order_a, _ = two_provider_checkout
        pay(order_a)

        with pytest.raises(NoValidOrdersError):
            create_payment_request(CUSTOMER_ID, [order_a.id])

    def test_empty_request_is_invalid(self, gateway):
        with pytest.raises(ValidationError) as exc:
            create_payment_request(CUSTOMER_ID, [])
        assert "order_ids" in exc.value.messages


class TestOrdersInFlight:
    def test_order_in_an_open_payment_is_not_payable_again(self, two_provider_checkout, gateway):
        order_a, _ = two_provider_checkout
        create_payment_request(CUSTOMER_ID, [order_a.id])

        with pytest.raises(NoValidOrdersError):
            create_payment_request(CUSTOMER_ID, [order_a.id])

    def test_second_request_keeps_only_orders_not_in_flight(self, two_provider_checkout, gateway):
        order_a, order_b = two_provider_checkout
        create_payment_request(CUSTOMER_ID, [order_a.id])

        request = create_payment_request(CUSTOMER_ID, [order_a.id, order_b.id])

        assert request.order_ids == [str(order_b.id)]
        assert request.amount == 100.0

    def test_order_is_payable_again_once_the_attempt_fails(self, two_provider_checkout, gateway):
        order_a, _ = two_provider_checkout
        first = create_payment_request(CUSTOMER_ID, [order_a.id])
        handle_gateway_callback(gateway.signed_callback(first.transaction_id, first.amount, success=False))

        retry = create_payment_request(CUSTOMER_ID, [order_a.id])

        assert retry.order_ids == [str(order_a.id)]

    def test_concurrent_requests_claim_an_order_once(self, two_provider_checkout, gateway):
        order_a, _ = two_provider_checkout
        results = []
        start = threading.Barrier(2, timeout=5)

        def _request():
            with marketplace.domain_context():
                start.wait()
                try:
                    results.append(create_payment_request(CUSTOMER_ID, [order_a.id]).transaction_id)
                except NoValidOrdersError:
                    results.append(None)

        threads = [threading.Thread(target=_request) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(results) == 2
        assert results.count(None) == 1
        initiated = current_domain.repository_for(Transaction).initiated()
        assert [t.linked_order_ids for t in initiated] == [[str(order_a.id)]]
