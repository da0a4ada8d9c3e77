import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config environment before the domain module is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)


# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------
@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace
    from marketplace.utils.db import drop_db, setup_db

    bed = DomainFixture(marketplace)
    bed.setup()
    setup_db(marketplace)
    yield bed
    drop_db(marketplace)
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    """Run every test inside the domain context and clean all infrastructure after it."""
    from marketplace.catalog import reset_catalog
    from marketplace.moderation import reset_moderator
    from marketplace.notification import reset_notifier
    from marketplace.payment.gateway import reset_gateway
    from marketplace.utils.locks import reset_locks
    from protean import current_domain

    with marketplace_bed.domain_context():
        yield

        # Clear all databases and drain the event store
        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()

    reset_catalog()
    reset_gateway()
    reset_notifier()
    reset_moderator()
    reset_locks()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
CUSTOMER_ID = "customer-1"
PROVIDER_A = "provider-a"
PROVIDER_B = "provider-b"

RENTAL_START = datetime(2026, 11, 1, 9, 0, tzinfo=UTC)
RENTAL_END = RENTAL_START + timedelta(days=1)


@pytest.fixture
def catalog():
    """Two providers: A sells/rents a dress, B sells/rents a suit."""
    from marketplace.catalog import set_catalog
    from marketplace.catalog.fake_adapter import FakeCatalog
    from marketplace.catalog.port import ProductSnapshot

    fake = FakeCatalog()
    fake.add_product(
        ProductSnapshot(
            product_id="dress-a",
            provider_id=PROVIDER_A,
            name="Silk Ao Dai",
            purchase_price=100.0,
            rental_price_per_day=30.0,
            deposit_per_unit=50.0,
        ),
        purchase_stock=5,
        rental_stock=5,
    )
    fake.add_product(
        ProductSnapshot(
            product_id="suit-b",
            provider_id=PROVIDER_B,
            name="Linen Suit",
            purchase_price=200.0,
            rental_price_per_day=50.0,
            deposit_per_unit=20.0,
        ),
        purchase_stock=5,
        rental_stock=5,
    )
    set_catalog(fake)
    return fake


@pytest.fixture
def gateway():
    from marketplace.payment.gateway import set_gateway
    from marketplace.payment.gateway.fake_adapter import FakeGateway

    fake = FakeGateway()
    set_gateway(fake)
    return fake


@pytest.fixture
def notifier():
    from marketplace.notification import set_notifier
    from marketplace.notification.fake_adapter import FakeNotifier

    fake = FakeNotifier()
    set_notifier(fake)
    return fake


@pytest.fixture
def moderator():
    from marketplace.moderation import set_moderator
    from marketplace.moderation.fake_adapter import FakeModerator

    fake = FakeModerator(banned_words={"scam", "idiot"})
    set_moderator(fake)
    return fake


# ---------------------------------------------------------------------------
# Workflow helpers
# ---------------------------------------------------------------------------
@pytest.fixture
def add_to_cart(catalog):
    from marketplace.cart.items import AddToCart
    from protean import current_domain

    def _add(product_id, quantity=1, transaction_type="purchase", customer_id=CUSTOMER_ID):
        return current_domain.process(
            AddToCart(
                customer_id=customer_id,
                product_id=product_id,
                quantity=quantity,
                transaction_type=transaction_type,
            ),
            asynchronous=False,
        )

    return _add


@pytest.fixture
def checkout_request():
    from marketplace.checkout.orchestrator import CheckoutRequest

    def _request(**overrides):
        values = {
            "rental_start": RENTAL_START,
            "rental_end": RENTAL_END,
            "agreed_to_policies": True,
            "full_name": "Tran Thi Mai",
            "phone": "0901234567",
            "address": "12 Le Loi, District 1",
            "email": "mai@example.com",
        }
        values.update(overrides)
        return CheckoutRequest(**values)

    return _request


@pytest.fixture
def two_provider_checkout(add_to_cart, checkout_request):
    """A: one dress bought at 100. B: two suits rented for a day at 50 with 20 deposit each."""
    from marketplace.checkout.orchestrator import checkout

    add_to_cart("dress-a", 1, "purchase")
    add_to_cart("suit-b", 2, "rental")
    result = checkout(CUSTOMER_ID, checkout_request())
    by_provider = {str(o.provider_id): o for o in result.orders}
    return by_provider[PROVIDER_A], by_provider[PROVIDER_B]


@pytest.fixture
def rental_order(add_to_cart, checkout_request):
    """Provider B order: two suits rented for one day (deposit 40 in total)."""
    from marketplace.checkout.orchestrator import checkout

    add_to_cart("suit-b", 2, "rental")
    return checkout(CUSTOMER_ID, checkout_request()).orders[0]


@pytest.fixture
def pay(gateway):
    from marketplace.payment.services import create_payment_request, handle_gateway_callback

    def _pay(*orders, success=True, customer_id=CUSTOMER_ID):
        request = create_payment_request(customer_id, [o.id for o in orders])
        outcome = handle_gateway_callback(
            gateway.signed_callback(request.transaction_id, request.amount, success=success)
        )
        return request, outcome

    return _pay


@pytest.fixture
def advance():
    """Drive an order through provider actions, e.g. advance(order_id, "mark_shipping", ...)."""
    from marketplace.order.services import transition_order
    from marketplace.order.state_machine import ActorRole

    def _advance(order, *actions, actor_id=None, role=ActorRole.PROVIDER):
        result = order
        for action in actions:
            result = transition_order(str(order.id), action, actor_id or str(order.provider_id), role)
        return result

    return _advance


@pytest.fixture
def returning_order(rental_order, pay, advance):
    """The rental order paid, shipped, delivered and on its way back."""
    pay(rental_order)
    return advance(rental_order, "mark_shipping", "confirm_delivery", "mark_returning")


@pytest.fixture
def race():
    """Run each call on its own thread, released together.

    Returns one result per call: "ok", or the type of the exception it raised.
    """
    import threading

    from marketplace.domain import marketplace

    def _race(*calls):
        results = [None] * len(calls)
        start = threading.Barrier(len(calls), timeout=5)

        def _run(index, call):
            with marketplace.domain_context():
                start.wait()
                try:
                    call()
                    results[index] = "ok"
                except Exception as exc:
                    results[index] = type(exc)

        threads = [threading.Thread(target=_run, args=(i, c)) for i, c in enumerate(calls)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        return results

    return _race
