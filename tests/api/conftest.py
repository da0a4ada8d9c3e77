import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from marketplace.api import register_error_handlers, routers
from marketplace.domain import marketplace


def actor(actor_id, role):
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role}


@pytest.fixture
def client(catalog, gateway, notifier):
    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with marketplace.domain_context():
            return await call_next(request)

    for router in routers:
        app.include_router(router)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture
def customer():
    return actor("customer-1", "customer")


@pytest.fixture
def provider_a():
    return actor("provider-a", "provider")


@pytest.fixture
def provider_b():
    return actor("provider-b", "provider")


@pytest.fixture
def staff():
    return actor("staff-1", "staff")


@pytest.fixture
def checkout_body():
    return {
        "rental_start": "2026-11-01T09:00:00Z",
        "rental_end": "2026-11-02T09:00:00Z",
        "agreed_to_policies": True,
        "full_name": "Tran Thi Mai",
        "phone": "0901234567",
        "address": "12 Le Loi, District 1",
    }


@pytest.fixture
def api_checkout(client, customer, checkout_body):
    """Cart with a purchase from provider A and a two-unit rental from provider B, checked out."""
    client.post(
        "/cart/items",
        json={"product_id": "dress-a", "quantity": 1, "transaction_type": "purchase"},
        headers=customer,
    )
    client.post(
        "/cart/items",
        json={"product_id": "suit-b", "quantity": 2, "transaction_type": "rental"},
        headers=customer,
    )
    response = client.post("/cart/checkout", json=checkout_body, headers=customer)
    assert response.status_code == 201
    return {o["provider_id"]: o for o in response.json()["orders"]}
