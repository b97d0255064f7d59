import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers

from commerce.api import (
    cart_router,
    maintenance_router,
    order_router,
    payment_method_router,
    payment_router,
    shipping_method_router,
    subscription_router,
    webhook_router,
)


@pytest.fixture()
def client():
    app = FastAPI()
    register_exception_handlers(app)
    for router in (
        cart_router,
        order_router,
        payment_router,
        subscription_router,
        shipping_method_router,
        payment_method_router,
        webhook_router,
        maintenance_router,
    ):
        app.include_router(router)
    return TestClient(app)


@pytest.fixture()
def headers(tenant_id):
    return {"X-Tenant-ID": tenant_id}


@pytest.fixture()
def api_cart(client, headers, address):
    """A cart built over HTTP with one R$ 100.00 item and both addresses."""
    response = client.post("/carts", json={"user_id": "user-001"}, headers=headers)
    assert response.status_code == 201
    cart_id = response.json()["cart_id"]

    response = client.post(
        f"/carts/{cart_id}/items",
        json={"product_id": "prod-001", "name": "Mug", "unit_price": "100.00", "quantity": 1, "weight": 0.4},
        headers=headers,
    )
    assert response.status_code == 201

    for address_type in ("shipping", "billing"):
        response = client.put(f"/carts/{cart_id}/addresses/{address_type}", json=address, headers=headers)
        assert response.status_code == 200
    return cart_id


@pytest.fixture()
def api_payment_method(client, headers):
    response = client.post(
        "/payment-methods",
        json={"name": "Pix", "method_type": "pix", "fee_fixed": "1.00"},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["payment_method_id"]
