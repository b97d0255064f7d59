"""Integration tests for checkout, order and payment endpoints."""

from protean import current_domain

from commerce.order.order import Order
from commerce.order.transitions import OrderStatus
from commerce.payment.payment import Payment


def _checkout(client, headers, cart_id, payment_method_id, **body):
    return client.post(
        f"/carts/{cart_id}/checkout",
        json={"payment_method_id": payment_method_id, **body},
        headers=headers,
    )


class TestCheckoutEndpoint:
    def test_checkout(self, client, headers, api_cart, api_payment_method):
        response = _checkout(
            client, headers, api_cart, api_payment_method, customer={"customer_id": "cus_001", "name": "Ana"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["total"] == "100.00"
        assert body["payment_url"].startswith("https://gateway.test/")

        order = current_domain.repository_for(Order).get(body["order_id"])
        assert order.order_number == body["order_number"]
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.customer_name == "Ana"

    def test_empty_cart_is_a_bad_request(self, client, headers, api_payment_method):
        cart_id = client.post("/carts", json={"user_id": "user-empty"}, headers=headers).json()["cart_id"]

        response = _checkout(client, headers, cart_id, api_payment_method)
        assert response.status_code == 400

    def test_unknown_payment_method(self, client, headers, api_cart):
        response = _checkout(client, headers, api_cart, "missing-method")
        assert response.status_code == 404

    def test_gateway_failure_reports_order(self, client, headers, api_cart, api_payment_method):
        client.post("/payments/gateway/configure", json={"should_succeed": False, "failure_reason": "Down"})

        response = _checkout(client, headers, api_cart, api_payment_method)

        assert response.status_code == 400
        [order] = current_domain.repository_for(Order)._dao.query.all().items
        assert str(order.id) in response.text

        client.post("/payments/gateway/configure", json={"should_succeed": True})
        response = client.post(f"/orders/{order.id}/payment", headers=headers)
        assert response.status_code == 200
        assert response.json()["payment_id"] is not None


class TestOrderEndpoints:
    def _place(self, client, headers, api_cart, api_payment_method):
        response = _checkout(client, headers, api_cart, api_payment_method)
        assert response.status_code == 201
        return response.json()

    def test_get_order_and_by_number(self, client, headers, api_cart, api_payment_method):
        placed = self._place(client, headers, api_cart, api_payment_method)

        response = client.get(f"/orders/{placed['order_id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["order_number"] == placed["order_number"]

        response = client.get(f"/orders/by-number/{placed['order_number']}", headers=headers)
        assert response.json()["id"] == placed["order_id"]

        response = client.get(f"/orders/{placed['order_id']}", headers={"X-Tenant-ID": "other-store"})
        assert response.status_code == 404

    def test_list_orders(self, client, headers, api_cart, api_payment_method):
        placed = self._place(client, headers, api_cart, api_payment_method)

        response = client.get("/orders", headers=headers, params={"status": "pending_payment"})
        assert [o["id"] for o in response.json()] == [placed["order_id"]]

    def test_cancel_order(self, client, headers, api_cart, api_payment_method):
        placed = self._place(client, headers, api_cart, api_payment_method)

        response = client.post(f"/orders/{placed['order_id']}/cancel", json={"reason": "Changed mind"}, headers=headers)
        assert response.status_code == 200
        assert client.get(f"/orders/{placed['order_id']}", headers=headers).json()["status"] == "cancelled"

    def test_refund_unpaid_order_is_rejected(self, client, headers, api_cart, api_payment_method):
        placed = self._place(client, headers, api_cart, api_payment_method)

        response = client.post(f"/orders/{placed['order_id']}/refund", json={"amount": "10.00"}, headers=headers)
        assert response.status_code == 400

    def test_refund_paid_order(self, client, headers, api_cart, api_payment_method):
        placed = self._place(client, headers, api_cart, api_payment_method)
        client.put(f"/orders/{placed['order_id']}/payment-status", json={"payment_status": "paid"}, headers=headers)

        response = client.post(f"/orders/{placed['order_id']}/refund", json={"amount": "25.00"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "partially_refunded"

        order = client.get(f"/orders/{placed['order_id']}", headers=headers).json()
        assert order["refunded_amount"] == "25.00"

    def test_tracking(self, client, headers, api_cart, api_payment_method):
        placed = self._place(client, headers, api_cart, api_payment_method)

        response = client.post(
            f"/orders/{placed['order_id']}/tracking", json={"tracking_number": "BR123"}, headers=headers
        )
        assert response.status_code == 200
        order = client.get(f"/orders/{placed['order_id']}", headers=headers).json()
        assert order["tracking_number"] == "BR123"


class TestPaymentEndpoints:
    def test_payment_and_link(self, client, headers, api_cart, api_payment_method):
        placed = _checkout(client, headers, api_cart, api_payment_method).json()

        response = client.get(f"/payments/{placed['payment_id']}", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert body["amount"] == "100.00"
        assert body["order_id"] == placed["order_id"]
        assert body["transactions"][0]["transaction_type"] == "payment"

        response = client.get(f"/payments/{placed['payment_id']}/link", headers=headers)
        assert response.json()["payment_url"] == placed["payment_url"]

    def test_list_payments_of_order(self, client, headers, api_cart, api_payment_method):
        placed = _checkout(client, headers, api_cart, api_payment_method).json()

        response = client.get("/payments", params={"order_id": placed["order_id"]}, headers=headers)
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [placed["payment_id"]]

        response = client.get("/payments", params={"status": "settled"}, headers=headers)
        assert response.status_code == 400

    def test_transactions_of_payment(self, client, headers, api_cart, api_payment_method):
        placed = _checkout(client, headers, api_cart, api_payment_method).json()

        response = client.get(f"/payments/{placed['payment_id']}/transactions", headers=headers)
        assert response.status_code == 200
        [entry] = response.json()
        assert entry["payment_id"] == placed["payment_id"]
        assert entry["transaction_type"] == "payment"

        response = client.get("/payments/transactions", params={"transaction_type": "payment"}, headers=headers)
        assert [t["payment_id"] for t in response.json()] == [placed["payment_id"]]

        other = {"X-Tenant-ID": "other-store"}
        response = client.get(f"/payments/{placed['payment_id']}/transactions", headers=other)
        assert response.status_code == 404

    def test_cancel_payment(self, client, headers, api_cart, api_payment_method):
        placed = _checkout(client, headers, api_cart, api_payment_method).json()

        response = client.post(f"/payments/{placed['payment_id']}/cancel", json={}, headers=headers)
        assert response.status_code == 200
        assert current_domain.repository_for(Payment).get(placed["payment_id"]).status == "cancelled"

    def test_payment_methods_listing(self, client, headers, api_payment_method):
        response = client.get("/payment-methods", headers=headers)
        assert [m["id"] for m in response.json()] == [api_payment_method]

        client.put(f"/payment-methods/{api_payment_method}/active", json={"is_active": False}, headers=headers)
        assert client.get("/payment-methods", headers=headers).json() == []
