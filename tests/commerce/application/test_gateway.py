"""Tests for the gateway port, its adapters and the gateway factory."""

from datetime import date

import pytest
import requests

from commerce.gateway import GatewayError, get_gateway, reset_gateway, set_gateway
from commerce.gateway.asaas_adapter import AsaasGateway
from commerce.gateway.fake_adapter import FakeGateway
from commerce.gateway.port import GatewayPayment, PaymentRequest, SubscriptionRequest


def _payment_request(**overrides):
    fields = {
        "customer_id": "cus_000001",
        "billing_type": "PIX",
        "amount": 26500,
        "due_date": date(2026, 3, 10),
        "description": "Order #ACM2603070001",
        "external_reference": "order-001",
    }
    fields.update(overrides)
    return PaymentRequest(**fields)


class _Response:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body
        self.ok = 200 <= status_code < 300
        self.content = b"{}" if body is not None else b""
        self.text = ""

    def json(self):
        return self._body


class TestFakeGateway:
    def test_create_payment(self):
        gateway = FakeGateway()
        payment = gateway.create_payment(_payment_request())

        assert isinstance(payment, GatewayPayment)
        assert payment.id.startswith("pay_")
        assert payment.status == "PENDING"
        assert payment.amount == 26500
        assert payment.invoice_url.endswith(payment.id)
        assert gateway.calls_to("create_payment")[0]["request"].external_reference == "order-001"

    def test_configured_failure(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_reason="Card declined")

        with pytest.raises(GatewayError) as exc:
            gateway.create_payment(_payment_request())
        assert exc.value.message == "Card declined"
        assert len(gateway.calls) == 1

    def test_subscription_has_first_invoice(self):
        gateway = FakeGateway()
        subscription = gateway.create_subscription(
            SubscriptionRequest(
                customer_id="cus_000001",
                billing_type="CREDIT_CARD",
                amount=9990,
                next_due_date=date(2026, 3, 1),
                cycle="MONTHLY",
                description="Subscription to Pro",
                external_reference="sub-001",
            )
        )

        [invoice] = gateway.list_subscription_payments(subscription.id)
        assert invoice.due_date == date(2026, 3, 1)
        assert invoice.amount == 9990

    def test_refund_unknown_payment(self):
        with pytest.raises(GatewayError) as exc:
            FakeGateway().refund_payment("pay_missing")
        assert exc.value.status_code == 404

    def test_webhook_token(self):
        gateway = FakeGateway(webhook_token="secret")
        assert gateway.verify_webhook_token("secret") is True
        assert gateway.verify_webhook_token("wrong") is False


class TestGatewayFactory:
    def test_get_gateway_returns_fake_by_default(self):
        reset_gateway()
        assert isinstance(get_gateway(), FakeGateway)

    def test_set_gateway_overrides(self):
        custom = FakeGateway()
        custom.configure(should_succeed=False)
        set_gateway(custom)
        assert get_gateway().should_succeed is False


class TestAsaasGateway:
    def _gateway(self):
        return AsaasGateway(
            api_url="https://sandbox.example/api/v3/",
            api_key="key_123",
            webhook_token="whk_456",
            timeout=2.5,
        )

    def test_session_carries_access_token(self):
        gateway = self._gateway()
        assert gateway.session.headers["access_token"] == "key_123"
        assert gateway.api_url == "https://sandbox.example/api/v3"

    def test_create_payment_converts_money(self, monkeypatch):
        gateway = self._gateway()
        sent = {}

        def fake_request(method, url, json=None, timeout=None):
            sent.update(method=method, url=url, json=json, timeout=timeout)
            return _Response(
                body={
                    "id": "pay_abc",
                    "status": "PENDING",
                    "value": 265.0,
                    "dueDate": "2026-03-10",
                    "invoiceUrl": "https://sandbox.example/i/pay_abc",
                    "externalReference": "order-001",
                }
            )

        monkeypatch.setattr(gateway.session, "request", fake_request)
        payment = gateway.create_payment(_payment_request())

        assert sent["method"] == "POST"
        assert sent["url"] == "https://sandbox.example/api/v3/payments"
        assert sent["json"]["value"] == 265.0
        assert sent["json"]["externalReference"] == "order-001"
        assert sent["timeout"] == 2.5
        assert payment.amount == 26500
        assert payment.due_date == date(2026, 3, 10)

    def test_installments_send_the_full_total(self, monkeypatch):
        gateway = self._gateway()
        sent = {}

        def fake_request(method, url, json=None, timeout=None):
            sent.update(json=json)
            return _Response(body={"id": "pay_abc", "status": "PENDING", "value": 33.34, "dueDate": "2026-03-10"})

        monkeypatch.setattr(gateway.session, "request", fake_request)
        gateway.create_payment(_payment_request(amount=10000, billing_type="CREDIT_CARD", installments=3))

        assert sent["json"]["installmentCount"] == 3
        assert sent["json"]["totalValue"] == 100.0
        assert "value" not in sent["json"]
        assert "installmentValue" not in sent["json"]

    def test_rejection_becomes_gateway_error(self, monkeypatch):
        gateway = self._gateway()
        body = {"errors": [{"code": "invalid_customer", "description": "Customer not found"}]}
        monkeypatch.setattr(gateway.session, "request", lambda *args, **kwargs: _Response(400, body))

        with pytest.raises(GatewayError) as exc:
            gateway.create_payment(_payment_request())
        assert exc.value.message == "Customer not found"
        assert exc.value.status_code == 400

    def test_timeout_becomes_gateway_error(self, monkeypatch):
        gateway = self._gateway()

        def timed_out(*args, **kwargs):
            raise requests.Timeout("read timed out")

        monkeypatch.setattr(gateway.session, "request", timed_out)

        with pytest.raises(GatewayError) as exc:
            gateway.cancel_subscription("sub_abc")
        assert "unreachable" in exc.value.message

    def test_subscription_invoices_sorted_by_due_date(self, monkeypatch):
        gateway = self._gateway()
        body = {
            "data": [
                {"id": "pay_2", "status": "PENDING", "value": 99.9, "dueDate": "2026-04-01"},
                {"id": "pay_1", "status": "RECEIVED", "value": 99.9, "dueDate": "2026-03-01"},
            ]
        }
        monkeypatch.setattr(gateway.session, "request", lambda *args, **kwargs: _Response(body=body))

        invoices = gateway.list_subscription_payments("sub_abc")
        assert [i.id for i in invoices] == ["pay_1", "pay_2"]

    def test_webhook_token_comparison(self):
        gateway = self._gateway()
        assert gateway.verify_webhook_token("whk_456") is True
        assert gateway.verify_webhook_token("") is False
