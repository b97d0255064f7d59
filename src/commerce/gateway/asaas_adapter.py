"""Asaas payment gateway adapter (REST over HTTPS).

Every call goes through one ``requests.Session`` with the ``access_token``
header and a bounded timeout; transport errors and non-2xx answers are
raised as ``GatewayError`` so no request can hang a checkout.
"""

import hmac
from datetime import date

import requests
import structlog

from commerce.gateway.port import (
    GatewayError,
    GatewayPayment,
    GatewaySubscription,
    PaymentGateway,
    PaymentRequest,
    SubscriptionRequest,
)
from commerce.shared.money import from_cents, to_cents

logger = structlog.get_logger(__name__)


def _parse_date(value):
    return date.fromisoformat(value[:10]) if value else None


def _payment_from(data: dict) -> GatewayPayment:
    return GatewayPayment(
        id=data["id"],
        status=data.get("status", ""),
        amount=to_cents(data.get("value")),
        due_date=_parse_date(data.get("dueDate")),
        invoice_url=data.get("invoiceUrl"),
        external_reference=data.get("externalReference"),
    )


def _subscription_from(data: dict) -> GatewaySubscription:
    return GatewaySubscription(
        id=data["id"],
        status=data.get("status", ""),
        amount=to_cents(data.get("value")),
        cycle=data.get("cycle", ""),
        next_due_date=_parse_date(data.get("nextDueDate")),
    )


class AsaasGateway(PaymentGateway):
    """Production gateway adapter for the Asaas v3 API."""

    def __init__(self, api_url: str, api_key: str, webhook_token: str, timeout: float = 10.0) -> None:
        self.api_url = api_url.rstrip("/")
        self.webhook_token = webhook_token
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "access_token": api_key})

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.api_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Gateway request failed", method=method, path=path, error=str(exc))
            raise GatewayError(f"Gateway unreachable: {exc}") from exc

        if not response.ok:
            try:
                body = response.json()
            except ValueError:
                body = {"raw": response.text}
            errors = body.get("errors") or []
            message = errors[0].get("description") if errors else f"Gateway returned {response.status_code}"
            logger.warning("Gateway rejected request", method=method, path=path, status_code=response.status_code)
            raise GatewayError(message, status_code=response.status_code, details=body)

        return response.json() if response.content else {}

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def create_payment(self, request: PaymentRequest) -> GatewayPayment:
        payload = {
            "customer": request.customer_id,
            "billingType": request.billing_type,
            "value": float(from_cents(request.amount)),
            "dueDate": request.due_date.isoformat(),
            "description": request.description,
            "externalReference": request.external_reference,
        }
        if request.installments and request.installments > 1:
            # The gateway splits the total, putting any remainder cents on an instalment
            payload["installmentCount"] = request.installments
            payload["totalValue"] = payload.pop("value")
        return _payment_from(self._request("POST", "/payments", payload))

    def cancel_payment(self, gateway_payment_id: str) -> GatewayPayment:
        data = self._request("DELETE", f"/payments/{gateway_payment_id}")
        return GatewayPayment(id=data.get("id", gateway_payment_id), status="DELETED", amount=0)

    def refund_payment(self, gateway_payment_id, amount=None, description=None) -> GatewayPayment:
        payload = {}
        if amount is not None:
            payload["value"] = float(from_cents(amount))
        if description:
            payload["description"] = description
        return _payment_from(self._request("POST", f"/payments/{gateway_payment_id}/refund", payload))

    # -------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------
    def create_subscription(self, request: SubscriptionRequest) -> GatewaySubscription:
        payload = {
            "customer": request.customer_id,
            "billingType": request.billing_type,
            "value": float(from_cents(request.amount)),
            "nextDueDate": request.next_due_date.isoformat(),
            "cycle": request.cycle,
            "description": request.description,
            "externalReference": request.external_reference,
        }
        return _subscription_from(self._request("POST", "/subscriptions", payload))

    def update_subscription(self, gateway_subscription_id, amount=None, cycle=None, description=None):
        payload = {"updatePendingPayments": True}
        if amount is not None:
            payload["value"] = float(from_cents(amount))
        if cycle:
            payload["cycle"] = cycle
        if description:
            payload["description"] = description
        return _subscription_from(self._request("POST", f"/subscriptions/{gateway_subscription_id}", payload))

    def cancel_subscription(self, gateway_subscription_id: str) -> None:
        self._request("DELETE", f"/subscriptions/{gateway_subscription_id}")

    def list_subscription_payments(self, gateway_subscription_id: str) -> list[GatewayPayment]:
        data = self._request("GET", f"/subscriptions/{gateway_subscription_id}/payments")
        payments = [_payment_from(item) for item in data.get("data", [])]
        return sorted(payments, key=lambda p: p.due_date or date.max)

    # -------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------
    def verify_webhook_token(self, token: str) -> bool:
        if not self.webhook_token:
            return False
        return hmac.compare_digest(token or "", self.webhook_token)
