"""Configurable fake payment gateway for development and testing.

Simulates the gateway without any network traffic. It can be told to fail
at runtime (``configure``), and it records every call in ``calls`` so tests
can assert what was (or was not) sent.
"""

from dataclasses import replace
from uuid import uuid4

from commerce.gateway.port import (
    GatewayError,
    GatewayPayment,
    GatewaySubscription,
    PaymentGateway,
    PaymentRequest,
    SubscriptionRequest,
)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, webhook_token: str = "test-token") -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.webhook_token = webhook_token
        self.calls: list[dict] = []
        self.payments: dict[str, GatewayPayment] = {}
        self.subscriptions: dict[str, GatewaySubscription] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def _record(self, method: str, **details) -> None:
        self.calls.append({"method": method, **details})
        if not self.should_succeed:
            raise GatewayError(self.failure_reason, status_code=400)

    def _payment(self, gateway_payment_id: str) -> GatewayPayment:
        payment = self.payments.get(gateway_payment_id)
        if payment is None:
            raise GatewayError(f"Payment {gateway_payment_id} not found", status_code=404)
        return payment

    def create_payment(self, request: PaymentRequest) -> GatewayPayment:
        self._record("create_payment", request=request)

        payment_id = f"pay_{uuid4().hex[:12]}"
        payment = GatewayPayment(
            id=payment_id,
            status="PENDING",
            amount=request.amount,
            due_date=request.due_date,
            invoice_url=f"https://gateway.test/i/{payment_id}",
            external_reference=request.external_reference,
        )
        self.payments[payment_id] = payment
        return payment

    def cancel_payment(self, gateway_payment_id: str) -> GatewayPayment:
        self._record("cancel_payment", gateway_payment_id=gateway_payment_id)
        payment = replace(self._payment(gateway_payment_id), status="DELETED")
        self.payments[gateway_payment_id] = payment
        return payment

    def refund_payment(self, gateway_payment_id, amount=None, description=None) -> GatewayPayment:
        self._record(
            "refund_payment",
            gateway_payment_id=gateway_payment_id,
            amount=amount,
            description=description,
        )
        payment = replace(self._payment(gateway_payment_id), status="REFUNDED")
        self.payments[gateway_payment_id] = payment
        return payment

    def create_subscription(self, request: SubscriptionRequest) -> GatewaySubscription:
        self._record("create_subscription", request=request)

        subscription_id = f"sub_{uuid4().hex[:12]}"
        first_invoice = GatewayPayment(
            id=f"pay_{uuid4().hex[:12]}",
            status="PENDING",
            amount=request.amount,
            due_date=request.next_due_date,
            invoice_url=f"https://gateway.test/i/{subscription_id}",
            external_reference=request.external_reference,
        )
        self.payments[first_invoice.id] = first_invoice
        subscription = GatewaySubscription(
            id=subscription_id,
            status="ACTIVE",
            amount=request.amount,
            cycle=request.cycle,
            next_due_date=request.next_due_date,
            payments=[first_invoice],
        )
        self.subscriptions[subscription_id] = subscription
        return subscription

    def update_subscription(self, gateway_subscription_id, amount=None, cycle=None, description=None):
        self._record(
            "update_subscription",
            gateway_subscription_id=gateway_subscription_id,
            amount=amount,
            cycle=cycle,
            description=description,
        )
        subscription = self.subscriptions.get(gateway_subscription_id)
        if subscription is None:
            raise GatewayError(f"Subscription {gateway_subscription_id} not found", status_code=404)

        subscription = replace(
            subscription,
            amount=amount if amount is not None else subscription.amount,
            cycle=cycle or subscription.cycle,
        )
        self.subscriptions[gateway_subscription_id] = subscription
        return subscription

    def cancel_subscription(self, gateway_subscription_id: str) -> None:
        self._record("cancel_subscription", gateway_subscription_id=gateway_subscription_id)
        subscription = self.subscriptions.get(gateway_subscription_id)
        if subscription is not None:
            self.subscriptions[gateway_subscription_id] = replace(subscription, status="INACTIVE")

    def list_subscription_payments(self, gateway_subscription_id: str) -> list[GatewayPayment]:
        self._record("list_subscription_payments", gateway_subscription_id=gateway_subscription_id)
        subscription = self.subscriptions.get(gateway_subscription_id)
        return list(subscription.payments) if subscription else []

    def verify_webhook_token(self, token: str) -> bool:
        return token == self.webhook_token
