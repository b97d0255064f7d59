"""Payment gateway port (abstract interface).

Defines the contract that every gateway adapter implements, so the
FakeGateway (dev/test) and the Asaas adapter (production) are
interchangeable without touching domain or application code.

Amounts crossing this port are integers in cents; adapters convert to
whatever the remote API expects. Adapters raise ``GatewayError`` when the
gateway rejects a request or cannot be reached in time.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date


class GatewayError(Exception):
    """The payment gateway rejected the request or was unreachable."""

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


@dataclass(frozen=True)
class PaymentRequest:
    customer_id: str
    billing_type: str  # CREDIT_CARD, BOLETO, PIX, UNDEFINED
    amount: int
    due_date: date
    description: str
    external_reference: str
    installments: int | None = None


@dataclass(frozen=True)
class GatewayPayment:
    """A charge as the gateway sees it."""

    id: str
    status: str
    amount: int
    due_date: date | None = None
    invoice_url: str | None = None
    external_reference: str | None = None


@dataclass(frozen=True)
class SubscriptionRequest:
    customer_id: str
    billing_type: str
    amount: int
    next_due_date: date
    cycle: str  # MONTHLY, QUARTERLY, SEMIANNUALLY, YEARLY
    description: str
    external_reference: str


@dataclass(frozen=True)
class GatewaySubscription:
    id: str
    status: str
    amount: int
    cycle: str
    next_due_date: date | None = None
    payments: list[GatewayPayment] = field(default_factory=list)


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_payment(self, request: PaymentRequest) -> GatewayPayment:
        """Create a one-off charge."""
        ...

    @abstractmethod
    def cancel_payment(self, gateway_payment_id: str) -> GatewayPayment:
        ...

    @abstractmethod
    def refund_payment(
        self,
        gateway_payment_id: str,
        amount: int | None = None,
        description: str | None = None,
    ) -> GatewayPayment:
        """Refund a charge; ``amount`` of ``None`` refunds it in full."""
        ...

    @abstractmethod
    def create_subscription(self, request: SubscriptionRequest) -> GatewaySubscription:
        ...

    @abstractmethod
    def update_subscription(
        self,
        gateway_subscription_id: str,
        amount: int | None = None,
        cycle: str | None = None,
        description: str | None = None,
    ) -> GatewaySubscription:
        ...

    @abstractmethod
    def cancel_subscription(self, gateway_subscription_id: str) -> None:
        ...

    @abstractmethod
    def list_subscription_payments(self, gateway_subscription_id: str) -> list[GatewayPayment]:
        """Scheduled and past invoices of a subscription, earliest due date first."""
        ...

    @abstractmethod
    def verify_webhook_token(self, token: str) -> bool:
        """Check the access token the gateway sends with each webhook call."""
        ...
