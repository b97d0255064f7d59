"""Payment aggregate (CQRS): one attempt to collect money for an order or a subscription cycle.

A payment is addressable by its own id, by the gateway's payment id, and by
``external_reference`` (the order id, or ``subscription-{id}-payment-{n}``),
which correlates webhooks that arrive before the gateway id is known.

State machine (gateway-driven transitions are "forward only"; anything
else is ignored as stale):

    PENDING → CONFIRMED → RECEIVED → REFUNDED | PARTIALLY_REFUNDED
    PENDING → OVERDUE → CONFIRMED | RECEIVED
    PENDING | OVERDUE | FAILED → CANCELLED
    REFUNDED, CANCELLED are terminal

The ``transactions`` ledger is append-only: the PAYMENT entry is written at
creation, FEE on confirmation, REFUND for every refund.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, HasMany, Identifier, Integer, String, Text

from commerce.domain import commerce
from commerce.payment.events import (
    PaymentCancelled,
    PaymentCreated,
    PaymentRefunded,
    PaymentStatusChanged,
)


class PaymentStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    RECEIVED = "received"
    OVERDUE = "overdue"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentType(Enum):
    ORDER = "order"
    SUBSCRIPTION = "subscription"


class TransactionType(Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    FEE = "fee"
    SPLIT = "split"


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransitionOutcome(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"  # already in the target status
    INCOMPATIBLE = "incompatible"  # target would move the payment backwards
    STALE = "stale"  # status changed since it was read


_GATEWAY_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.CONFIRMED,
        PaymentStatus.RECEIVED,
        PaymentStatus.OVERDUE,
        PaymentStatus.REFUNDED,
        PaymentStatus.CANCELLED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.OVERDUE: {
        PaymentStatus.CONFIRMED,
        PaymentStatus.RECEIVED,
        PaymentStatus.REFUNDED,
        PaymentStatus.CANCELLED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.FAILED: {PaymentStatus.CONFIRMED, PaymentStatus.RECEIVED, PaymentStatus.CANCELLED},
    PaymentStatus.CONFIRMED: {PaymentStatus.RECEIVED, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.RECEIVED: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),  # Terminal
    PaymentStatus.CANCELLED: set(),  # Terminal
}

SETTLED_STATUSES = frozenset({PaymentStatus.CONFIRMED, PaymentStatus.RECEIVED})

# Status of the main PAYMENT ledger entry for each payment status
_LEDGER_STATUS = {
    PaymentStatus.CONFIRMED: TransactionStatus.COMPLETED,
    PaymentStatus.RECEIVED: TransactionStatus.COMPLETED,
    PaymentStatus.CANCELLED: TransactionStatus.CANCELLED,
    PaymentStatus.FAILED: TransactionStatus.FAILED,
}

_STATUS_TIMESTAMPS = {
    PaymentStatus.CONFIRMED: "confirmed_at",
    PaymentStatus.RECEIVED: "received_at",
    PaymentStatus.OVERDUE: "overdue_at",
    PaymentStatus.REFUNDED: "refunded_at",
    PaymentStatus.CANCELLED: "cancelled_at",
}


@commerce.entity(part_of="Payment")
class Transaction:
    """A ledger entry; never edited except for the status of a pending entry."""

    transaction_type = String(choices=TransactionType, required=True)
    status = String(choices=TransactionStatus, default=TransactionStatus.PENDING.value)
    amount = Integer(required=True)
    description = String(max_length=500)
    gateway_transaction_id = String(max_length=255)
    created_at = DateTime()
    processed_at = DateTime()


@commerce.aggregate
class Payment:
    tenant_id = Identifier(required=True)
    payment_type = String(choices=PaymentType, default=PaymentType.ORDER.value)
    order_id = Identifier()
    subscription_id = Identifier()
    amount = Integer(required=True, min_value=0)
    refunded_amount = Integer(default=0)
    fee_amount = Integer(default=0)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    billing_type = String(max_length=50)
    payment_method_id = Identifier()
    due_date = Date()
    customer_id = String(max_length=255)
    customer_name = String(max_length=255)
    customer_email = String(max_length=254)
    external_reference = String(max_length=255)
    description = Text()
    installments = Integer(default=1)
    gateway_payment_id = String(max_length=255)
    gateway_url = String(max_length=1000)
    cancel_reason = String(max_length=500)
    transactions = HasMany(Transaction)
    confirmed_at = DateTime()
    received_at = DateTime()
    overdue_at = DateTime()
    refunded_at = DateTime()
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def refunded_amount_must_stay_within_amount(self):
        refunded = self.refunded_amount or 0
        if refunded < 0 or refunded > (self.amount or 0):
            raise ValidationError({"refunded_amount": ["Refunded amount must be between zero and the payment amount"]})

    @invariant.post
    def payment_must_reference_its_parent(self):
        if PaymentType(self.payment_type) == PaymentType.ORDER and not self.order_id:
            raise ValidationError({"order_id": ["Order payments need an order"]})
        if PaymentType(self.payment_type) == PaymentType.SUBSCRIPTION and not self.subscription_id:
            raise ValidationError({"subscription_id": ["Subscription payments need a subscription"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, tenant_id, amount, gateway_payment, payment_type=PaymentType.ORDER.value, **details):
        """Record a charge the gateway already accepted (``gateway_payment``)."""
        now = datetime.now(UTC)
        payment = cls(
            tenant_id=tenant_id,
            payment_type=payment_type,
            amount=amount,
            refunded_amount=0,
            status=PaymentStatus.PENDING.value,
            gateway_payment_id=gateway_payment.id,
            gateway_url=gateway_payment.invoice_url,
            due_date=details.pop("due_date", None) or gateway_payment.due_date,
            created_at=now,
            updated_at=now,
            **details,
        )
        payment.add_transactions(
            Transaction(
                transaction_type=TransactionType.PAYMENT.value,
                status=TransactionStatus.PENDING.value,
                amount=amount,
                description=payment.description,
                gateway_transaction_id=gateway_payment.id,
                created_at=now,
            )
        )
        payment.raise_(
            PaymentCreated(
                payment_id=str(payment.id),
                tenant_id=str(tenant_id),
                payment_type=payment_type,
                order_id=str(payment.order_id) if payment.order_id else None,
                subscription_id=str(payment.subscription_id) if payment.subscription_id else None,
                amount=amount,
                gateway_payment_id=gateway_payment.id,
                external_reference=payment.external_reference,
                created_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def is_settled(self) -> bool:
        return PaymentStatus(self.status) in SETTLED_STATUSES

    @property
    def is_live(self) -> bool:
        """Still able to collect money (not cancelled, failed or refunded)."""
        return PaymentStatus(self.status) in {
            PaymentStatus.PENDING,
            PaymentStatus.OVERDUE,
            PaymentStatus.CONFIRMED,
            PaymentStatus.RECEIVED,
        }

    def _main_transaction(self):
        return next(
            (t for t in self.transactions if t.transaction_type == TransactionType.PAYMENT.value),
            None,
        )

    def _append(self, transaction_type, amount, description=None, gateway_transaction_id=None):
        now = datetime.now(UTC)
        self.add_transactions(
            Transaction(
                transaction_type=transaction_type.value,
                status=TransactionStatus.COMPLETED.value,
                amount=amount,
                description=description,
                gateway_transaction_id=gateway_transaction_id,
                created_at=now,
                processed_at=now,
            )
        )

    def _move_to(self, target: PaymentStatus, source: str):
        now = datetime.now(UTC)
        previous = self.status
        self.status = target.value
        field_name = _STATUS_TIMESTAMPS.get(target)
        if field_name:
            setattr(self, field_name, now)
        self.updated_at = now

        ledger_status = _LEDGER_STATUS.get(target)
        main = self._main_transaction()
        if ledger_status and main is not None and main.status == TransactionStatus.PENDING.value:
            main.status = ledger_status.value
            main.processed_at = now

        self.raise_(
            PaymentStatusChanged(
                payment_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_status=previous,
                new_status=target.value,
                source=source,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Gateway-driven transitions
    # -------------------------------------------------------------------
    def apply_gateway_status(self, new_status, expected_status=None) -> TransitionOutcome:
        """Apply a status reported by the gateway.

        Compare-and-set: when ``expected_status`` is given and no longer
        matches, nothing happens. Same status is a no-op, and a status that
        would move the payment backwards is ignored.
        """
        current = PaymentStatus(self.status)
        target = PaymentStatus(new_status)

        if expected_status is not None and current != PaymentStatus(expected_status):
            return TransitionOutcome.STALE
        if target == current:
            return TransitionOutcome.UNCHANGED
        if target not in _GATEWAY_TRANSITIONS.get(current, set()):
            return TransitionOutcome.INCOMPATIBLE

        with atomic_change(self):
            if target == PaymentStatus.REFUNDED:
                remaining = (self.amount or 0) - (self.refunded_amount or 0)
                if remaining > 0:
                    self._append(TransactionType.REFUND, remaining, description="Refunded at gateway")
                self.refunded_amount = self.amount
            self._move_to(target, source="gateway")

            if target in SETTLED_STATUSES and current not in SETTLED_STATUSES and self.fee_amount:
                self._append(TransactionType.FEE, self.fee_amount, description="Processing fee")

        return TransitionOutcome.APPLIED

    # -------------------------------------------------------------------
    # Merchant-driven operations
    # -------------------------------------------------------------------
    def refund(self, amount=None, description=None, gateway_refund_id=None):
        """Refund ``amount`` cents (everything left when ``None``)."""
        if not self.is_settled and PaymentStatus(self.status) != PaymentStatus.PARTIALLY_REFUNDED:
            raise ValidationError({"status": ["Only confirmed or received payments can be refunded"]})

        remaining = (self.amount or 0) - (self.refunded_amount or 0)
        amount = remaining if amount is None else amount
        if amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be positive"]})
        if amount > remaining:
            raise ValidationError({"amount": ["Refund amount exceeds what is left to refund"]})

        now = datetime.now(UTC)
        target = PaymentStatus.REFUNDED if amount == remaining else PaymentStatus.PARTIALLY_REFUNDED
        with atomic_change(self):
            self._append(
                TransactionType.REFUND,
                amount,
                description=description or "Refund",
                gateway_transaction_id=gateway_refund_id,
            )
            self.refunded_amount = (self.refunded_amount or 0) + amount
            if PaymentStatus(self.status) != target:
                self._move_to(target, source="merchant")
            self.refunded_at = now

        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                tenant_id=str(self.tenant_id),
                amount=amount,
                refunded_amount=self.refunded_amount,
                refunded_at=now,
            )
        )
        return target

    def cancel(self, reason=None):
        if PaymentStatus(self.status) != PaymentStatus.PENDING:
            raise ValidationError({"status": ["Only pending payments can be cancelled"]})

        with atomic_change(self):
            self.cancel_reason = reason
            self._move_to(PaymentStatus.CANCELLED, source="merchant")

        self.raise_(
            PaymentCancelled(
                payment_id=str(self.id),
                tenant_id=str(self.tenant_id),
                reason=reason,
                cancelled_at=self.cancelled_at,
            )
        )
