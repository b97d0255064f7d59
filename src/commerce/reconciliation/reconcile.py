"""Gateway reconciliation: applies webhook events to payments, orders and subscriptions.

The gateway delivers events at least once and in no particular order, so
every event is applied as "move forward if compatible" and never replayed
as a fixed sequence:

- the local payment is resolved by gateway id, then by external reference,
  and must belong to the customer named in the payload
- an event nobody here knows about (a reconciliation miss) is logged and
  acknowledged without recording anything
- otherwise the event's idempotency key is recorded in the same unit of
  work as its effects, so a redelivery is skipped even for effects that
  are not naturally idempotent (``total_payments``, ``failed_payments``)
- payment statuses are written compare-and-set against the status read
  when the event arrived; a payment that moved in between is reported
  stale and left for the redelivery
"""

import json
from datetime import UTC, date, datetime
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import String, Text
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.gateway.port import GatewayPayment
from commerce.payment.lookup import find_by_external_reference, find_by_gateway_id
from commerce.payment.order_sync import sync_order_with_payment
from commerce.payment.payment import Payment, PaymentStatus, PaymentType, TransitionOutcome
from commerce.reconciliation.processed import ProcessedWebhook, idempotency_key
from commerce.shared.money import to_cents
from commerce.shared.tenancy import TenantScope
from commerce.subscription.subscription import Subscription, SubscriptionStatus

logger = structlog.get_logger(__name__)


class ReconciliationOutcome(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    INCOMPATIBLE = "incompatible"
    STALE = "stale"
    DUPLICATE = "duplicate"
    MISS = "miss"
    IGNORED = "ignored"
    FAILED = "failed"


# Checked in this order: subscription payment events share the SUBSCRIPTION_ prefix
SUBSCRIPTION_PAYMENT = "SUBSCRIPTION_PAYMENT_"
PAYMENT = "PAYMENT_"
SUBSCRIPTION = "SUBSCRIPTION_"
TRANSFER = "TRANSFER_"
ANTICIPATION = "ANTICIPATION_"
EVENT_PREFIXES = (SUBSCRIPTION_PAYMENT, PAYMENT, SUBSCRIPTION, TRANSFER, ANTICIPATION)

PAYMENT_EVENT_STATUSES = {
    "CONFIRMED": PaymentStatus.CONFIRMED,
    "RECEIVED": PaymentStatus.RECEIVED,
    "OVERDUE": PaymentStatus.OVERDUE,
    "REFUNDED": PaymentStatus.REFUNDED,
    "DELETED": PaymentStatus.CANCELLED,
    "CANCELLED": PaymentStatus.CANCELLED,
    "CREDIT_CARD_CAPTURE_REFUSED": PaymentStatus.FAILED,
    "REPROVED_BY_RISK_ANALYSIS": PaymentStatus.FAILED,
}

_TRANSITION_OUTCOMES = {
    TransitionOutcome.APPLIED: ReconciliationOutcome.APPLIED,
    TransitionOutcome.UNCHANGED: ReconciliationOutcome.UNCHANGED,
    TransitionOutcome.INCOMPATIBLE: ReconciliationOutcome.INCOMPATIBLE,
    TransitionOutcome.STALE: ReconciliationOutcome.STALE,
}


def split_event(event: str) -> tuple[str | None, str]:
    """``("PAYMENT_", "CONFIRMED")`` for ``PAYMENT_CONFIRMED``; ``(None, event)`` when unknown."""
    for prefix in EVENT_PREFIXES:
        if event.startswith(prefix):
            return prefix, event[len(prefix) :]
    return None, event


def _parse_date(value):
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning("Ignoring unparseable gateway date", value=value)
        return None


def _find_subscription(gateway_subscription_id):
    if not gateway_subscription_id:
        return None
    results = (
        current_domain.repository_for(Subscription)
        ._dao.query.filter(gateway_subscription_id=gateway_subscription_id)
        .all()
        .items
    )
    return results[0] if results else None


def _customer_matches(resource, data) -> bool:
    customer = data.get("customer")
    return not customer or not resource.customer_id or str(customer) == str(resource.customer_id)


def _already_processed(key) -> bool:
    try:
        current_domain.repository_for(ProcessedWebhook).get(key)
    except ObjectNotFoundError:
        return False
    return True


def _record(key, event, tenant_id, resource_id, outcome):
    current_domain.repository_for(ProcessedWebhook).add(
        ProcessedWebhook(
            key=key,
            event=event,
            tenant_id=tenant_id,
            resource_id=str(resource_id),
            outcome=outcome.value,
            processed_at=datetime.now(UTC),
        )
    )


@commerce.command(part_of="ProcessedWebhook")
class ReconcileGatewayEvent:
    """One webhook delivery, as received."""

    event = String(required=True, max_length=100)
    body = Text(required=True)  # JSON payload as delivered


@commerce.command_handler(part_of=ProcessedWebhook)
class ReconcileGatewayEventHandler:
    @handle(ReconcileGatewayEvent)
    def reconcile(self, command):
        payload = json.loads(command.body)
        key = idempotency_key(payload)
        if _already_processed(key):
            logger.info("Skipping already processed gateway event", gateway_event=command.event, key=key)
            return ReconciliationOutcome.DUPLICATE.value

        prefix, action = split_event(command.event)
        if prefix in (SUBSCRIPTION_PAYMENT, PAYMENT):
            outcome = self._reconcile_payment(key, command.event, action, payload.get("payment") or {})
        elif prefix == SUBSCRIPTION:
            outcome = self._reconcile_subscription(key, command.event, action, payload.get("subscription") or {})
        elif prefix in (TRANSFER, ANTICIPATION):
            logger.info("Acknowledged gateway event", gateway_event=command.event)
            outcome = ReconciliationOutcome.IGNORED
        else:
            logger.info("Ignoring unknown gateway event", gateway_event=command.event)
            outcome = ReconciliationOutcome.IGNORED
        return outcome.value

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def _reconcile_payment(self, key, event, action, data):
        payment = find_by_gateway_id(data.get("id")) or find_by_external_reference(data.get("externalReference"))
        if payment is not None and not _customer_matches(payment, data):
            logger.warning(
                "Gateway payment customer does not match",
                gateway_event=event,
                payment_id=str(payment.id),
                gateway_customer=data.get("customer"),
            )
            payment = None

        if payment is None:
            if action == "CREATED":
                return self._register_subscription_invoice(key, event, data)
            logger.warning(
                "Reconciliation miss: unknown gateway payment",
                gateway_event=event,
                gateway_payment_id=data.get("id"),
                external_reference=data.get("externalReference"),
            )
            return ReconciliationOutcome.MISS

        target = PAYMENT_EVENT_STATUSES.get(action)
        if target is None:
            logger.info("Acknowledged gateway event", gateway_event=event, payment_id=str(payment.id))
            return ReconciliationOutcome.IGNORED

        observed = payment.status
        scope = TenantScope(payment.tenant_id)
        payment = scope.get(Payment, payment.id)
        outcome = _TRANSITION_OUTCOMES[payment.apply_gateway_status(target.value, expected_status=observed)]
        if outcome == ReconciliationOutcome.STALE:
            # Not recorded: a redelivery is evaluated again against the new status
            logger.warning(
                "Gateway payment changed while the event was handled",
                gateway_event=event,
                payment_id=str(payment.id),
                observed_status=observed,
                current_status=payment.status,
            )
            return outcome
        _record(key, event, payment.tenant_id, payment.id, outcome)

        if outcome != ReconciliationOutcome.APPLIED:
            logger.info(
                "Gateway payment event not applied",
                gateway_event=event,
                payment_id=str(payment.id),
                current_status=payment.status,
                outcome=outcome.value,
            )
            return outcome

        scope.add(payment)
        logger.info(
            "Payment status reconciled",
            gateway_event=event,
            tenant_id=str(payment.tenant_id),
            payment_id=str(payment.id),
            previous_status=observed,
            new_status=payment.status,
        )

        sync_order_with_payment(payment)
        if PaymentType(payment.payment_type) == PaymentType.SUBSCRIPTION:
            self._sync_subscription_with_payment(payment, target, data)
        return outcome

    def _register_subscription_invoice(self, key, event, data):
        """Record a renewal invoice the gateway issued for a known subscription."""
        subscription = _find_subscription(data.get("subscription"))
        if subscription is None or not data.get("id") or not _customer_matches(subscription, data):
            logger.warning("Reconciliation miss: invoice for unknown subscription", gateway_event=event)
            return ReconciliationOutcome.MISS

        scope = TenantScope(subscription.tenant_id)
        number = len(scope.filter(Payment, subscription_id=str(subscription.id))) + 1
        amount = to_cents(data["value"]) if data.get("value") is not None else subscription.amount
        invoice = GatewayPayment(
            id=data["id"],
            status=data.get("status") or "PENDING",
            amount=amount,
            due_date=_parse_date(data.get("dueDate")),
            invoice_url=data.get("invoiceUrl"),
            external_reference=data.get("externalReference"),
        )
        payment = Payment.create(
            tenant_id=subscription.tenant_id,
            amount=amount,
            gateway_payment=invoice,
            payment_type=PaymentType.SUBSCRIPTION.value,
            subscription_id=str(subscription.id),
            billing_type=data.get("billingType") or subscription.gateway_billing_type,
            customer_id=subscription.customer_id,
            customer_name=subscription.customer_name,
            customer_email=subscription.customer_email,
            external_reference=f"subscription-{subscription.id}-payment-{number}",
            description=f"Payment {number} for subscription to {subscription.plan_name}",
        )
        _record(key, event, subscription.tenant_id, payment.id, ReconciliationOutcome.APPLIED)
        scope.add(payment)

        logger.info(
            "Subscription invoice registered",
            tenant_id=str(subscription.tenant_id),
            subscription_id=str(subscription.id),
            payment_id=str(payment.id),
            gateway_payment_id=invoice.id,
        )
        return ReconciliationOutcome.APPLIED

    def _sync_subscription_with_payment(self, payment, target, data):
        scope = TenantScope(payment.tenant_id)
        try:
            subscription = scope.get(Subscription, payment.subscription_id)
        except ObjectNotFoundError:
            logger.warning("Payment references a missing subscription", payment_id=str(payment.id))
            return

        if target == PaymentStatus.OVERDUE:
            subscription.record_payment_overdue()
        elif target in (PaymentStatus.CONFIRMED, PaymentStatus.RECEIVED):
            subscription.record_payment_received(
                paid_on=_parse_date(data.get("paymentDate") or data.get("confirmedDate"))
            )
        else:
            return
        scope.add(subscription)

    # -------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------
    def _reconcile_subscription(self, key, event, action, data):
        subscription = _find_subscription(data.get("id"))
        if subscription is None or not _customer_matches(subscription, data):
            logger.warning(
                "Reconciliation miss: unknown gateway subscription",
                gateway_event=event,
                gateway_subscription_id=data.get("id"),
            )
            return ReconciliationOutcome.MISS

        if action == "CREATED":
            return ReconciliationOutcome.IGNORED

        changed = False
        if action == "UPDATED":
            changed = subscription.apply_gateway_update(
                amount=to_cents(data["value"]) if data.get("value") is not None else None,
                gateway_cycle=data.get("cycle"),
                next_billing_date=_parse_date(data.get("nextDueDate")),
            )
        elif action in ("DELETED", "CANCELLED"):
            if not subscription.is_closed:
                subscription.cancel(reason="Cancelled at the gateway")
                changed = True
        elif action == "RENEWED":
            renewable = SubscriptionStatus(subscription.status) in (
                SubscriptionStatus.ACTIVE,
                SubscriptionStatus.OVERDUE,
            )
            if renewable:
                changed = subscription.renew(next_billing_date=_parse_date(data.get("nextDueDate")))
        else:
            logger.info("Acknowledged gateway event", gateway_event=event, subscription_id=str(subscription.id))
            return ReconciliationOutcome.IGNORED

        outcome = ReconciliationOutcome.APPLIED if changed else ReconciliationOutcome.UNCHANGED
        _record(key, event, subscription.tenant_id, subscription.id, outcome)
        if changed:
            TenantScope(subscription.tenant_id).add(subscription)
        logger.info(
            "Subscription reconciled",
            gateway_event=event,
            subscription_id=str(subscription.id),
            status=subscription.status,
            outcome=outcome.value,
        )
        return outcome
