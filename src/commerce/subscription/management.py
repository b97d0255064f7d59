"""Subscription management: commands and handler.

Gateway calls happen before anything is saved; a ``GatewayError`` becomes a
``ValidationError`` and the unit of work is discarded, so a failed gateway
call leaves no local change behind.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Date, Identifier, Integer, String

from commerce.config import get_settings
from commerce.domain import commerce
from commerce.gateway import GatewayError, get_gateway
from commerce.gateway.port import SubscriptionRequest
from commerce.payment.payment import Payment, PaymentType
from commerce.payment_method.method import PaymentMethodType
from commerce.shared.tenancy import TenantScope
from commerce.subscription.subscription import (
    GATEWAY_CYCLES,
    Subscription,
    SubscriptionCycle,
    SubscriptionStatus,
    billing_type_for,
)

logger = structlog.get_logger(__name__)


@commerce.command(part_of="Subscription")
class CreateSubscription:
    tenant_id = Identifier(required=True)
    plan_id = String(required=True, max_length=100)
    plan_name = String(required=True, max_length=255)
    amount = Integer(required=True, min_value=0)
    cycle = String(choices=SubscriptionCycle, default=SubscriptionCycle.MONTHLY.value)
    user_id = Identifier()
    customer_id = String(max_length=255)
    customer_name = String(max_length=255)
    customer_email = String(max_length=254)
    payment_method = String(choices=PaymentMethodType)
    start_date = Date()
    is_trial = Boolean(default=False)
    trial_days = Integer(min_value=1)


@commerce.command(part_of="Subscription")
class ConvertTrialToActive:
    tenant_id = Identifier(required=True)
    subscription_id = Identifier(required=True)
    payment_method = String(required=True, choices=PaymentMethodType)


@commerce.command(part_of="Subscription")
class ChangeSubscriptionPlan:
    tenant_id = Identifier(required=True)
    subscription_id = Identifier(required=True)
    plan_id = String(required=True, max_length=100)
    plan_name = String(required=True, max_length=255)
    amount = Integer(required=True, min_value=0)
    cycle = String(choices=SubscriptionCycle)


@commerce.command(part_of="Subscription")
class CancelSubscription:
    tenant_id = Identifier(required=True)
    subscription_id = Identifier(required=True)
    reason = String(max_length=500)


def _gateway_failure(action, exc):
    return ValidationError({"gateway": [f"Failed to {action}: {exc.message}"]})


def _start_gateway_billing(scope, subscription, payment_method, next_due_date):
    """Create the recurring charge and record its first invoice as a payment."""
    gateway = get_gateway()
    billing_type = billing_type_for(payment_method) if payment_method else subscription.gateway_billing_type

    try:
        gateway_subscription = gateway.create_subscription(
            SubscriptionRequest(
                customer_id=subscription.customer_id or "",
                billing_type=billing_type,
                amount=subscription.amount,
                next_due_date=next_due_date,
                cycle=GATEWAY_CYCLES[SubscriptionCycle(subscription.cycle)],
                description=f"Subscription to {subscription.plan_name}",
                external_reference=str(subscription.id),
            )
        )
        invoices = gateway.list_subscription_payments(gateway_subscription.id)
    except GatewayError as exc:
        logger.error(
            "Gateway subscription creation failed",
            tenant_id=scope.tenant_id,
            subscription_id=str(subscription.id),
            error=exc.message,
        )
        raise _gateway_failure("create the subscription at the gateway", exc) from exc

    first_invoice = invoices[0] if invoices else None
    subscription.activate(
        gateway_subscription.id,
        first_due_date=first_invoice.due_date if first_invoice else gateway_subscription.next_due_date,
        payment_method=payment_method,
        invoiced=first_invoice is not None,
    )

    payment = None
    if first_invoice is not None:
        payment = Payment.create(
            tenant_id=scope.tenant_id,
            amount=subscription.amount,
            gateway_payment=first_invoice,
            payment_type=PaymentType.SUBSCRIPTION.value,
            subscription_id=str(subscription.id),
            billing_type=billing_type,
            customer_id=subscription.customer_id,
            customer_name=subscription.customer_name,
            customer_email=subscription.customer_email,
            external_reference=f"subscription-{subscription.id}-payment-1",
            description=f"Payment 1 for subscription to {subscription.plan_name}",
        )
    return payment


@commerce.command_handler(part_of=Subscription)
class ManageSubscriptionHandler:
    @handle(CreateSubscription)
    def create_subscription(self, command):
        scope = TenantScope(command.tenant_id)
        subscription = Subscription.create(
            tenant_id=command.tenant_id,
            plan_id=command.plan_id,
            plan_name=command.plan_name,
            amount=command.amount,
            cycle=command.cycle,
            start_date=command.start_date,
            customer={
                "customer_id": command.customer_id,
                "name": command.customer_name,
                "email": command.customer_email,
            },
            payment_method=command.payment_method,
            user_id=command.user_id,
        )

        payment = None
        if command.is_trial:
            subscription.start_trial(command.trial_days or get_settings().default_trial_days)
        else:
            payment = _start_gateway_billing(scope, subscription, command.payment_method, subscription.start_date)

        scope.add(subscription)
        if payment is not None:
            scope.add(payment)

        logger.info(
            "Subscription created",
            tenant_id=command.tenant_id,
            subscription_id=str(subscription.id),
            status=subscription.status,
            plan_id=subscription.plan_id,
        )
        return str(subscription.id)

    @handle(ConvertTrialToActive)
    def convert_trial(self, command):
        scope = TenantScope(command.tenant_id)
        subscription = scope.get(Subscription, command.subscription_id)
        if SubscriptionStatus(subscription.status) != SubscriptionStatus.TRIAL:
            raise ValidationError({"status": ["Only trial subscriptions can be converted to active"]})

        payment = _start_gateway_billing(
            scope, subscription, command.payment_method, datetime.now(UTC).date()
        )
        scope.add(subscription)
        if payment is not None:
            scope.add(payment)

        logger.info("Trial converted", tenant_id=command.tenant_id, subscription_id=str(subscription.id))
        return str(subscription.id)

    @handle(ChangeSubscriptionPlan)
    def change_plan(self, command):
        scope = TenantScope(command.tenant_id)
        subscription = scope.get(Subscription, command.subscription_id)
        # Validates status and amount locally first
        subscription.change_plan(command.plan_id, command.plan_name, command.amount, command.cycle)

        if subscription.gateway_subscription_id:
            try:
                get_gateway().update_subscription(
                    subscription.gateway_subscription_id,
                    amount=command.amount,
                    cycle=GATEWAY_CYCLES[SubscriptionCycle(command.cycle)] if command.cycle else None,
                    description=f"Subscription to {command.plan_name}",
                )
            except GatewayError as exc:
                raise _gateway_failure("change the plan at the gateway", exc) from exc

        scope.add(subscription)
        logger.info(
            "Subscription plan changed",
            tenant_id=command.tenant_id,
            subscription_id=str(subscription.id),
            plan_id=command.plan_id,
        )
        return subscription.plan_id

    @handle(CancelSubscription)
    def cancel_subscription(self, command):
        scope = TenantScope(command.tenant_id)
        subscription = scope.get(Subscription, command.subscription_id)
        if subscription.is_closed:
            raise ValidationError({"status": [f"Subscription is already {subscription.status}"]})

        if subscription.gateway_subscription_id:
            try:
                get_gateway().cancel_subscription(subscription.gateway_subscription_id)
            except GatewayError as exc:
                raise _gateway_failure("cancel the subscription at the gateway", exc) from exc

        subscription.cancel(command.reason)
        scope.add(subscription)
        logger.info("Subscription cancelled", tenant_id=command.tenant_id, subscription_id=str(subscription.id))
        return subscription.status
