"""Domain events for the Subscription aggregate."""

from protean.fields import Date, DateTime, Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="Subscription")
class SubscriptionCreated:
    __version__ = 1

    subscription_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    plan_id = String(required=True)
    cycle = String(required=True)
    amount = Integer(required=True)
    created_at = DateTime(required=True)


@commerce.event(part_of="Subscription")
class SubscriptionTrialStarted:
    __version__ = 1

    subscription_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    trial_end_date = Date(required=True)


@commerce.event(part_of="Subscription")
class SubscriptionActivated:
    """Billing started at the gateway, either at creation or after a trial."""

    __version__ = 1

    subscription_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    gateway_subscription_id = String(required=True)
    next_billing_date = Date()
    activated_at = DateTime(required=True)


@commerce.event(part_of="Subscription")
class SubscriptionPlanChanged:
    __version__ = 1

    subscription_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_plan_id = String()
    plan_id = String(required=True)
    amount = Integer(required=True)
    cycle = String(required=True)
    changed_at = DateTime(required=True)


@commerce.event(part_of="Subscription")
class SubscriptionRenewed:
    __version__ = 1

    subscription_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_billing_date = Date()
    next_billing_date = Date(required=True)
    total_payments = Integer(required=True)
    renewed_at = DateTime(required=True)


@commerce.event(part_of="Subscription")
class SubscriptionStatusChanged:
    __version__ = 1

    subscription_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@commerce.event(part_of="Subscription")
class SubscriptionCancelled:
    __version__ = 1

    subscription_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)
