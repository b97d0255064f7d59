"""Read-side lookups over tenant subscriptions."""

from protean.exceptions import ValidationError

from commerce.shared.tenancy import TenantScope
from commerce.subscription.subscription import Subscription, SubscriptionStatus


def list_subscriptions(tenant_id, status=None, user_id=None):
    """Subscriptions of a tenant, newest first."""
    filters = {}
    if status:
        try:
            filters["status"] = SubscriptionStatus(status).value
        except ValueError:
            raise ValidationError({"status": [f"Unknown status `{status}`"]}) from None
    if user_id:
        filters["user_id"] = user_id
    subscriptions = TenantScope(tenant_id).filter(Subscription, **filters)
    return sorted(subscriptions, key=lambda s: s.created_at, reverse=True)
