"""Read-side lookups over tenant orders."""

from protean.exceptions import ObjectNotFoundError

from commerce.order.order import Order
from commerce.order.transitions import OrderStatus
from commerce.shared.tenancy import TenantScope


def list_orders(tenant_id, status=None):
    """Orders of a tenant, newest first, optionally narrowed to one status."""
    scope = TenantScope(tenant_id)
    filters = {"status": OrderStatus(status).value} if status else {}
    return sorted(scope.filter(Order, **filters), key=lambda o: o.created_at, reverse=True)


def find_by_order_number(tenant_id, order_number):
    order = TenantScope(tenant_id).first(Order, order_number=order_number)
    if order is None:
        raise ObjectNotFoundError(f"Order `{order_number}` not found")
    return order
