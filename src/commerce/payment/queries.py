"""Read-side lookups over tenant payments and their transaction ledgers."""

from protean.exceptions import ValidationError

from commerce.payment.payment import Payment, PaymentStatus, TransactionType
from commerce.shared.tenancy import TenantScope


def _choice(enum_cls, value, field):
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationError({field: [f"Unknown {field} `{value}`"]}) from None


def list_payments(tenant_id, order_id=None, subscription_id=None, status=None):
    """Payments of a tenant, newest first, optionally narrowed to an order, a subscription or a status."""
    filters = {}
    if order_id:
        filters["order_id"] = order_id
    if subscription_id:
        filters["subscription_id"] = subscription_id
    if status:
        filters["status"] = _choice(PaymentStatus, status, "status")
    payments = TenantScope(tenant_id).filter(Payment, **filters)
    return sorted(payments, key=lambda p: p.created_at, reverse=True)


def list_transactions(tenant_id, payment_id=None, transaction_type=None):
    """``(payment, transaction)`` pairs in ledger order.

    With ``payment_id`` only that payment's ledger is read (a payment of
    another tenant is not found); otherwise every ledger of the tenant.
    """
    scope = TenantScope(tenant_id)
    payments = [scope.get(Payment, payment_id)] if payment_id else scope.filter(Payment)
    wanted = _choice(TransactionType, transaction_type, "transaction_type") if transaction_type else None

    entries = [
        (payment, transaction)
        for payment in payments
        for transaction in payment.transactions
        if wanted is None or transaction.transaction_type == wanted
    ]
    return sorted(entries, key=lambda entry: entry[1].created_at)
