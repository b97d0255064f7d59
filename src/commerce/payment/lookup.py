"""Payment lookups by gateway id and by external reference."""

from protean.utils.globals import current_domain

from commerce.payment.payment import Payment


def _query(**filters):
    return current_domain.repository_for(Payment)._dao.query.filter(**filters).all().items


def find_by_gateway_id(gateway_payment_id, tenant_id=None):
    if not gateway_payment_id:
        return None
    filters = {"gateway_payment_id": gateway_payment_id}
    if tenant_id:
        filters["tenant_id"] = tenant_id
    results = _query(**filters)
    return results[0] if results else None


def find_by_external_reference(external_reference, tenant_id=None):
    """Most recent payment carrying ``external_reference``, preferring live ones."""
    if not external_reference:
        return None
    filters = {"external_reference": external_reference}
    if tenant_id:
        filters["tenant_id"] = tenant_id
    results = sorted(_query(**filters), key=lambda p: (p.is_live, p.created_at), reverse=True)
    return results[0] if results else None
