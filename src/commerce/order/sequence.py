"""Per-tenant, per-day order number sequence.

Order numbers look like ``{PREFIX}{YYMMDD}{NNNN}``: the first three
characters of the tenant id upper-cased, the order date, and a four digit
counter that restarts every day. The counter is an aggregate of its own,
keyed ``{tenant_id}:{YYMMDD}``, incremented inside the unit of work that
creates the order. ``Order.order_number`` is unique, so a number that is
already taken is skipped and the next one is tried.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.order.order import Order

MAX_NUMBER_ATTEMPTS = 5


@commerce.aggregate
class OrderSequence:
    key = String(identifier=True, max_length=100)  # {tenant_id}:{YYMMDD}
    tenant_id = Identifier(required=True)
    day = String(required=True, max_length=6)
    last_value = Integer(default=0)

    def next_value(self) -> int:
        self.last_value = (self.last_value or 0) + 1
        return self.last_value


def order_number_prefix(tenant_id) -> str:
    return str(tenant_id)[:3].upper()


def format_order_number(tenant_id, day: str, value: int) -> str:
    return f"{order_number_prefix(tenant_id)}{day}{value:04d}"


def _number_taken(order_number) -> bool:
    repo = current_domain.repository_for(Order)
    return bool(repo._dao.query.filter(order_number=order_number).all().items)


def next_order_number(tenant_id, now: datetime | None = None) -> str:
    """Reserve the next order number for ``tenant_id`` on ``now``'s date."""
    day = (now or datetime.now(UTC)).strftime("%y%m%d")
    key = f"{tenant_id}:{day}"

    repo = current_domain.repository_for(OrderSequence)
    try:
        sequence = repo.get(key)
    except ObjectNotFoundError:
        sequence = OrderSequence(key=key, tenant_id=tenant_id, day=day, last_value=0)

    for _ in range(MAX_NUMBER_ATTEMPTS):
        order_number = format_order_number(tenant_id, day, sequence.next_value())
        if not _number_taken(order_number):
            repo.add(sequence)
            return order_number

    raise ValidationError({"order_number": ["Could not allocate a unique order number"]})
