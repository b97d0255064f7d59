"""Domain events for the Payment aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="Payment")
class PaymentCreated:
    """A charge was registered at the gateway and recorded locally."""

    __version__ = 1

    payment_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    payment_type = String(required=True)
    order_id = Identifier()
    subscription_id = Identifier()
    amount = Integer(required=True)
    gateway_payment_id = String()
    external_reference = String()
    created_at = DateTime(required=True)


@commerce.event(part_of="Payment")
class PaymentStatusChanged:
    __version__ = 1

    payment_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    source = String(max_length=50)  # gateway | merchant
    changed_at = DateTime(required=True)


@commerce.event(part_of="Payment")
class PaymentRefunded:
    __version__ = 1

    payment_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    amount = Integer(required=True)
    refunded_amount = Integer(required=True)
    refunded_at = DateTime(required=True)


@commerce.event(part_of="Payment")
class PaymentCancelled:
    __version__ = 1

    payment_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)
