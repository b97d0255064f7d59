"""Domain events for the Order aggregate."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="Order")
class OrderPlaced:
    """A cart was converted into an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    order_number = String(required=True)
    cart_id = Identifier(required=True)
    user_id = Identifier()
    total = Integer(required=True)
    item_count = Integer(required=True)
    placed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderPaymentStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderFulfillmentStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderItemStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)


@commerce.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderRefunded:
    """Money went back to the customer; ``is_full_refund`` tells refunded from partially refunded."""

    __version__ = 1

    order_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    amount = Integer(required=True)
    refunded_amount = Integer(required=True)
    is_full_refund = Boolean(default=False)
    reason = String(max_length=500)
    refunded_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderPaymentAttached:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)


@commerce.event(part_of="Order")
class OrderTrackingAdded:
    __version__ = 1

    order_id = Identifier(required=True)
    tracking_number = String(required=True)
    tracking_url = String(max_length=1000)
