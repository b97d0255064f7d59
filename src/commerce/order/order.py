"""Order aggregate (CQRS): the immutable record of one checkout.

An order is created once, from exactly one cart, by snapshotting its items,
addresses and totals. After creation the monetary fields never change;
only ``refunded_amount`` grows, and never past ``total``.

Status lives on three axes (see ``commerce.order.transitions``). The rules
for moving along them are pure functions there; this aggregate applies the
outcome, stamps the matching timestamps and raises the events.
"""

from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    Date,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from commerce.domain import commerce
from commerce.order.events import (
    OrderCancelled,
    OrderFulfillmentStatusChanged,
    OrderItemStatusChanged,
    OrderPaymentAttached,
    OrderPaymentStatusChanged,
    OrderPlaced,
    OrderRefunded,
    OrderStatusChanged,
    OrderTrackingAdded,
)
from commerce.order.transitions import (
    AWAITING_PAYMENT,
    TERMINAL_ORDER_STATUSES,
    FulfillmentStatus,
    OrderItemStatus,
    OrderStatus,
    PaymentStatus,
    Rejection,
    cancel_transition,
    fulfillment_status_transition,
    item_status_transition,
    order_status_transition,
    payment_status_transition,
    refund_transition,
)
from commerce.shared.address import Address

# Timestamp stamped when the order reaches a status
_STATUS_TIMESTAMPS = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}

_ITEM_TIMESTAMPS = {
    OrderItemStatus.SHIPPED: "shipped_at",
    OrderItemStatus.DELIVERED: "delivered_at",
    OrderItemStatus.CANCELLED: "cancelled_at",
    OrderItemStatus.REFUNDED: "refunded_at",
}


def _unwrap(outcome):
    if isinstance(outcome, Rejection):
        raise outcome.as_error()
    return outcome


@commerce.entity(part_of="Order")
class OrderItem:
    """A line copied from the cart at checkout; prices are locked from then on."""

    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(max_length=255)
    sku = String(max_length=100)
    unit_price = Integer(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    total_price = Integer(required=True, min_value=0)
    weight = Float(default=0.0)
    requires_shipping = Boolean(default=True)
    is_digital = Boolean(default=False)
    is_service = Boolean(default=False)
    item_status = String(choices=OrderItemStatus, default=OrderItemStatus.PENDING.value)
    shipped_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    refunded_at = DateTime()


@commerce.aggregate
class Order:
    tenant_id = Identifier(required=True)
    order_number = String(required=True, max_length=50, unique=True)
    cart_id = Identifier(required=True)
    user_id = Identifier()
    customer_id = String(max_length=255)  # customer id at the payment gateway
    customer_email = String(max_length=254)
    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)
    is_guest_checkout = Boolean(default=False)

    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    fulfillment_status = String(choices=FulfillmentStatus, default=FulfillmentStatus.UNFULFILLED.value)

    items = HasMany(OrderItem)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)

    subtotal = Integer(default=0)
    tax_amount = Integer(default=0)
    discount_amount = Integer(default=0)
    shipping_amount = Integer(default=0)
    total = Integer(default=0)
    refunded_amount = Integer(default=0)

    coupon_code = String(max_length=100)
    shipping_method_id = Identifier()
    payment_method_id = Identifier()
    payment_method_name = String(max_length=255)
    payment_transaction_id = Identifier()

    has_physical_items = Boolean(default=False)
    has_digital_items = Boolean(default=False)
    has_services = Boolean(default=False)

    notes = Text()
    admin_notes = Text()
    cancel_reason = String(max_length=500)
    tracking_number = String(max_length=255)
    tracking_url = String(max_length=1000)
    estimated_delivery_date = Date()

    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()
    refunded_at = DateTime()

    @invariant.post
    def refunded_amount_must_stay_within_total(self):
        refunded = self.refunded_amount or 0
        if refunded < 0 or refunded > (self.total or 0):
            raise ValidationError({"refunded_amount": ["Refunded amount must be between zero and the order total"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, cart, order_number, payment_method, customer=None, notes=None):
        """Snapshot ``cart`` into a new order.

        ``customer`` is a dict with optional ``customer_id`` (gateway customer),
        ``email``, ``name`` and ``phone``.
        """
        customer = customer or {}
        now = datetime.now(UTC)

        order = cls(
            tenant_id=cart.tenant_id,
            order_number=order_number,
            cart_id=str(cart.id),
            user_id=cart.user_id,
            customer_id=customer.get("customer_id"),
            customer_email=customer.get("email"),
            customer_name=customer.get("name"),
            customer_phone=customer.get("phone"),
            is_guest_checkout=not cart.user_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            fulfillment_status=FulfillmentStatus.UNFULFILLED.value,
            shipping_address=cart.shipping_address,
            billing_address=cart.billing_address,
            subtotal=cart.subtotal or 0,
            tax_amount=cart.tax_amount or 0,
            discount_amount=cart.discount_amount or 0,
            shipping_amount=cart.shipping_amount or 0,
            total=cart.total or 0,
            refunded_amount=0,
            coupon_code=cart.coupon_code,
            shipping_method_id=cart.shipping_method_id,
            payment_method_id=str(payment_method.id),
            payment_method_name=payment_method.name,
            has_physical_items=any(i.requires_shipping for i in cart.items),
            has_digital_items=any(i.is_digital for i in cart.items),
            has_services=any(i.is_service for i in cart.items),
            notes=notes,
            created_at=now,
            updated_at=now,
        )

        for cart_item in cart.items:
            order.add_items(
                OrderItem(
                    product_id=cart_item.product_id,
                    variant_id=cart_item.variant_id,
                    name=cart_item.name,
                    sku=cart_item.sku,
                    unit_price=cart_item.unit_price,
                    quantity=cart_item.quantity,
                    total_price=cart_item.unit_price * cart_item.quantity,
                    weight=cart_item.weight or 0.0,
                    requires_shipping=cart_item.requires_shipping,
                    is_digital=cart_item.is_digital,
                    is_service=cart_item.is_service,
                    item_status=OrderItemStatus.PENDING.value,
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                tenant_id=str(order.tenant_id),
                order_number=order_number,
                cart_id=str(cart.id),
                user_id=str(cart.user_id) if cart.user_id else None,
                total=order.total,
                item_count=len(order.items),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Status helpers
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_ORDER_STATUSES

    @property
    def is_awaiting_payment(self) -> bool:
        return OrderStatus(self.status) in AWAITING_PAYMENT

    def _stamp(self, status: OrderStatus, now):
        field_name = _STATUS_TIMESTAMPS.get(status)
        if field_name:
            setattr(self, field_name, now)

    def _set_status(self, target: OrderStatus, now):
        previous = self.status
        self.status = target.value
        self._stamp(target, now)
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_status=previous,
                new_status=target.value,
                changed_at=now,
            )
        )

    def _set_payment_status(self, target: PaymentStatus, now):
        previous = self.payment_status
        if previous == target.value:
            return
        self.payment_status = target.value
        self.updated_at = now
        self.raise_(
            OrderPaymentStatusChanged(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_status=previous,
                new_status=target.value,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Order status axis
    # -------------------------------------------------------------------
    def update_status(self, new_status):
        """Merchant/admin status change.

        ``paid`` also forces the payment axis to paid; ``refunded`` forces it
        to refunded and records the whole total as refunded. Setting the
        current status again is a no-op.
        """
        current = OrderStatus(self.status)
        target = _unwrap(order_status_transition(current, OrderStatus(new_status)))
        if target == current:
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            self._set_status(target, now)
            if target == OrderStatus.PAID:
                self._set_payment_status(PaymentStatus.PAID, now)
            elif target == OrderStatus.REFUNDED:
                self._set_payment_status(PaymentStatus.REFUNDED, now)
                self.refunded_amount = self.total or 0

    def cancel(self, reason=None):
        current = OrderStatus(self.status)
        _unwrap(cancel_transition(current))

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = OrderStatus.CANCELLED.value
            self.cancel_reason = reason
            self.cancelled_at = now
            self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_status=current.value,
                reason=reason,
                cancelled_at=now,
            )
        )

    def refund(self, amount, reason=None):
        """Refund ``amount`` cents; a refund of at least ``total`` is a full refund.

        Not deduplicated: calling it twice refunds twice (the second call is
        rejected anyway, because the payment axis is no longer ``paid``).
        """
        outcome = _unwrap(
            refund_transition(
                OrderStatus(self.status),
                PaymentStatus(self.payment_status),
                self.total or 0,
                self.refunded_amount or 0,
                amount,
            )
        )

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = outcome.order_status.value
            self.payment_status = outcome.payment_status.value
            self.refunded_amount = outcome.refunded_amount
            self.refunded_at = now
            self.updated_at = now

        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                amount=amount,
                refunded_amount=self.refunded_amount,
                is_full_refund=outcome.is_full_refund,
                reason=reason,
                refunded_at=now,
            )
        )
        return outcome

    # -------------------------------------------------------------------
    # Payment axis
    # -------------------------------------------------------------------
    def update_payment_status(self, new_status):
        """Move the payment axis; paid/refunded/failed drag the order status along."""
        current = PaymentStatus(self.payment_status)
        target = _unwrap(payment_status_transition(current, PaymentStatus(new_status)))
        if target == current:
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            self._set_payment_status(target, now)
            if self.is_terminal:
                return
            awaiting = self.is_awaiting_payment or OrderStatus(self.status) == OrderStatus.PROCESSING
            if target == PaymentStatus.PAID and awaiting:
                self._set_status(OrderStatus.PAID, now)
            elif target == PaymentStatus.REFUNDED:
                self.refunded_amount = self.total or 0
                self._set_status(OrderStatus.REFUNDED, now)
            elif target == PaymentStatus.FAILED and self.is_awaiting_payment:
                self._set_status(OrderStatus.PAYMENT_FAILED, now)

    def attach_payment(self, payment_id):
        """Link the gateway payment created for this order and wait for it."""
        if not self.is_awaiting_payment:
            raise ValidationError({"status": ["Order is not awaiting payment"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.payment_transaction_id = payment_id
            if OrderStatus(self.status) != OrderStatus.PENDING_PAYMENT:
                self._set_status(OrderStatus.PENDING_PAYMENT, now)
            if PaymentStatus(self.payment_status) == PaymentStatus.FAILED:
                self._set_payment_status(PaymentStatus.PENDING, now)

        self.raise_(OrderPaymentAttached(order_id=str(self.id), payment_id=str(payment_id)))

    # -------------------------------------------------------------------
    # Fulfillment axis
    # -------------------------------------------------------------------
    def update_fulfillment_status(self, new_status):
        """Explicit fulfillment change; ``fulfilled`` ships a non-terminal order."""
        current = FulfillmentStatus(self.fulfillment_status)
        target = _unwrap(fulfillment_status_transition(current, FulfillmentStatus(new_status)))
        if target == current:
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            self.fulfillment_status = target.value
            self.updated_at = now
            if target == FulfillmentStatus.FULFILLED:
                self.shipped_at = now
                if not self.is_terminal and OrderStatus(self.status) != OrderStatus.SHIPPED:
                    self._set_status(OrderStatus.SHIPPED, now)

        self.raise_(
            OrderFulfillmentStatusChanged(
                order_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_status=current.value,
                new_status=target.value,
                changed_at=now,
            )
        )

    def add_tracking(self, tracking_number, tracking_url=None, estimated_delivery_date=None):
        if not tracking_number:
            raise ValidationError({"tracking_number": ["Tracking number is required"]})
        if self.is_terminal:
            raise ValidationError({"status": [f"Order is {self.status} and cannot be tracked"]})

        with atomic_change(self):
            self.tracking_number = tracking_number
            self.tracking_url = tracking_url
            self.estimated_delivery_date = estimated_delivery_date
            self.updated_at = datetime.now(UTC)

        if FulfillmentStatus(self.fulfillment_status) == FulfillmentStatus.UNFULFILLED:
            self.update_fulfillment_status(FulfillmentStatus.PARTIALLY_FULFILLED.value)

        self.raise_(
            OrderTrackingAdded(
                order_id=str(self.id),
                tracking_number=tracking_number,
                tracking_url=tracking_url,
            )
        )

    # -------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------
    def update_item_status(self, item_id, new_status):
        """Change one item's status and stamp its timestamp.

        Does not roll up into ``fulfillment_status``; that stays an explicit call.
        """
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in order"]})

        current = OrderItemStatus(item.item_status)
        target = _unwrap(item_status_transition(current, OrderItemStatus(new_status)))
        if target == current:
            return

        now = datetime.now(UTC)
        item.item_status = target.value
        field_name = _ITEM_TIMESTAMPS.get(target)
        if field_name:
            setattr(item, field_name, now)
        self.updated_at = now

        self.raise_(
            OrderItemStatusChanged(
                order_id=str(self.id),
                item_id=str(item.id),
                previous_status=current.value,
                new_status=target.value,
            )
        )

    # -------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------
    def add_admin_note(self, note):
        if not note:
            raise ValidationError({"note": ["Note cannot be empty"]})
        stamp = datetime.now(UTC).isoformat(timespec="seconds")
        entry = f"[{stamp}] {note}"
        self.admin_notes = f"{self.admin_notes}\n{entry}" if self.admin_notes else entry
        self.updated_at = datetime.now(UTC)
