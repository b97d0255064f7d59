"""Order status axes and their transition rules.

An order carries three independent status axes (order, payment,
fulfillment) plus a per-item status. Each axis has a pure transition
function that returns either the new state or a ``Rejection``; the Order
aggregate turns a rejection into a ``ValidationError``.

    OrderStatus:        pending → processing → paid → shipped → delivered → completed
                        side branches: pending_payment, payment_failed,
                        cancelled, refunded, partially_refunded
    PaymentStatus:      pending → paid | failed → refunded | partially_refunded
    FulfillmentStatus:  unfulfilled → partially_fulfilled → fulfilled → returned | partially_returned

Terminal order statuses (completed, cancelled, refunded) accept no further
status change, cancellation or refund.
"""

from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_FAILED = "payment_failed"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class FulfillmentStatus(Enum):
    UNFULFILLED = "unfulfilled"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    RETURNED = "returned"
    PARTIALLY_RETURNED = "partially_returned"


class OrderItemStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    COMPLETED = "completed"


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})

_NOT_CANCELLABLE = frozenset({OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.CANCELLED})

# Statuses in which the order is still waiting for its money
AWAITING_PAYMENT = frozenset({OrderStatus.PENDING, OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_FAILED})

_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING, PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),  # Terminal
}

_FULFILLMENT_TRANSITIONS = {
    FulfillmentStatus.UNFULFILLED: {FulfillmentStatus.PARTIALLY_FULFILLED, FulfillmentStatus.FULFILLED},
    FulfillmentStatus.PARTIALLY_FULFILLED: {FulfillmentStatus.FULFILLED, FulfillmentStatus.PARTIALLY_RETURNED},
    FulfillmentStatus.FULFILLED: {FulfillmentStatus.RETURNED, FulfillmentStatus.PARTIALLY_RETURNED},
    FulfillmentStatus.PARTIALLY_RETURNED: {FulfillmentStatus.RETURNED},
    FulfillmentStatus.RETURNED: set(),  # Terminal
}

_FINAL_ITEM_STATUSES = frozenset({OrderItemStatus.CANCELLED, OrderItemStatus.REFUNDED})


@dataclass(frozen=True)
class Rejection:
    """Why a transition is not allowed."""

    field: str
    reason: str

    def as_error(self) -> ValidationError:
        return ValidationError({self.field: [self.reason]})


@dataclass(frozen=True)
class RefundOutcome:
    order_status: OrderStatus
    payment_status: PaymentStatus
    refunded_amount: int
    is_full_refund: bool


def order_status_transition(current: OrderStatus, target: OrderStatus) -> OrderStatus | Rejection:
    if current in TERMINAL_ORDER_STATUSES:
        return Rejection("status", f"Order is {current.value} and cannot change status")
    if target == OrderStatus.CANCELLED and current in _NOT_CANCELLABLE:
        return Rejection("status", f"Cannot cancel an order that is {current.value}")
    return target


def cancel_transition(current: OrderStatus) -> OrderStatus | Rejection:
    if current in _NOT_CANCELLABLE or current in TERMINAL_ORDER_STATUSES:
        return Rejection("status", f"Cannot cancel an order that is {current.value}")
    return OrderStatus.CANCELLED


def payment_status_transition(current: PaymentStatus, target: PaymentStatus) -> PaymentStatus | Rejection:
    if current == target:
        return target
    if target not in _PAYMENT_TRANSITIONS.get(current, set()):
        return Rejection("payment_status", f"Cannot move payment status from {current.value} to {target.value}")
    return target


def fulfillment_status_transition(
    current: FulfillmentStatus, target: FulfillmentStatus
) -> FulfillmentStatus | Rejection:
    if current == target:
        return target
    if target not in _FULFILLMENT_TRANSITIONS.get(current, set()):
        return Rejection(
            "fulfillment_status",
            f"Cannot move fulfillment status from {current.value} to {target.value}",
        )
    return target


def item_status_transition(current: OrderItemStatus, target: OrderItemStatus) -> OrderItemStatus | Rejection:
    if current != target and current in _FINAL_ITEM_STATUSES:
        return Rejection("item_status", f"Item is {current.value} and cannot change status")
    return target


def refund_transition(
    order_status: OrderStatus,
    payment_status: PaymentStatus,
    total: int,
    refunded_amount: int,
    amount: int,
) -> RefundOutcome | Rejection:
    """Outcome of refunding ``amount`` cents; the amount is capped at what is left to refund."""
    if amount is None or amount <= 0:
        return Rejection("amount", "Refund amount must be positive")
    if order_status in TERMINAL_ORDER_STATUSES:
        return Rejection("status", f"Cannot refund an order that is {order_status.value}")
    if payment_status != PaymentStatus.PAID:
        return Rejection("payment_status", "Only paid orders can be refunded")

    is_full_refund = amount >= total
    remaining = max(total - (refunded_amount or 0), 0)
    if is_full_refund:
        return RefundOutcome(
            order_status=OrderStatus.REFUNDED,
            payment_status=PaymentStatus.REFUNDED,
            refunded_amount=(refunded_amount or 0) + remaining,
            is_full_refund=True,
        )
    return RefundOutcome(
        order_status=OrderStatus.PARTIALLY_REFUNDED,
        payment_status=PaymentStatus.PARTIALLY_REFUNDED,
        refunded_amount=(refunded_amount or 0) + min(amount, remaining),
        is_full_refund=False,
    )
