"""Carry a payment's status over to the order it pays for.

Used both by merchant operations on payments and by gateway
reconciliation, inside the same unit of work as the payment change.
"""

import structlog
from protean.exceptions import ObjectNotFoundError

from commerce.order.order import Order
from commerce.order.transitions import PaymentStatus as OrderPaymentStatus
from commerce.payment.payment import PaymentStatus, PaymentType
from commerce.shared.tenancy import TenantScope

logger = structlog.get_logger(__name__)


def sync_order_with_payment(payment, refund_amount=None):
    """Update the order behind ``payment``; returns the order, or ``None`` when there is nothing to do."""
    if PaymentType(payment.payment_type) != PaymentType.ORDER or not payment.order_id:
        return None

    scope = TenantScope(payment.tenant_id)
    try:
        order = scope.get(Order, payment.order_id)
    except ObjectNotFoundError:
        logger.warning("Payment references a missing order", payment_id=str(payment.id), order_id=payment.order_id)
        return None

    if order.payment_transaction_id and str(order.payment_transaction_id) != str(payment.id):
        logger.info(
            "Ignoring status of a superseded payment",
            order_id=str(order.id),
            payment_id=str(payment.id),
            current_payment_id=str(order.payment_transaction_id),
        )
        return None

    status = PaymentStatus(payment.status)
    order_payment_status = OrderPaymentStatus(order.payment_status)
    changed = False

    if order.is_terminal:
        return None

    if status in (PaymentStatus.CONFIRMED, PaymentStatus.RECEIVED):
        if order_payment_status in (OrderPaymentStatus.PENDING, OrderPaymentStatus.FAILED):
            order.update_payment_status(OrderPaymentStatus.PAID.value)
            changed = True

    elif status in (PaymentStatus.OVERDUE, PaymentStatus.FAILED):
        if order_payment_status == OrderPaymentStatus.PENDING and order.is_awaiting_payment:
            order.update_payment_status(OrderPaymentStatus.FAILED.value)
            changed = True

    elif status == PaymentStatus.REFUNDED:
        if order_payment_status == OrderPaymentStatus.PAID:
            order.refund(order.total, reason="Payment refunded")
            changed = True
        elif order_payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED:
            order.update_payment_status(OrderPaymentStatus.REFUNDED.value)
            changed = True

    elif status == PaymentStatus.PARTIALLY_REFUNDED and refund_amount:
        if order_payment_status == OrderPaymentStatus.PAID:
            order.refund(refund_amount, reason="Payment partially refunded")
            changed = True

    if not changed:
        return None

    scope.add(order)
    logger.info(
        "Order updated from payment",
        order_id=str(order.id),
        payment_id=str(payment.id),
        payment_status=payment.status,
        order_status=order.status,
    )
    return order
