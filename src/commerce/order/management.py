"""Merchant/admin order operations: commands and handler."""

import structlog
from protean import handle
from protean.fields import Date, Identifier, Integer, String, Text

from commerce.domain import commerce
from commerce.order.order import Order
from commerce.order.transitions import FulfillmentStatus, OrderItemStatus, OrderStatus, PaymentStatus
from commerce.shared.tenancy import TenantScope

logger = structlog.get_logger(__name__)


@commerce.command(part_of="Order")
class UpdateOrderStatus:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)


@commerce.command(part_of="Order")
class CancelOrder:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@commerce.command(part_of="Order")
class RefundOrder:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True, min_value=1)  # cents
    reason = String(max_length=500)


@commerce.command(part_of="Order")
class UpdateOrderPaymentStatus:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_status = String(required=True, choices=PaymentStatus)


@commerce.command(part_of="Order")
class UpdateOrderFulfillmentStatus:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    fulfillment_status = String(required=True, choices=FulfillmentStatus)


@commerce.command(part_of="Order")
class UpdateOrderItemStatus:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    status = String(required=True, choices=OrderItemStatus)


@commerce.command(part_of="Order")
class AddOrderTracking:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    tracking_number = String(required=True, max_length=255)
    tracking_url = String(max_length=1000)
    estimated_delivery_date = Date()


@commerce.command(part_of="Order")
class AddOrderAdminNote:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    note = Text(required=True)


@commerce.command_handler(part_of=Order)
class ManageOrderHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)
        order.update_status(command.status)
        scope.add(order)

    @handle(CancelOrder)
    def cancel(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)
        order.cancel(reason=command.reason)
        scope.add(order)
        logger.info("Order cancelled", tenant_id=command.tenant_id, order_id=command.order_id)

    @handle(RefundOrder)
    def refund(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)
        outcome = order.refund(command.amount, reason=command.reason)
        scope.add(order)
        logger.info(
            "Order refunded",
            tenant_id=command.tenant_id,
            order_id=command.order_id,
            amount=command.amount,
            full_refund=outcome.is_full_refund,
        )
        return order.status

    @handle(UpdateOrderPaymentStatus)
    def update_payment_status(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)
        order.update_payment_status(command.payment_status)
        scope.add(order)

    @handle(UpdateOrderFulfillmentStatus)
    def update_fulfillment_status(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)
        order.update_fulfillment_status(command.fulfillment_status)
        scope.add(order)

    @handle(UpdateOrderItemStatus)
    def update_item_status(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)
        order.update_item_status(command.item_id, command.status)
        scope.add(order)

    @handle(AddOrderTracking)
    def add_tracking(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)
        order.add_tracking(
            command.tracking_number,
            tracking_url=command.tracking_url,
            estimated_delivery_date=command.estimated_delivery_date,
        )
        scope.add(order)

    @handle(AddOrderAdminNote)
    def add_admin_note(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)
        order.add_admin_note(command.note)
        scope.add(order)
