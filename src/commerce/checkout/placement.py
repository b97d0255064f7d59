"""Order placement: converts a validated cart into an order.

Preconditions are checked in a fixed order and the first failure aborts
the command, so no order is created:

1. the cart exists and belongs to the tenant (not found)
2. the cart has not been converted or abandoned already
3. the cart has items
4. a shipping address is present when any item ships
5. a billing address is present
6. the payment method exists (not found) and is active

The cart is abandoned in the same unit of work, so it produces at most one
order.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text

from commerce.cart.cart import Cart
from commerce.domain import commerce
from commerce.order.order import Order
from commerce.order.sequence import next_order_number
from commerce.payment_method.method import PaymentMethod
from commerce.shared.tenancy import TenantScope

logger = structlog.get_logger(__name__)


@commerce.command(part_of="Order")
class PlaceOrder:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    payment_method_id = Identifier(required=True)
    customer_id = String(max_length=255)  # customer id at the payment gateway
    customer_email = String(max_length=254)
    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)
    notes = Text()


def _check_cart(cart):
    if cart.is_abandoned:
        raise ValidationError({"cart": ["Cart has already been checked out or abandoned"]})
    if not cart.items:
        raise ValidationError({"cart": ["Cart is empty"]})
    if cart.requires_shipping and not cart.shipping_address:
        raise ValidationError({"shipping_address": ["Shipping address is required for physical items"]})
    if not cart.billing_address:
        raise ValidationError({"billing_address": ["Billing address is required"]})


@commerce.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        scope = TenantScope(command.tenant_id)

        cart = scope.get(Cart, command.cart_id)
        _check_cart(cart)

        payment_method = scope.get(PaymentMethod, command.payment_method_id)
        if not payment_method.is_active:
            raise ValidationError({"payment_method_id": ["Payment method is not active"]})

        order = Order.place(
            cart,
            order_number=next_order_number(command.tenant_id),
            payment_method=payment_method,
            customer={
                "customer_id": command.customer_id,
                "email": command.customer_email,
                "name": command.customer_name,
                "phone": command.customer_phone,
            },
            notes=command.notes,
        )
        cart.abandon(reason="converted")

        scope.add(order)
        scope.add(cart)

        logger.info(
            "Order placed",
            tenant_id=command.tenant_id,
            order_id=str(order.id),
            order_number=order.order_number,
            cart_id=str(cart.id),
            total=order.total,
        )
        return str(order.id)
