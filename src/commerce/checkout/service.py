"""Checkout orchestration.

``checkout_cart`` runs order placement and payment initiation as two
separate commands. The order is committed before the gateway is called, so
a gateway failure never loses it: the caller gets an error carrying the
order id and can retry with ``InitiateOrderPayment``.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from commerce.cart.cart import Cart
from commerce.checkout.payment import InitiateOrderPayment
from commerce.checkout.placement import PlaceOrder
from commerce.order.order import Order
from commerce.payment.payment import Payment
from commerce.payment_method.method import PaymentMethod
from commerce.shared.tenancy import TenantScope
from commerce.shipping.calculator import Destination, quote, shippable_weight
from commerce.shipping.method import ShippingMethod

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order_id: str
    order_number: str
    total: int
    payment_id: str | None = None
    payment_url: str | None = None


def checkout_cart(tenant_id, cart_id, payment_method_id, customer=None, notes=None, installments=1):
    customer = customer or {}
    order_id = current_domain.process(
        PlaceOrder(
            tenant_id=tenant_id,
            cart_id=cart_id,
            payment_method_id=payment_method_id,
            customer_id=customer.get("customer_id"),
            customer_email=customer.get("email"),
            customer_name=customer.get("name"),
            customer_phone=customer.get("phone"),
            notes=notes,
        ),
        asynchronous=False,
    )

    try:
        payment_id = current_domain.process(
            InitiateOrderPayment(tenant_id=tenant_id, order_id=order_id, installments=installments),
            asynchronous=False,
        )
    except ValidationError as exc:
        logger.warning("Order placed but payment was not initiated", tenant_id=tenant_id, order_id=order_id)
        messages = dict(exc.messages)
        messages["order_id"] = [order_id]
        raise ValidationError(messages) from exc

    scope = TenantScope(tenant_id)
    order = scope.get(Order, order_id)
    payment = scope.get(Payment, payment_id) if payment_id else None
    return CheckoutResult(
        order_id=order_id,
        order_number=order.order_number,
        total=order.total,
        payment_id=payment_id,
        payment_url=payment.gateway_url if payment else None,
    )


def shipping_options_for_cart(tenant_id, cart_id, destination=None):
    """Priced shipping options for a cart, in display order.

    ``destination`` defaults to the cart's shipping address. Without one,
    location-based methods fall back to their base price.
    """
    scope = TenantScope(tenant_id)
    cart = scope.get(Cart, cart_id)
    if destination is None and cart.shipping_address:
        destination = Destination.from_address(cart.shipping_address)

    methods = scope.filter(ShippingMethod, is_active=True)
    return quote(methods, cart.subtotal or 0, shippable_weight(cart.items), destination)


def available_payment_methods(tenant_id):
    scope = TenantScope(tenant_id)
    return sorted(scope.filter(PaymentMethod, is_active=True), key=lambda m: m.name)
