"""Shared BDD fixtures and step definitions for the Commerce domain."""

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

from commerce.cart.cart import Cart
from commerce.cart.events import CartAbandoned, CartCouponApplied, CartItemAdded, CartShippingApplied
from commerce.order.events import (
    OrderCancelled,
    OrderFulfillmentStatusChanged,
    OrderPaymentStatusChanged,
    OrderPlaced,
    OrderRefunded,
    OrderStatusChanged,
)
from commerce.order.order import Order
from commerce.payment_method.method import PaymentMethod
from commerce.shared.address import Address

# Map event name strings to classes for dynamic lookup in Then steps
_ORDER_EVENT_CLASSES = {
    "OrderPlaced": OrderPlaced,
    "OrderStatusChanged": OrderStatusChanged,
    "OrderPaymentStatusChanged": OrderPaymentStatusChanged,
    "OrderFulfillmentStatusChanged": OrderFulfillmentStatusChanged,
    "OrderCancelled": OrderCancelled,
    "OrderRefunded": OrderRefunded,
}

_CART_EVENT_CLASSES = {
    "CartItemAdded": CartItemAdded,
    "CartShippingApplied": CartShippingApplied,
    "CartCouponApplied": CartCouponApplied,
    "CartAbandoned": CartAbandoned,
}

ADDRESS = Address(address1="Av. Paulista, 1000", city="Sao Paulo", state="SP", postal_code="01310-100", country="BR")


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("an active cart", target_fixture="cart")
def active_cart():
    return Cart.create(tenant_id="acme-store", user_id="user-001")


@given(parsers.cfparse("the cart has {quantity:d} x {product_id} at {unit_price:d} cents"), target_fixture="cart")
def cart_has_item(cart, quantity, product_id, unit_price):
    cart.add_item(product_id=product_id, unit_price=unit_price, quantity=quantity, weight=0.5)
    return cart


@given(parsers.cfparse("an order placed for {unit_price:d} cents"), target_fixture="order")
def placed_order(unit_price):
    cart = Cart.create(tenant_id="acme-store", user_id="user-001")
    cart.add_item(product_id="prod-001", name="Mug", unit_price=unit_price, quantity=1)
    cart.set_shipping_address(ADDRESS)
    cart.set_billing_address(ADDRESS)

    method = PaymentMethod.create(tenant_id="acme-store", name="Pix", method_type="pix")
    return Order.place(cart, order_number="ACM2603070001", payment_method=method)


@given("the order was paid", target_fixture="order")
def order_was_paid(order):
    order.update_payment_status("paid")
    return order


@given(parsers.cfparse('the order status was set to "{status}"'), target_fixture="order")
def order_status_was_set(order, status):
    order.update_status(status)
    return order


# ---------------------------------------------------------------------------
# Then steps: orders
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert order.status == status


@then(parsers.cfparse('the order payment status is "{status}"'))
def order_payment_status_is(order, status):
    assert order.payment_status == status


@then(parsers.cfparse('the order fulfillment status is "{status}"'))
def order_fulfillment_status_is(order, status):
    assert order.fulfillment_status == status


@then(parsers.cfparse("the order refunded amount is {amount:d} cents"))
def order_refunded_amount_is(order, amount):
    assert order.refunded_amount == amount


@then("the order action fails with a validation error")
def order_action_fails(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse("an {event_type} order event is raised"))
def order_event_raised(order, event_type):
    event_cls = _ORDER_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in order._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in order._events]}"


# ---------------------------------------------------------------------------
# Then steps: carts
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the cart total is {total:d} cents"))
def cart_total_is(cart, total):
    assert cart.total == total


@then(parsers.cfparse("the cart subtotal is {subtotal:d} cents"))
def cart_subtotal_is(cart, subtotal):
    assert cart.subtotal == subtotal


@then(parsers.cfparse('the cart status is "{status}"'))
def cart_status_is(cart, status):
    assert cart.status == status


@then("the cart action fails with a validation error")
def cart_action_fails(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse("a {event_type} cart event is raised"))
def cart_event_raised(cart, event_type):
    event_cls = _CART_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in cart._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in cart._events]}"
