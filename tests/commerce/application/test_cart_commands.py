"""Application tests for cart commands processed through the domain."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from commerce.cart.abandonment import DetectAbandonedCarts
from commerce.cart.cart import Cart, CartStatus
from commerce.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartItemQuantity
from commerce.cart.management import (
    AbandonCart,
    ApplyCoupon,
    ApplyShippingMethod,
    AttachCartUser,
    CreateCart,
    RemoveCoupon,
    SetCartTax,
    StartCheckout,
)
from commerce.shipping.management import CreateShippingMethod


def _cart(cart_id):
    return current_domain.repository_for(Cart).get(cart_id)


def _create_shipping_method(tenant_id, **fields):
    fields.setdefault("name", "Standard")
    fields.setdefault("base_price", 1500)
    return current_domain.process(CreateShippingMethod(tenant_id=tenant_id, **fields), asynchronous=False)


class TestCreateCart:
    def test_create_cart_for_user(self, tenant_id):
        cart_id = current_domain.process(CreateCart(tenant_id=tenant_id, user_id="user-001"), asynchronous=False)

        cart = _cart(cart_id)
        assert cart.tenant_id == tenant_id
        assert cart.status == CartStatus.ACTIVE.value

    def test_open_cart_is_reused(self, tenant_id):
        first = current_domain.process(CreateCart(tenant_id=tenant_id, user_id="user-001"), asynchronous=False)
        second = current_domain.process(CreateCart(tenant_id=tenant_id, user_id="user-001"), asynchronous=False)
        assert first == second

    def test_guest_cart_is_claimed_on_sign_in(self, tenant_id):
        guest = current_domain.process(CreateCart(tenant_id=tenant_id, session_id="sess-001"), asynchronous=False)
        claimed = current_domain.process(
            CreateCart(tenant_id=tenant_id, user_id="user-002", session_id="sess-001"), asynchronous=False
        )

        assert claimed == guest
        assert _cart(guest).user_id == "user-002"

    def test_attach_user(self, tenant_id):
        cart_id = current_domain.process(CreateCart(tenant_id=tenant_id, session_id="sess-002"), asynchronous=False)
        current_domain.process(
            AttachCartUser(tenant_id=tenant_id, cart_id=cart_id, user_id="user-003"), asynchronous=False
        )
        assert _cart(cart_id).user_id == "user-003"


class TestCartItemCommands:
    def test_add_update_remove(self, tenant_id, make_cart):
        cart_id = make_cart(items=[])
        item_id = current_domain.process(
            AddToCart(tenant_id=tenant_id, cart_id=cart_id, product_id="prod-001", unit_price=2500, quantity=2),
            asynchronous=False,
        )
        assert _cart(cart_id).total == 5000

        current_domain.process(
            UpdateCartItemQuantity(tenant_id=tenant_id, cart_id=cart_id, item_id=item_id, quantity=4),
            asynchronous=False,
        )
        assert _cart(cart_id).total == 10000

        current_domain.process(
            RemoveFromCart(tenant_id=tenant_id, cart_id=cart_id, item_id=item_id), asynchronous=False
        )
        assert _cart(cart_id).total == 0

    def test_clear(self, tenant_id, make_cart):
        cart_id = make_cart()
        current_domain.process(ClearCart(tenant_id=tenant_id, cart_id=cart_id), asynchronous=False)

        cart = _cart(cart_id)
        assert cart.items == []
        assert cart.item_count == 0

    def test_end_to_end_weight_and_subtotal(self, tenant_id, make_cart):
        from commerce.shipping.calculator import shippable_weight

        cart_id = make_cart(
            items=[
                {"product_id": "prod-001", "unit_price": 10000, "quantity": 2, "weight": 0.5},
                {"product_id": "prod-002", "unit_price": 5000, "quantity": 1, "weight": 0.8, "is_digital": True},
            ]
        )

        cart = _cart(cart_id)
        assert shippable_weight(cart.items) == 1.0
        assert cart.subtotal == 25000


class TestCartCharges:
    def test_apply_shipping_method(self, tenant_id, make_cart):
        cart_id = make_cart()
        method_id = _create_shipping_method(tenant_id)

        price = current_domain.process(
            ApplyShippingMethod(tenant_id=tenant_id, cart_id=cart_id, shipping_method_id=method_id),
            asynchronous=False,
        )

        cart = _cart(cart_id)
        assert price == 1500
        assert cart.shipping_method_id == method_id
        assert cart.total == 10000 + 1500

    def test_location_price_uses_cart_address(self, tenant_id, make_cart):
        cart_id = make_cart()
        method_id = _create_shipping_method(
            tenant_id,
            method_type="location_based",
            base_price=5000,
            location_rules=json.dumps([{"country": "BR", "price": 2500}, {"country": "BR", "state": "SP", "price": 900}]),
        )

        price = current_domain.process(
            ApplyShippingMethod(tenant_id=tenant_id, cart_id=cart_id, shipping_method_id=method_id),
            asynchronous=False,
        )
        assert price == 900

    def test_inapplicable_method_is_rejected(self, tenant_id, make_cart):
        cart_id = make_cart()
        method_id = _create_shipping_method(tenant_id, min_order_value=50000)

        with pytest.raises(ValidationError) as exc:
            current_domain.process(
                ApplyShippingMethod(tenant_id=tenant_id, cart_id=cart_id, shipping_method_id=method_id),
                asynchronous=False,
            )
        assert "shipping_method_id" in exc.value.messages
        assert _cart(cart_id).shipping_amount == 0

    def test_inactive_method_is_rejected(self, tenant_id, make_cart):
        cart_id = make_cart()
        method_id = _create_shipping_method(tenant_id, is_active=False)

        with pytest.raises(ValidationError):
            current_domain.process(
                ApplyShippingMethod(tenant_id=tenant_id, cart_id=cart_id, shipping_method_id=method_id),
                asynchronous=False,
            )

    def test_coupon_and_tax(self, tenant_id, make_cart):
        cart_id = make_cart()
        current_domain.process(
            ApplyCoupon(tenant_id=tenant_id, cart_id=cart_id, coupon_code="WELCOME10", discount_amount=1000),
            asynchronous=False,
        )
        current_domain.process(SetCartTax(tenant_id=tenant_id, cart_id=cart_id, tax_amount=450), asynchronous=False)

        cart = _cart(cart_id)
        assert cart.total == 10000 + 450 - 1000

        current_domain.process(RemoveCoupon(tenant_id=tenant_id, cart_id=cart_id), asynchronous=False)
        assert _cart(cart_id).total == 10450

    def test_start_checkout(self, tenant_id, make_cart):
        cart_id = make_cart()
        current_domain.process(StartCheckout(tenant_id=tenant_id, cart_id=cart_id), asynchronous=False)
        assert _cart(cart_id).status == CartStatus.CHECKOUT_STARTED.value


class TestCartAbandonment:
    def _age(self, cart_id, hours):
        cart = _cart(cart_id)
        cart.updated_at = datetime.now(UTC) - timedelta(hours=hours)
        current_domain.repository_for(Cart).add(cart)

    def test_idle_carts_with_items_are_abandoned(self, tenant_id, make_cart):
        idle = make_cart(user_id="user-idle")
        fresh = make_cart(user_id="user-fresh")
        empty = make_cart(items=[], user_id="user-empty")
        self._age(idle, 30)
        self._age(empty, 30)

        count = current_domain.process(DetectAbandonedCarts(idle_threshold_hours=24), asynchronous=False)

        assert count == 1
        assert _cart(idle).status == CartStatus.ABANDONED.value
        assert _cart(fresh).status == CartStatus.ACTIVE.value
        assert _cart(empty).status == CartStatus.ACTIVE.value

    def test_one_failing_cart_does_not_stop_the_sweep(self, tenant_id, make_cart, monkeypatch):
        failing = make_cart(user_id="user-failing")
        healthy = make_cart(user_id="user-healthy")
        self._age(failing, 30)
        self._age(healthy, 30)
        original_abandon = Cart.abandon

        def abandon(self, *args, **kwargs):
            if str(self.id) == str(failing):
                raise RuntimeError("storage unavailable")
            return original_abandon(self, *args, **kwargs)

        monkeypatch.setattr(Cart, "abandon", abandon)

        count = current_domain.process(DetectAbandonedCarts(idle_threshold_hours=24), asynchronous=False)

        assert count == 1
        assert _cart(failing).status == CartStatus.ACTIVE.value
        assert _cart(healthy).status == CartStatus.ABANDONED.value

    def test_abandoned_cart_rejects_changes(self, tenant_id, make_cart):
        cart_id = make_cart()
        current_domain.process(AbandonCart(tenant_id=tenant_id, cart_id=cart_id), asynchronous=False)

        with pytest.raises(ValidationError):
            current_domain.process(
                AddToCart(tenant_id=tenant_id, cart_id=cart_id, product_id="prod-009", unit_price=100, quantity=1),
                asynchronous=False,
            )


class TestTenantIsolation:
    def test_other_tenant_cannot_see_cart(self, make_cart):
        cart_id = make_cart()

        with pytest.raises(ObjectNotFoundError):
            current_domain.process(
                SetCartTax(tenant_id="other-store", cart_id=cart_id, tax_amount=100), asynchronous=False
            )
        assert _cart(cart_id).tax_amount == 0

    def test_tenant_is_mandatory(self):
        from commerce.shared.tenancy import TenantScope

        with pytest.raises(ValidationError) as exc:
            TenantScope("  ")
        assert "tenant_id" in exc.value.messages
