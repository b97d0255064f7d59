"""Cart aggregate (CQRS): the mutable basket that becomes an Order at checkout.

Monetary fields are integers in cents and are always derived:

    total = subtotal + shipping_amount + tax_amount - discount_amount

Nothing outside the aggregate sets them. Every mutation that touches items
or charges ends in ``_recalculate()``.

Lifecycle:
    ACTIVE → CHECKOUT_STARTED → ABANDONED
    ACTIVE → ABANDONED (idle sweep)

Items are locked once checkout starts; addresses, shipping, coupon and tax
may still change until the cart is abandoned.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from commerce.cart.events import (
    CartAbandoned,
    CartAddressUpdated,
    CartCheckoutStarted,
    CartCleared,
    CartCouponApplied,
    CartCouponRemoved,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
    CartShippingApplied,
    CartTaxUpdated,
)
from commerce.domain import commerce
from commerce.shared.address import Address


class AddressType(Enum):
    SHIPPING = "shipping"
    BILLING = "billing"


class CartStatus(Enum):
    ACTIVE = "Active"
    CHECKOUT_STARTED = "Checkout_Started"
    ABANDONED = "Abandoned"


@commerce.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(max_length=255)
    sku = String(max_length=100)
    unit_price = Integer(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    weight = Float(default=0.0, min_value=0.0)
    requires_shipping = Boolean(default=True)
    is_digital = Boolean(default=False)
    is_service = Boolean(default=False)
    added_at = DateTime()

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@commerce.aggregate
class Cart:
    tenant_id = Identifier(required=True)
    user_id = Identifier()  # Nullable for guest carts
    session_id = String(max_length=255)
    status = String(choices=CartStatus, default=CartStatus.ACTIVE.value)
    items = HasMany(CartItem)
    item_count = Integer(default=0)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    shipping_method_id = Identifier()
    coupon_code = String(max_length=100)
    coupon_discount = Integer(default=0)  # requested; discount_amount is what actually applies
    subtotal = Integer(default=0)
    shipping_amount = Integer(default=0)
    tax_amount = Integer(default=0)
    discount_amount = Integer(default=0)
    total = Integer(default=0)
    last_notification_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_must_equal_its_components(self):
        expected = (
            (self.subtotal or 0)
            + (self.shipping_amount or 0)
            + (self.tax_amount or 0)
            - (self.discount_amount or 0)
        )
        if self.total != expected:
            raise ValidationError({"total": ["Cart total does not match its components"]})

    @invariant.post
    def total_cannot_be_negative(self):
        if (self.total or 0) < 0:
            raise ValidationError({"total": ["Cart total cannot be negative"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, tenant_id, user_id=None, session_id=None):
        if not user_id and not session_id:
            raise ValidationError({"cart": ["A cart needs a user or a session"]})

        now = datetime.now(UTC)
        return cls(
            tenant_id=tenant_id,
            user_id=user_id,
            session_id=session_id,
            status=CartStatus.ACTIVE.value,
            subtotal=0,
            shipping_amount=0,
            tax_amount=0,
            discount_amount=0,
            total=0,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------
    @property
    def is_abandoned(self) -> bool:
        return CartStatus(self.status) == CartStatus.ABANDONED

    @property
    def is_checkout_started(self) -> bool:
        return CartStatus(self.status) == CartStatus.CHECKOUT_STARTED

    @property
    def requires_shipping(self) -> bool:
        return any(item.requires_shipping for item in self.items)

    def _assert_items_editable(self):
        if CartStatus(self.status) != CartStatus.ACTIVE:
            raise ValidationError({"status": ["Items can only be changed in an active cart"]})

    def _assert_not_abandoned(self):
        if self.is_abandoned:
            raise ValidationError({"status": ["Cart has been abandoned"]})

    def _find_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})
        return item

    # -------------------------------------------------------------------
    # Totals
    # -------------------------------------------------------------------
    def _recalculate(self, **changes):
        """Apply ``changes`` and re-derive the totals as one atomic update."""
        with atomic_change(self):
            for field_name, value in changes.items():
                setattr(self, field_name, value)

            subtotal = sum(item.line_total for item in self.items)
            shipping = self.shipping_amount or 0
            tax = self.tax_amount or 0
            discount = min(self.coupon_discount or 0, subtotal + shipping + tax)

            self.item_count = len(self.items)
            self.subtotal = subtotal
            self.discount_amount = discount
            self.total = subtotal + shipping + tax - discount
            self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------
    def attach_user(self, user_id):
        """Bind a guest (session) cart to the user who just signed in."""
        self._assert_not_abandoned()
        self.user_id = user_id
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(
        self,
        product_id,
        unit_price,
        quantity,
        variant_id=None,
        name=None,
        sku=None,
        weight=0.0,
        requires_shipping=True,
        is_digital=False,
        is_service=False,
    ):
        """Add an item to the cart (or increase quantity if already present)."""
        self._assert_items_editable()
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        existing = next(
            (
                i
                for i in self.items
                if str(i.product_id) == str(product_id) and str(i.variant_id or "") == str(variant_id or "")
            ),
            None,
        )

        if existing:
            existing.quantity += quantity
            item_id = str(existing.id)
        else:
            item = CartItem(
                product_id=product_id,
                variant_id=variant_id,
                name=name,
                sku=sku,
                unit_price=unit_price,
                quantity=quantity,
                weight=weight or 0.0,
                requires_shipping=bool(requires_shipping) and not is_digital and not is_service,
                is_digital=bool(is_digital),
                is_service=bool(is_service),
                added_at=datetime.now(UTC),
            )
            self.add_items(item)
            item_id = str(item.id)

        self._recalculate()

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                tenant_id=str(self.tenant_id),
                item_id=item_id,
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                quantity=quantity,
                total=self.total,
            )
        )
        return item_id

    def update_item_quantity(self, item_id, new_quantity):
        """Set an item's quantity; zero removes the item."""
        self._assert_items_editable()
        if new_quantity is None or new_quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})

        item = self._find_item(item_id)
        if new_quantity == 0:
            self.remove_item(item_id)
            return

        previous_quantity = item.quantity
        item.quantity = new_quantity
        self._recalculate()

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                item_id=str(item_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
                total=self.total,
            )
        )

    def remove_item(self, item_id):
        self._assert_items_editable()
        item = self._find_item(item_id)
        self.remove_items(item)
        self._recalculate()

        self.raise_(CartItemRemoved(cart_id=str(self.id), item_id=str(item_id), total=self.total))

    def clear(self):
        """Drop every item together with the shipping selection and coupon."""
        self._assert_items_editable()
        for item in list(self.items):
            self.remove_items(item)

        self._recalculate(shipping_method_id=None, shipping_amount=0, coupon_code=None, coupon_discount=0)

        self.raise_(CartCleared(cart_id=str(self.id)))

    # -------------------------------------------------------------------
    # Addresses
    # -------------------------------------------------------------------
    def set_shipping_address(self, address):
        self._assert_not_abandoned()
        self.shipping_address = address
        self.updated_at = datetime.now(UTC)
        self.raise_(CartAddressUpdated(cart_id=str(self.id), address_type="shipping"))

    def set_billing_address(self, address):
        self._assert_not_abandoned()
        self.billing_address = address
        self.updated_at = datetime.now(UTC)
        self.raise_(CartAddressUpdated(cart_id=str(self.id), address_type="billing"))

    # -------------------------------------------------------------------
    # Charges
    # -------------------------------------------------------------------
    def apply_shipping(self, shipping_method_id, shipping_amount):
        """Select a shipping method; ``shipping_amount`` of ``None`` means it does not apply."""
        self._assert_not_abandoned()
        if shipping_amount is None:
            raise ValidationError({"shipping_method_id": ["Shipping method is not applicable to this cart"]})
        if shipping_amount < 0:
            raise ValidationError({"shipping_amount": ["Shipping amount cannot be negative"]})

        self._recalculate(shipping_method_id=shipping_method_id, shipping_amount=shipping_amount)

        self.raise_(
            CartShippingApplied(
                cart_id=str(self.id),
                shipping_method_id=str(shipping_method_id),
                shipping_amount=shipping_amount,
                total=self.total,
            )
        )

    def apply_coupon(self, coupon_code, discount_amount):
        """Apply a coupon whose discount (in cents) was resolved upstream."""
        self._assert_not_abandoned()
        if not coupon_code:
            raise ValidationError({"coupon_code": ["Coupon code is required"]})
        if discount_amount is None or discount_amount < 0:
            raise ValidationError({"discount_amount": ["Discount cannot be negative"]})

        self._recalculate(coupon_code=coupon_code, coupon_discount=discount_amount)

        self.raise_(
            CartCouponApplied(
                cart_id=str(self.id),
                coupon_code=coupon_code,
                discount_amount=self.discount_amount,
                total=self.total,
            )
        )

    def remove_coupon(self):
        self._assert_not_abandoned()
        if not self.coupon_code:
            raise ValidationError({"coupon_code": ["No coupon applied"]})

        coupon_code = self.coupon_code
        self._recalculate(coupon_code=None, coupon_discount=0)

        self.raise_(CartCouponRemoved(cart_id=str(self.id), coupon_code=coupon_code))

    def set_tax(self, tax_amount):
        self._assert_not_abandoned()
        if tax_amount is None or tax_amount < 0:
            raise ValidationError({"tax_amount": ["Tax cannot be negative"]})

        self._recalculate(tax_amount=tax_amount)

        self.raise_(CartTaxUpdated(cart_id=str(self.id), tax_amount=tax_amount, total=self.total))

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def start_checkout(self):
        """Lock the items. Calling it again on a started cart is a no-op."""
        self._assert_not_abandoned()
        if not self.items:
            raise ValidationError({"cart": ["Cannot start checkout with an empty cart"]})
        if self.is_checkout_started:
            return

        self.status = CartStatus.CHECKOUT_STARTED.value
        self.updated_at = datetime.now(UTC)
        self.raise_(CartCheckoutStarted(cart_id=str(self.id), tenant_id=str(self.tenant_id), total=self.total))

    def abandon(self, reason="idle"):
        """Mark the cart abandoned; it can never be mutated again."""
        self._assert_not_abandoned()

        now = datetime.now(UTC)
        self.status = CartStatus.ABANDONED.value
        self.updated_at = now
        self.raise_(
            CartAbandoned(
                cart_id=str(self.id),
                tenant_id=str(self.tenant_id),
                reason=reason,
                abandoned_at=now,
            )
        )

    def record_recovery_notification(self):
        self.last_notification_at = datetime.now(UTC)
