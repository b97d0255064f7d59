"""Cart lifecycle, addresses and charges: commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String, Text

from commerce.cart.cart import AddressType, Cart, CartStatus
from commerce.domain import commerce
from commerce.shared.address import address_from_json
from commerce.shared.tenancy import TenantScope
from commerce.shipping import calculator
from commerce.shipping.method import ShippingMethod


@commerce.command(part_of="Cart")
class CreateCart:
    """Return the open cart for this user/session, creating one when none exists."""

    tenant_id = Identifier(required=True)
    user_id = Identifier()
    session_id = String(max_length=255)


@commerce.command(part_of="Cart")
class AttachCartUser:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    user_id = Identifier(required=True)


@commerce.command(part_of="Cart")
class SetCartAddress:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    address_type = String(required=True, choices=AddressType)
    address = Text(required=True)  # JSON: address dict


@commerce.command(part_of="Cart")
class ApplyShippingMethod:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    shipping_method_id = Identifier(required=True)


@commerce.command(part_of="Cart")
class ApplyCoupon:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    coupon_code = String(required=True, max_length=100)
    discount_amount = Integer(required=True, min_value=0)  # cents, resolved by the coupon service


@commerce.command(part_of="Cart")
class RemoveCoupon:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)


@commerce.command(part_of="Cart")
class SetCartTax:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    tax_amount = Integer(required=True, min_value=0)


@commerce.command(part_of="Cart")
class StartCheckout:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)


@commerce.command(part_of="Cart")
class AbandonCart:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    reason = String(max_length=50, default="idle")


@commerce.command(part_of="Cart")
class RecordCartRecoveryNotification:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)


def _open_cart(scope, **owner):
    candidates = [
        cart for cart in scope.filter(Cart, **owner) if CartStatus(cart.status) != CartStatus.ABANDONED
    ]
    return candidates[0] if candidates else None


@commerce.command_handler(part_of=Cart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        scope = TenantScope(command.tenant_id)

        existing = None
        if command.user_id:
            existing = _open_cart(scope, user_id=command.user_id)
        if existing is None and command.session_id:
            existing = _open_cart(scope, session_id=command.session_id)
            if existing is not None and command.user_id and not existing.user_id:
                existing = scope.get(Cart, existing.id)
                existing.attach_user(command.user_id)
                scope.add(existing)
        if existing is not None:
            return str(existing.id)

        cart = Cart.create(
            tenant_id=command.tenant_id,
            user_id=command.user_id,
            session_id=command.session_id,
        )
        scope.add(cart)
        return str(cart.id)

    @handle(AttachCartUser)
    def attach_user(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.attach_user(command.user_id)
        scope.add(cart)

    @handle(SetCartAddress)
    def set_address(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        address = address_from_json(command.address)
        if address is None:
            raise ValidationError({"address": ["Address is required"]})

        if AddressType(command.address_type) == AddressType.SHIPPING:
            cart.set_shipping_address(address)
        else:
            cart.set_billing_address(address)
        scope.add(cart)

    @handle(ApplyShippingMethod)
    def apply_shipping_method(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        method = scope.get(ShippingMethod, command.shipping_method_id)
        if not method.is_active:
            raise ValidationError({"shipping_method_id": ["Shipping method is not active"]})

        destination = calculator.Destination.from_address(cart.shipping_address) if cart.shipping_address else None
        price = calculator.price_for(
            method,
            subtotal=cart.subtotal or 0,
            weight=calculator.shippable_weight(cart.items),
            destination=destination,
        )
        cart.apply_shipping(str(method.id), price)
        scope.add(cart)
        return price

    @handle(ApplyCoupon)
    def apply_coupon(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.apply_coupon(command.coupon_code, command.discount_amount)
        scope.add(cart)

    @handle(RemoveCoupon)
    def remove_coupon(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.remove_coupon()
        scope.add(cart)

    @handle(SetCartTax)
    def set_tax(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.set_tax(command.tax_amount)
        scope.add(cart)

    @handle(StartCheckout)
    def start_checkout(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.start_checkout()
        scope.add(cart)

    @handle(AbandonCart)
    def abandon_cart(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.abandon(reason=command.reason or "idle")
        scope.add(cart)

    @handle(RecordCartRecoveryNotification)
    def record_notification(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.record_recovery_notification()
        scope.add(cart)
