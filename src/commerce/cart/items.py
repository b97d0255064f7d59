"""Cart item management: commands and handler."""

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String

from commerce.cart.cart import Cart
from commerce.domain import commerce
from commerce.shared.tenancy import TenantScope


@commerce.command(part_of="Cart")
class AddToCart:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(max_length=255)
    sku = String(max_length=100)
    unit_price = Integer(required=True, min_value=0)  # cents
    quantity = Integer(required=True, min_value=1)
    weight = Float(default=0.0, min_value=0.0)
    requires_shipping = Boolean(default=True)
    is_digital = Boolean(default=False)
    is_service = Boolean(default=False)


@commerce.command(part_of="Cart")
class UpdateCartItemQuantity:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=0)


@commerce.command(part_of="Cart")
class RemoveFromCart:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)


@commerce.command(part_of="Cart")
class ClearCart:
    tenant_id = Identifier(required=True)
    cart_id = Identifier(required=True)


@commerce.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        item_id = cart.add_item(
            product_id=command.product_id,
            variant_id=command.variant_id,
            name=command.name,
            sku=command.sku,
            unit_price=command.unit_price,
            quantity=command.quantity,
            weight=command.weight or 0.0,
            requires_shipping=command.requires_shipping if command.requires_shipping is not None else True,
            is_digital=bool(command.is_digital),
            is_service=bool(command.is_service),
        )
        scope.add(cart)
        return item_id

    @handle(UpdateCartItemQuantity)
    def update_quantity(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.update_item_quantity(command.item_id, command.quantity)
        scope.add(cart)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.remove_item(command.item_id)
        scope.add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        scope = TenantScope(command.tenant_id)
        cart = scope.get(Cart, command.cart_id)
        cart.clear()
        scope.add(cart)
