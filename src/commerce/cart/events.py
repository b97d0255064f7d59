"""Domain events for the Cart aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="Cart")
class CartItemAdded:
    """An item was added to the cart, or its quantity grew because it was already there."""

    __version__ = 1

    cart_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    total = Integer(required=True)


@commerce.event(part_of="Cart")
class CartQuantityUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    total = Integer(required=True)


@commerce.event(part_of="Cart")
class CartItemRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    total = Integer(required=True)


@commerce.event(part_of="Cart")
class CartCleared:
    __version__ = 1

    cart_id = Identifier(required=True)


@commerce.event(part_of="Cart")
class CartAddressUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    address_type = String(required=True)  # shipping | billing


@commerce.event(part_of="Cart")
class CartShippingApplied:
    __version__ = 1

    cart_id = Identifier(required=True)
    shipping_method_id = Identifier(required=True)
    shipping_amount = Integer(required=True)
    total = Integer(required=True)


@commerce.event(part_of="Cart")
class CartCouponApplied:
    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)
    discount_amount = Integer(required=True)
    total = Integer(required=True)


@commerce.event(part_of="Cart")
class CartCouponRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)


@commerce.event(part_of="Cart")
class CartTaxUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    tax_amount = Integer(required=True)
    total = Integer(required=True)


@commerce.event(part_of="Cart")
class CartCheckoutStarted:
    __version__ = 1

    cart_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    total = Integer(required=True)


@commerce.event(part_of="Cart")
class CartAbandoned:
    """The cart was converted into an order or left idle; it accepts no further changes."""

    __version__ = 1

    cart_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    reason = String(max_length=50)  # converted | idle
    abandoned_at = DateTime(required=True)
