"""Domain events for shipping method configuration."""

from protean.fields import Boolean, Identifier, Integer, String, Text

from commerce.domain import commerce


@commerce.event(part_of="ShippingMethod")
class ShippingMethodConfigured:
    """A shipping method was created or its pricing was changed."""

    __version__ = 1

    shipping_method_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    name = String(required=True)
    method_type = String(required=True)


@commerce.event(part_of="ShippingMethod")
class ShippingMethodActivationChanged:
    __version__ = 1

    shipping_method_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    is_active = Boolean(default=False)


@commerce.event(part_of="ShippingMethod")
class ShippingMethodReordered:
    __version__ = 1

    shipping_method_id = Identifier(required=True)
    tenant_id = Identifier(required=True)
    previous_sort_order = Integer()
    sort_order = Integer(required=True)


@commerce.event(part_of="ShippingMethod")
class ShippingRulesReplaced:
    __version__ = 1

    shipping_method_id = Identifier(required=True)
    rules = Text(required=True)  # JSON snapshot of all rule lists
