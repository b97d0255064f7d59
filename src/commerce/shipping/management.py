"""Shipping method configuration: commands and handler."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, Integer, String, Text

from commerce.domain import commerce
from commerce.shared.tenancy import TenantScope
from commerce.shipping.method import ShippingMethod, ShippingMethodType


@commerce.command(part_of="ShippingMethod")
class CreateShippingMethod:
    tenant_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    code = String(max_length=100)
    description = String(max_length=1000)
    method_type = String(choices=ShippingMethodType, default=ShippingMethodType.FIXED.value)
    sort_order = Integer()
    base_price = Integer(default=0, min_value=0)
    min_order_value = Integer(min_value=0)
    max_order_value = Integer(min_value=0)
    free_shipping_threshold = Integer(min_value=0)
    weight_rules = Text()  # JSON
    price_rules = Text()  # JSON
    location_rules = Text()  # JSON
    estimated_delivery_days = Integer(min_value=0)
    is_active = Boolean(default=True)


@commerce.command(part_of="ShippingMethod")
class ReplaceShippingRules:
    tenant_id = Identifier(required=True)
    shipping_method_id = Identifier(required=True)
    weight_rules = Text()
    price_rules = Text()
    location_rules = Text()


@commerce.command(part_of="ShippingMethod")
class SetShippingMethodActive:
    tenant_id = Identifier(required=True)
    shipping_method_id = Identifier(required=True)
    is_active = Boolean(default=True)


@commerce.command(part_of="ShippingMethod")
class ReorderShippingMethods:
    """Assign ``sort_order`` 0..n-1 following the given id sequence."""

    tenant_id = Identifier(required=True)
    method_ids = Text(required=True)  # JSON array of shipping method ids


@commerce.command_handler(part_of=ShippingMethod)
class ShippingMethodHandler:
    @handle(CreateShippingMethod)
    def create_shipping_method(self, command):
        scope = TenantScope(command.tenant_id)

        sort_order = command.sort_order
        if sort_order is None:
            existing = scope.filter(ShippingMethod)
            sort_order = max((m.sort_order or 0 for m in existing), default=-1) + 1

        method = ShippingMethod.create(
            tenant_id=command.tenant_id,
            name=command.name,
            method_type=command.method_type,
            code=command.code,
            description=command.description,
            sort_order=sort_order,
            base_price=command.base_price or 0,
            min_order_value=command.min_order_value,
            max_order_value=command.max_order_value,
            free_shipping_threshold=command.free_shipping_threshold,
            weight_rules=command.weight_rules,
            price_rules=command.price_rules,
            location_rules=command.location_rules,
            estimated_delivery_days=command.estimated_delivery_days,
            is_active=command.is_active if command.is_active is not None else True,
        )
        scope.add(method)
        return str(method.id)

    @handle(ReplaceShippingRules)
    def replace_rules(self, command):
        scope = TenantScope(command.tenant_id)
        method = scope.get(ShippingMethod, command.shipping_method_id)
        method.replace_rules(
            weight_rules=command.weight_rules,
            price_rules=command.price_rules,
            location_rules=command.location_rules,
        )
        scope.add(method)

    @handle(SetShippingMethodActive)
    def set_active(self, command):
        scope = TenantScope(command.tenant_id)
        method = scope.get(ShippingMethod, command.shipping_method_id)
        if command.is_active:
            method.activate()
        else:
            method.deactivate()
        scope.add(method)

    @handle(ReorderShippingMethods)
    def reorder(self, command):
        """Reindex every listed method inside this one unit of work."""
        scope = TenantScope(command.tenant_id)
        method_ids = json.loads(command.method_ids) if isinstance(command.method_ids, str) else command.method_ids
        if len(set(method_ids)) != len(method_ids):
            raise ValidationError({"method_ids": ["Duplicate shipping method ids"]})

        # Load everything first so an unknown id aborts before any write
        methods = [scope.get(ShippingMethod, method_id) for method_id in method_ids]
        for position, method in enumerate(methods):
            method.move_to(position)

        for method in methods:
            scope.add(method)
        return len(methods)
