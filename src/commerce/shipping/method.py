"""ShippingMethod aggregate: one configured way of delivering a cart.

Pricing data lives on the aggregate; the price itself is computed by
``commerce.shipping.calculator`` so the rules can be evaluated without a
repository.

Rule lists are stored as JSON arrays, in the order the merchant configured
them (first match wins for weight/price brackets, configured order breaks
ties between equally specific location rules):

    weight_rules:   [{"min_weight": 0.0, "max_weight": 2.0, "price": 1500}]
    price_rules:    [{"min_order_value": 0, "max_order_value": 9999, "price": 990}]
    location_rules: [{"country": "BR", "state": "SP", "city": "", "postal_code": "", "price": 700}]

All prices and order values are in cents.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from commerce.domain import commerce
from commerce.shipping.events import (
    ShippingMethodActivationChanged,
    ShippingMethodConfigured,
    ShippingMethodReordered,
    ShippingRulesReplaced,
)


class ShippingMethodType(Enum):
    FIXED = "fixed"
    WEIGHT_BASED = "weight_based"
    PRICE_BASED = "price_based"
    LOCATION_BASED = "location_based"
    FREE = "free"
    PICKUP = "pickup"


_LOCATION_MATCH_FIELDS = ("state", "city", "postal_code")


def _parse_rules(raw):
    if not raw:
        return []
    rules = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(rules, list):
        raise ValidationError({"rules": ["Rules must be a list"]})
    return rules


def _validate_weight_rules(rules):
    for rule in rules:
        if "price" not in rule:
            raise ValidationError({"weight_rules": ["Every weight rule needs a price"]})
        if float(rule.get("min_weight") or 0) > float(rule.get("max_weight", float("inf"))):
            raise ValidationError({"weight_rules": ["min_weight cannot exceed max_weight"]})


def _validate_price_rules(rules):
    for rule in rules:
        if "price" not in rule:
            raise ValidationError({"price_rules": ["Every price rule needs a price"]})
        maximum = rule.get("max_order_value")
        if maximum is not None and int(rule.get("min_order_value") or 0) > int(maximum):
            raise ValidationError({"price_rules": ["min_order_value cannot exceed max_order_value"]})


def _validate_location_rules(rules):
    for rule in rules:
        if not rule.get("country"):
            raise ValidationError({"location_rules": ["Every location rule needs a country"]})
        if "price" not in rule:
            raise ValidationError({"location_rules": ["Every location rule needs a price"]})


@commerce.aggregate
class ShippingMethod:
    tenant_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    code = String(max_length=100)
    description = String(max_length=1000)
    method_type = String(choices=ShippingMethodType, default=ShippingMethodType.FIXED.value)
    is_active = Boolean(default=True)
    sort_order = Integer(default=0)
    base_price = Integer(default=0, min_value=0)
    min_order_value = Integer(min_value=0)
    max_order_value = Integer(min_value=0)
    free_shipping_threshold = Integer(min_value=0)
    weight_rules = Text()  # JSON array
    price_rules = Text()  # JSON array
    location_rules = Text()  # JSON array
    estimated_delivery_days = Integer(min_value=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def order_value_range_must_be_ordered(self):
        if (
            self.min_order_value is not None
            and self.max_order_value
            and self.min_order_value > self.max_order_value
        ):
            raise ValidationError({"min_order_value": ["Minimum order value cannot exceed the maximum"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, tenant_id, name, method_type=ShippingMethodType.FIXED.value, **options):
        now = datetime.now(UTC)
        weight_rules = _parse_rules(options.pop("weight_rules", None))
        price_rules = _parse_rules(options.pop("price_rules", None))
        location_rules = _parse_rules(options.pop("location_rules", None))
        _validate_weight_rules(weight_rules)
        _validate_price_rules(price_rules)
        _validate_location_rules(location_rules)

        method = cls(
            tenant_id=tenant_id,
            name=name,
            method_type=method_type,
            weight_rules=json.dumps(weight_rules),
            price_rules=json.dumps(price_rules),
            location_rules=json.dumps(location_rules),
            created_at=now,
            updated_at=now,
            **options,
        )
        method.raise_(
            ShippingMethodConfigured(
                shipping_method_id=str(method.id),
                tenant_id=str(tenant_id),
                name=name,
                method_type=method_type,
            )
        )
        return method

    # -------------------------------------------------------------------
    # Rule accessors
    # -------------------------------------------------------------------
    @property
    def weight_rule_list(self):
        return _parse_rules(self.weight_rules)

    @property
    def price_rule_list(self):
        return _parse_rules(self.price_rules)

    @property
    def location_rule_list(self):
        return _parse_rules(self.location_rules)

    def replace_rules(self, weight_rules=None, price_rules=None, location_rules=None):
        """Swap one or more rule lists wholesale; ``None`` leaves a list untouched."""
        if weight_rules is not None:
            rules = _parse_rules(weight_rules)
            _validate_weight_rules(rules)
            self.weight_rules = json.dumps(rules)
        if price_rules is not None:
            rules = _parse_rules(price_rules)
            _validate_price_rules(rules)
            self.price_rules = json.dumps(rules)
        if location_rules is not None:
            rules = _parse_rules(location_rules)
            _validate_location_rules(rules)
            self.location_rules = json.dumps(rules)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            ShippingRulesReplaced(
                shipping_method_id=str(self.id),
                rules=json.dumps(
                    {
                        "weight_rules": self.weight_rule_list,
                        "price_rules": self.price_rule_list,
                        "location_rules": self.location_rule_list,
                    }
                ),
            )
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def activate(self):
        self._set_active(True)

    def deactivate(self):
        self._set_active(False)

    def _set_active(self, active):
        if self.is_active == active:
            return
        self.is_active = active
        self.updated_at = datetime.now(UTC)
        self.raise_(
            ShippingMethodActivationChanged(
                shipping_method_id=str(self.id),
                tenant_id=str(self.tenant_id),
                is_active=active,
            )
        )

    def move_to(self, sort_order):
        if self.sort_order == sort_order:
            return
        previous = self.sort_order
        self.sort_order = sort_order
        self.updated_at = datetime.now(UTC)
        self.raise_(
            ShippingMethodReordered(
                shipping_method_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_sort_order=previous,
                sort_order=sort_order,
            )
        )

    @staticmethod
    def location_specificity(rule):
        """Number of optional match fields a location rule pins down."""
        return sum(1 for field in _LOCATION_MATCH_FIELDS if rule.get(field))
