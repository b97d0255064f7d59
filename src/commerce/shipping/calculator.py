"""Shipping rate calculator.

Pure functions: given the cart contents and a destination they price every
active shipping method. A method that cannot serve the cart resolves to
``None`` (inapplicable) and is left out of the quote list; it never shows up
as a zero price.
"""

from dataclasses import dataclass

from commerce.shipping.method import ShippingMethod, ShippingMethodType


@dataclass(frozen=True)
class Destination:
    country: str
    state: str | None = None
    city: str | None = None
    postal_code: str | None = None

    @classmethod
    def from_address(cls, address):
        return cls(
            country=address.country,
            state=address.state,
            city=address.city,
            postal_code=address.postal_code,
        )


@dataclass(frozen=True)
class ShippingQuote:
    method_id: str
    name: str
    price: int
    estimated_delivery_days: int | None = None


def shippable_weight(items) -> float:
    """Sum of ``weight * quantity`` over items that physically ship."""
    return sum(
        float(item.weight or 0) * item.quantity
        for item in items
        if item.requires_shipping and not item.is_digital and not item.is_service
    )


def _in_range(value, minimum, maximum) -> bool:
    if minimum is not None and value < minimum:
        return False
    if maximum is not None and value > maximum:
        return False
    return True


def _location_matches(rule, destination) -> bool:
    if rule.get("country") != destination.country:
        return False
    for field in ("state", "city", "postal_code"):
        expected = rule.get(field)
        if expected and expected != getattr(destination, field):
            return False
    return True


def _location_price(method, destination):
    best = None
    best_specificity = -1
    # Strictly greater keeps the earliest rule on ties
    for rule in method.location_rule_list:
        if not _location_matches(rule, destination):
            continue
        specificity = ShippingMethod.location_specificity(rule)
        if specificity > best_specificity:
            best, best_specificity = rule, specificity
    return int(best["price"]) if best is not None else method.base_price


def price_for(method, subtotal: int, weight: float, destination: Destination | None) -> int | None:
    """Price of ``method`` in cents, or ``None`` when it does not apply."""
    if method.free_shipping_threshold and subtotal >= method.free_shipping_threshold:
        return 0

    if not _in_range(subtotal, method.min_order_value or None, method.max_order_value or None):
        return None

    method_type = ShippingMethodType(method.method_type)
    base_price = method.base_price or 0

    if method_type in (ShippingMethodType.FREE, ShippingMethodType.PICKUP):
        return 0

    if method_type == ShippingMethodType.WEIGHT_BASED:
        for rule in method.weight_rule_list:
            if _in_range(weight, rule.get("min_weight"), rule.get("max_weight")):
                return int(rule["price"])
        return base_price

    if method_type == ShippingMethodType.PRICE_BASED:
        for rule in method.price_rule_list:
            if _in_range(subtotal, rule.get("min_order_value"), rule.get("max_order_value")):
                return int(rule["price"])
        return base_price

    if method_type == ShippingMethodType.LOCATION_BASED:
        if destination is None:
            return base_price
        return _location_price(method, destination)

    return base_price


def quote(methods, subtotal: int, weight: float, destination: Destination | None) -> list[ShippingQuote]:
    """Quote every active method in ascending ``sort_order``."""
    quotes = []
    active = sorted((m for m in methods if m.is_active), key=lambda m: (m.sort_order or 0, m.name))
    for method in active:
        price = price_for(method, subtotal, weight, destination)
        if price is None:
            continue
        quotes.append(
            ShippingQuote(
                method_id=str(method.id),
                name=method.name,
                price=price,
                estimated_delivery_days=method.estimated_delivery_days,
            )
        )
    return quotes
