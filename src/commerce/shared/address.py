"""Address value object shared by carts and orders."""

import json

from protean.fields import String

from commerce.domain import commerce


@commerce.value_object
class Address:
    """A postal address captured on a cart and snapshotted onto an order.

    Only the fields the shipping calculator and the gateway rely on are
    mandatory; everything else is free-form.
    """

    first_name = String(max_length=100)
    last_name = String(max_length=100)
    address1 = String(required=True, max_length=255)
    address2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    phone = String(max_length=50)


def address_from_json(payload):
    """Build an ``Address`` from a JSON string or dict; ``None`` stays ``None``."""
    if not payload:
        return None
    data = json.loads(payload) if isinstance(payload, str) else payload
    return Address(**data)
