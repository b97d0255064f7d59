import json

import pytest
from protean.integrations.pytest import DomainFixture
from protean.utils.globals import current_domain

ADDRESS = {
    "first_name": "Ana",
    "last_name": "Souza",
    "address1": "Av. Paulista, 1000",
    "city": "Sao Paulo",
    "state": "SP",
    "postal_code": "01310-100",
    "country": "BR",
}


@pytest.fixture(scope="session")
def commerce_bed():
    from commerce.domain import commerce

    bed = DomainFixture(commerce)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(commerce_bed):
    with commerce_bed.domain_context():
        yield

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def address():
    return dict(ADDRESS)


@pytest.fixture()
def tenant_id():
    return "acme-store"


@pytest.fixture()
def payment_method_id(tenant_id):
    """An active gateway payment method (pix, R$ 1.00 fixed fee)."""
    from commerce.payment_method.management import CreatePaymentMethod

    return current_domain.process(
        CreatePaymentMethod(tenant_id=tenant_id, name="Pix", method_type="pix", fee_fixed=100),
        asynchronous=False,
    )


@pytest.fixture()
def make_cart(tenant_id):
    """Build a cart through commands; returns its id.

    ``items`` is a list of dicts accepted by ``AddToCart``; by default one
    physical item of R$ 100.00. Both addresses are set unless disabled.
    """
    from commerce.cart.items import AddToCart
    from commerce.cart.management import CreateCart, SetCartAddress

    def _make(items=None, shipping_address=True, billing_address=True, user_id="user-001", tenant=None):
        tenant = tenant or tenant_id
        cart_id = current_domain.process(CreateCart(tenant_id=tenant, user_id=user_id), asynchronous=False)

        if items is None:
            items = [{"product_id": "prod-001", "name": "Mug", "unit_price": 10000, "quantity": 1, "weight": 0.4}]
        for item in items:
            current_domain.process(AddToCart(tenant_id=tenant, cart_id=cart_id, **item), asynchronous=False)

        for address_type, wanted in (("shipping", shipping_address), ("billing", billing_address)):
            if wanted:
                current_domain.process(
                    SetCartAddress(
                        tenant_id=tenant,
                        cart_id=cart_id,
                        address_type=address_type,
                        address=json.dumps(ADDRESS),
                    ),
                    asynchronous=False,
                )
        return cart_id

    return _make
