import os
from pathlib import Path

import pytest

_LAYER_MARKERS = ("domain", "application", "bdd", "integration")


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Protean config overlay (PROTEAN_ENV) to run the suite with",
    )


def pytest_sessionstart(session):
    """Select the config overlay before anything imports the commerce domain.

    The domain itself is initialized once per session by the ``commerce_bed``
    fixture in ``tests/commerce/conftest.py``.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Mark every test with the layer its directory belongs to."""
    for item in items:
        parts = Path(item.fspath).parts
        layer = next((name for name in _LAYER_MARKERS if name in parts), None)
        if layer is None:
            continue
        item.add_marker(getattr(pytest.mark, layer))
        # HTTP round trips are the slow part of the suite
        if layer == "integration" and not any(m.name == "fast" for m in item.iter_markers()):
            item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def fake_gateway():
    """A fresh FakeGateway per test, so recorded calls never leak between tests."""
    from commerce.gateway import reset_gateway, set_gateway
    from commerce.gateway.fake_adapter import FakeGateway

    gateway = FakeGateway(webhook_token="test-token")
    set_gateway(gateway)
    yield gateway
    reset_gateway()
