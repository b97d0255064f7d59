"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (the default)
- AsaasGateway when ``COMMERCE_GATEWAY_PROVIDER=asaas``
"""

from commerce.config import get_settings
from commerce.gateway.asaas_adapter import AsaasGateway
from commerce.gateway.fake_adapter import FakeGateway
from commerce.gateway.port import GatewayError, PaymentGateway

__all__ = ["GatewayError", "PaymentGateway", "get_gateway", "reset_gateway", "set_gateway"]

_current_gateway: PaymentGateway | None = None


def _build_gateway() -> PaymentGateway:
    settings = get_settings()
    if settings.gateway_provider == "asaas":
        return AsaasGateway(
            api_url=settings.gateway_api_url,
            api_key=settings.gateway_api_key,
            webhook_token=settings.gateway_webhook_token,
            timeout=settings.gateway_timeout_seconds,
        )
    return FakeGateway(webhook_token=settings.gateway_webhook_token or "test-token")


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building it from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
