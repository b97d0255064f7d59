"""Commerce domain API package."""

from commerce.api.routes import (
    cart_router,
    maintenance_router,
    order_router,
    payment_method_router,
    payment_router,
    shipping_method_router,
    subscription_router,
    webhook_router,
)

__all__ = [
    "cart_router",
    "order_router",
    "payment_router",
    "subscription_router",
    "shipping_method_router",
    "payment_method_router",
    "webhook_router",
    "maintenance_router",
]
