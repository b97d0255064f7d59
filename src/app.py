"""Commerce FastAPI application.

Web server that processes commands synchronously via HTTP. Every request
runs inside the commerce domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay; COMMERCE_* variables configure
# the payment gateway and the billing defaults (see commerce.config).
from commerce.domain import commerce  # noqa: E402
from commerce.utils.logging import bind_request_context, clear_request_context, configure_logging  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

configure_logging()
commerce.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Commerce API",
    description="Multi-tenant carts, checkout, orders, payments and subscriptions",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the Protean domain context and bind the tenant to log lines for each request."""
    bind_request_context(
        tenant_id=request.headers.get("x-tenant-id"),
        method=request.method,
        path=request.url.path,
    )
    try:
        with commerce.domain_context():
            response = await call_next(request)
    finally:
        clear_request_context()
    return response


register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from commerce.api import (  # noqa: E402
    cart_router,
    maintenance_router,
    order_router,
    payment_method_router,
    payment_router,
    shipping_method_router,
    subscription_router,
    webhook_router,
)

app.include_router(cart_router)
app.include_router(order_router)
app.include_router(payment_router)
app.include_router(subscription_router)
app.include_router(shipping_method_router)
app.include_router(payment_method_router)
app.include_router(webhook_router)
app.include_router(maintenance_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "commerce": {"name": commerce.name},
            },
        }
    )
