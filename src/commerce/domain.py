"""Commerce bounded context: carts, orders, payments and subscriptions.

Turns a mutable shopping cart into an immutable order, prices shipping,
drives orders through their status axes, and keeps payments and
subscriptions consistent with the external payment gateway.
"""

import structlog
from protean.domain import Domain

commerce = Domain(name="commerce")

logger = structlog.get_logger(__name__)
