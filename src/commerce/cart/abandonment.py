"""Cart abandonment sweep: command and handler for flagging idle carts.

Triggered periodically by an external scheduler through the maintenance
API. Active carts that hold items and have not been touched within the
threshold are abandoned one by one; a cart that fails is logged and skipped.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer
from protean.utils.globals import current_domain

from commerce.cart.cart import Cart, CartStatus
from commerce.cart.management import AbandonCart
from commerce.config import get_settings
from commerce.domain import commerce

logger = structlog.get_logger(__name__)


def _as_naive_utc(value):
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.replace(tzinfo=None)


@commerce.command(part_of="Cart")
class DetectAbandonedCarts:
    """Abandon active carts idle beyond the threshold (all tenants unless one is given)."""

    tenant_id = Identifier()
    idle_threshold_hours = Integer(min_value=0)
    as_of = DateTime()  # Optional: defaults to now


@commerce.command_handler(part_of=Cart)
class DetectAbandonedCartsHandler:
    @handle(DetectAbandonedCarts)
    def detect_abandoned_carts(self, command):
        as_of = command.as_of or datetime.now(UTC)
        threshold_hours = command.idle_threshold_hours
        if threshold_hours is None:
            threshold_hours = get_settings().cart_abandon_hours
        cutoff = _as_naive_utc(as_of - timedelta(hours=threshold_hours))

        logger.info("Checking for abandoned carts", cutoff=cutoff.isoformat(), threshold_hours=threshold_hours)

        filters = {"status": CartStatus.ACTIVE.value}
        if command.tenant_id:
            filters["tenant_id"] = command.tenant_id
        active_carts = current_domain.repository_for(Cart)._dao.query.filter(**filters).all().items

        idle = [
            cart
            for cart in active_carts
            if cart.updated_at and _as_naive_utc(cart.updated_at) <= cutoff and (cart.item_count or 0) > 0
        ]
        if not idle:
            logger.info("No abandoned carts found")
            return 0

        abandoned_count = 0
        for cart in idle:
            try:
                current_domain.process(
                    AbandonCart(tenant_id=str(cart.tenant_id), cart_id=str(cart.id), reason="idle"),
                    asynchronous=False,
                )
                abandoned_count += 1
                logger.info(
                    "Marked cart as abandoned",
                    tenant_id=str(cart.tenant_id),
                    cart_id=str(cart.id),
                    item_count=cart.item_count,
                    last_updated=str(cart.updated_at),
                )
            except Exception:
                logger.exception("Failed to abandon cart", cart_id=str(cart.id))

        logger.info("Cart abandonment detection complete", abandoned_count=abandoned_count)
        return abandoned_count
