"""Entry points for gateway webhook deliveries.

Every delivery is processed as its own command. A failure while applying
one event is logged and reported as ``failed``; it never propagates to the
gateway (which would only retry it) and never stops the rest of a batch.
"""

import json

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from commerce.reconciliation.reconcile import ReconcileGatewayEvent, ReconciliationOutcome

logger = structlog.get_logger(__name__)


def reconcile_event(payload: dict) -> str:
    """Apply one webhook payload; returns the outcome value.

    Raises ``ValidationError`` only for a payload that is not a gateway event
    at all.
    """
    if not isinstance(payload, dict):
        raise ValidationError({"payload": ["Webhook payload must be a JSON object"]})
    event = payload.get("event")
    if not isinstance(event, str) or not event:
        raise ValidationError({"event": ["Webhook payload has no event"]})

    try:
        return current_domain.process(
            ReconcileGatewayEvent(event=event, body=json.dumps(payload, default=str)),
            asynchronous=False,
        )
    except Exception:
        logger.exception("Failed to reconcile gateway event", gateway_event=event, event_id=payload.get("id"))
        return ReconciliationOutcome.FAILED.value


def reconcile_events(payloads) -> list[str]:
    outcomes = []
    for payload in payloads:
        try:
            outcomes.append(reconcile_event(payload))
        except ValidationError as exc:
            logger.warning("Skipping malformed gateway event", error=str(exc.messages))
            outcomes.append(ReconciliationOutcome.FAILED.value)
    return outcomes
