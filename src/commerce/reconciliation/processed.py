"""ProcessedWebhook aggregate: the record that a gateway event was applied."""

import hashlib
import json

from protean.fields import DateTime, Identifier, String

from commerce.domain import commerce


@commerce.aggregate
class ProcessedWebhook:
    key = String(identifier=True, max_length=128)
    event = String(required=True, max_length=100)
    tenant_id = Identifier()
    resource_id = String(max_length=255)  # local payment or subscription id
    outcome = String(max_length=50)
    processed_at = DateTime()


def idempotency_key(payload: dict) -> str:
    """The gateway's event id, or a digest of the event and its resource when there is none."""
    event_id = payload.get("id")
    if event_id:
        return str(event_id)

    canonical = json.dumps(
        {
            "event": payload.get("event"),
            "payment": payload.get("payment"),
            "subscription": payload.get("subscription"),
        },
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()
