"""Subscription billing jobs: renewals and trial endings.

Both jobs are triggered by an external scheduler through the maintenance
API. Each due subscription is handled by its own command, so one failing
subscription is logged and skipped while the rest of the batch proceeds.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import Date, Identifier
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.shared.tenancy import TenantScope
from commerce.subscription.subscription import Subscription, SubscriptionStatus

logger = structlog.get_logger(__name__)


@commerce.command(part_of="Subscription")
class RenewSubscription:
    """Advance one subscription by a billing cycle if it is due on ``due_on``."""

    tenant_id = Identifier(required=True)
    subscription_id = Identifier(required=True)
    due_on = Date(required=True)


@commerce.command(part_of="Subscription")
class EndTrial:
    tenant_id = Identifier(required=True)
    subscription_id = Identifier(required=True)


@commerce.command(part_of="Subscription")
class ProcessRenewals:
    tenant_id = Identifier()
    as_of = Date()  # Optional: defaults to today


@commerce.command(part_of="Subscription")
class ProcessTrialEndings:
    tenant_id = Identifier()
    as_of = Date()


def _subscriptions_with_status(status, tenant_id=None):
    filters = {"status": status.value}
    if tenant_id:
        filters["tenant_id"] = tenant_id
    return current_domain.repository_for(Subscription)._dao.query.filter(**filters).all().items


@commerce.command_handler(part_of=Subscription)
class SubscriptionBillingHandler:
    @handle(RenewSubscription)
    def renew(self, command):
        scope = TenantScope(command.tenant_id)
        subscription = scope.get(Subscription, command.subscription_id)
        # Re-checked after loading: a concurrent run may already have renewed it
        if subscription.next_billing_date is None or subscription.next_billing_date > command.due_on:
            return False

        renewed = subscription.renew(renewed_on=command.due_on)
        if renewed:
            scope.add(subscription)
        return renewed

    @handle(EndTrial)
    def end_trial(self, command):
        scope = TenantScope(command.tenant_id)
        subscription = scope.get(Subscription, command.subscription_id)
        subscription.end_trial()
        scope.add(subscription)
        return subscription.status

    @handle(ProcessRenewals)
    def process_renewals(self, command):
        as_of = command.as_of or datetime.now(UTC).date()
        due = [
            s
            for s in _subscriptions_with_status(SubscriptionStatus.ACTIVE, command.tenant_id)
            if s.next_billing_date and s.next_billing_date <= as_of
        ]
        logger.info("Processing subscription renewals", as_of=as_of.isoformat(), due_count=len(due))

        processed = 0
        for subscription in due:
            try:
                renewed = current_domain.process(
                    RenewSubscription(
                        tenant_id=str(subscription.tenant_id),
                        subscription_id=str(subscription.id),
                        due_on=as_of,
                    ),
                    asynchronous=False,
                )
            except Exception:
                logger.exception("Failed to renew subscription", subscription_id=str(subscription.id))
                continue
            if renewed:
                processed += 1

        logger.info("Subscription renewals complete", processed=processed)
        return processed

    @handle(ProcessTrialEndings)
    def process_trial_endings(self, command):
        as_of = command.as_of or datetime.now(UTC).date()
        ending = [
            s
            for s in _subscriptions_with_status(SubscriptionStatus.TRIAL, command.tenant_id)
            if s.trial_end_date and s.trial_end_date <= as_of
        ]
        logger.info("Processing trial endings", as_of=as_of.isoformat(), ending_count=len(ending))

        processed = 0
        for subscription in ending:
            try:
                current_domain.process(
                    EndTrial(tenant_id=str(subscription.tenant_id), subscription_id=str(subscription.id)),
                    asynchronous=False,
                )
                processed += 1
            except Exception:
                logger.exception("Failed to end trial", subscription_id=str(subscription.id))

        logger.info("Trial endings complete", processed=processed)
        return processed
