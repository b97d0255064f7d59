"""Subscription aggregate (CQRS): recurring billing of a plan.

Lifecycle:

    PENDING → TRIAL → ACTIVE | ENDED
    PENDING → ACTIVE ⇄ OVERDUE
    TRIAL | ACTIVE | OVERDUE | PENDING → CANCELLED

Trials never touch the gateway. Once active, the gateway owns the billing
schedule and this aggregate mirrors it: ``next_billing_date`` only moves
forward, through a renewal or a gateway update.
"""

import calendar
from datetime import UTC, date, datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, Identifier, Integer, String

from commerce.domain import commerce
from commerce.payment_method.method import GATEWAY_BILLING_TYPES, PaymentMethodType
from commerce.subscription.events import (
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionCreated,
    SubscriptionPlanChanged,
    SubscriptionRenewed,
    SubscriptionStatusChanged,
    SubscriptionTrialStarted,
)


class SubscriptionStatus(Enum):
    PENDING = "pending"
    TRIAL = "trial"
    ACTIVE = "active"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    ENDED = "ended"


class SubscriptionCycle(Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


CYCLE_MONTHS = {
    SubscriptionCycle.MONTHLY: 1,
    SubscriptionCycle.QUARTERLY: 3,
    SubscriptionCycle.SEMIANNUAL: 6,
    SubscriptionCycle.ANNUAL: 12,
}

GATEWAY_CYCLES = {
    SubscriptionCycle.MONTHLY: "MONTHLY",
    SubscriptionCycle.QUARTERLY: "QUARTERLY",
    SubscriptionCycle.SEMIANNUAL: "SEMIANNUALLY",
    SubscriptionCycle.ANNUAL: "YEARLY",
}
CYCLES_FROM_GATEWAY = {value: key for key, value in GATEWAY_CYCLES.items()}

_CLOSED = {SubscriptionStatus.CANCELLED, SubscriptionStatus.ENDED}


def add_months(day: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def next_cycle_date(day: date, cycle) -> date:
    return add_months(day, CYCLE_MONTHS[SubscriptionCycle(cycle)])


def billing_type_for(payment_method) -> str:
    if not payment_method:
        return "UNDEFINED"
    return GATEWAY_BILLING_TYPES.get(PaymentMethodType(payment_method), "UNDEFINED")


@commerce.aggregate
class Subscription:
    tenant_id = Identifier(required=True)
    user_id = Identifier()
    plan_id = String(required=True, max_length=100)
    plan_name = String(required=True, max_length=255)
    status = String(choices=SubscriptionStatus, default=SubscriptionStatus.PENDING.value)
    cycle = String(choices=SubscriptionCycle, default=SubscriptionCycle.MONTHLY.value)
    amount = Integer(required=True, min_value=0)
    customer_id = String(max_length=255)  # customer id at the payment gateway
    customer_name = String(max_length=255)
    customer_email = String(max_length=254)
    payment_method = String(choices=PaymentMethodType)
    start_date = Date(required=True)
    trial_end_date = Date()
    next_billing_date = Date()
    last_payment_date = Date()
    total_payments = Integer(default=0)
    failed_payments = Integer(default=0)
    gateway_subscription_id = String(max_length=255)
    cancel_reason = String(max_length=500)
    cancelled_at = DateTime()
    ended_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(
        cls,
        tenant_id,
        plan_id,
        plan_name,
        amount,
        cycle=SubscriptionCycle.MONTHLY.value,
        start_date=None,
        customer=None,
        payment_method=None,
        user_id=None,
    ):
        customer = customer or {}
        now = datetime.now(UTC)
        subscription = cls(
            tenant_id=tenant_id,
            user_id=user_id,
            plan_id=plan_id,
            plan_name=plan_name,
            amount=amount,
            cycle=cycle,
            status=SubscriptionStatus.PENDING.value,
            start_date=start_date or now.date(),
            customer_id=customer.get("customer_id"),
            customer_name=customer.get("name"),
            customer_email=customer.get("email"),
            payment_method=payment_method,
            total_payments=0,
            failed_payments=0,
            created_at=now,
            updated_at=now,
        )
        subscription.raise_(
            SubscriptionCreated(
                subscription_id=str(subscription.id),
                tenant_id=str(tenant_id),
                plan_id=plan_id,
                cycle=subscription.cycle,
                amount=amount,
                created_at=now,
            )
        )
        return subscription

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def gateway_cycle(self) -> str:
        return GATEWAY_CYCLES[SubscriptionCycle(self.cycle)]

    @property
    def gateway_billing_type(self) -> str:
        return billing_type_for(self.payment_method)

    @property
    def is_closed(self) -> bool:
        return SubscriptionStatus(self.status) in _CLOSED

    def _require(self, *statuses, action):
        if SubscriptionStatus(self.status) not in statuses:
            allowed = ", ".join(s.value for s in statuses)
            raise ValidationError({"status": [f"Cannot {action} a {self.status} subscription (needs {allowed})"]})

    def _set_status(self, target: SubscriptionStatus, now):
        previous = self.status
        if previous == target.value:
            return
        self.status = target.value
        self.updated_at = now
        self.raise_(
            SubscriptionStatusChanged(
                subscription_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_status=previous,
                new_status=target.value,
                changed_at=now,
            )
        )

    def _move_billing_date(self, new_date) -> bool:
        """Set ``next_billing_date`` if ``new_date`` is later; report whether it moved."""
        if new_date is None:
            return False
        if self.next_billing_date is not None and new_date <= self.next_billing_date:
            return False
        self.next_billing_date = new_date
        return True

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def start_trial(self, trial_days: int):
        self._require(SubscriptionStatus.PENDING, action="start a trial on")
        if trial_days < 1:
            raise ValidationError({"trial_days": ["Trial must last at least one day"]})

        now = datetime.now(UTC)
        self.trial_end_date = self.start_date + timedelta(days=trial_days)
        self.next_billing_date = self.trial_end_date
        self._set_status(SubscriptionStatus.TRIAL, now)
        self.raise_(
            SubscriptionTrialStarted(
                subscription_id=str(self.id),
                tenant_id=str(self.tenant_id),
                trial_end_date=self.trial_end_date,
            )
        )

    def activate(self, gateway_subscription_id, first_due_date=None, payment_method=None, invoiced=False):
        """Billing started at the gateway.

        ``first_due_date`` is the due date of the first scheduled invoice.
        When that invoice was recorded as a payment (``invoiced``) it counts
        as the first billing, and the next one falls a cycle later.
        """
        self._require(SubscriptionStatus.PENDING, SubscriptionStatus.TRIAL, action="activate")

        now = datetime.now(UTC)
        self.gateway_subscription_id = gateway_subscription_id
        if payment_method:
            self.payment_method = payment_method
        first_due_date = first_due_date or now.date()
        if invoiced:
            scheduled = next_cycle_date(first_due_date, self.cycle)
            self.total_payments = 1
        else:
            scheduled = first_due_date
        # A trial converted early keeps its later trial-end billing date
        self._move_billing_date(scheduled)
        self._set_status(SubscriptionStatus.ACTIVE, now)
        self.raise_(
            SubscriptionActivated(
                subscription_id=str(self.id),
                tenant_id=str(self.tenant_id),
                gateway_subscription_id=gateway_subscription_id,
                next_billing_date=self.next_billing_date,
                activated_at=now,
            )
        )

    def change_plan(self, plan_id, plan_name, amount, cycle=None):
        self._require(SubscriptionStatus.ACTIVE, action="change the plan of")
        if amount is None or amount < 0:
            raise ValidationError({"amount": ["Amount must be zero or more"]})

        now = datetime.now(UTC)
        previous_plan_id = self.plan_id
        self.plan_id = plan_id
        self.plan_name = plan_name
        self.amount = amount
        if cycle:
            self.cycle = SubscriptionCycle(cycle).value
        self.updated_at = now
        self.raise_(
            SubscriptionPlanChanged(
                subscription_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_plan_id=previous_plan_id,
                plan_id=plan_id,
                amount=amount,
                cycle=self.cycle,
                changed_at=now,
            )
        )

    def cancel(self, reason=None):
        if self.is_closed:
            raise ValidationError({"status": [f"Subscription is already {self.status}"]})

        now = datetime.now(UTC)
        self.cancel_reason = reason
        self.cancelled_at = now
        self._set_status(SubscriptionStatus.CANCELLED, now)
        self.raise_(
            SubscriptionCancelled(
                subscription_id=str(self.id),
                tenant_id=str(self.tenant_id),
                reason=reason,
                cancelled_at=now,
            )
        )

    def end_trial(self):
        self._require(SubscriptionStatus.TRIAL, action="end the trial of")
        now = datetime.now(UTC)
        self.ended_at = now
        self._set_status(SubscriptionStatus.ENDED, now)

    # -------------------------------------------------------------------
    # Billing schedule
    # -------------------------------------------------------------------
    def renew(self, next_billing_date=None, renewed_on=None) -> bool:
        """Record a completed billing cycle.

        With ``next_billing_date`` (as reported by the gateway) the schedule
        moves there only if it is later than the current date, so a repeated
        or late delivery changes nothing. Without it the schedule moves one
        cycle ahead. Returns whether anything changed.
        """
        self._require(SubscriptionStatus.ACTIVE, SubscriptionStatus.OVERDUE, action="renew")

        now = datetime.now(UTC)
        previous = self.next_billing_date
        if next_billing_date is None:
            next_billing_date = next_cycle_date(previous or now.date(), self.cycle)
        if not self._move_billing_date(next_billing_date):
            return False

        self.total_payments = (self.total_payments or 0) + 1
        self.last_payment_date = renewed_on or now.date()
        self.updated_at = now
        self.raise_(
            SubscriptionRenewed(
                subscription_id=str(self.id),
                tenant_id=str(self.tenant_id),
                previous_billing_date=previous,
                next_billing_date=self.next_billing_date,
                total_payments=self.total_payments,
                renewed_at=now,
            )
        )
        return True

    def apply_gateway_update(self, amount=None, gateway_cycle=None, next_billing_date=None) -> bool:
        """Mirror a change made at the gateway; the billing date only moves forward."""
        changed = False
        if amount is not None and amount != self.amount:
            self.amount = amount
            changed = True
        if gateway_cycle in CYCLES_FROM_GATEWAY:
            cycle = CYCLES_FROM_GATEWAY[gateway_cycle].value
            if cycle != self.cycle:
                self.cycle = cycle
                changed = True
        if self._move_billing_date(next_billing_date):
            changed = True
        if changed:
            self.updated_at = datetime.now(UTC)
        return changed

    def record_payment_overdue(self) -> None:
        now = datetime.now(UTC)
        self.failed_payments = (self.failed_payments or 0) + 1
        self.updated_at = now
        if SubscriptionStatus(self.status) == SubscriptionStatus.ACTIVE:
            self._set_status(SubscriptionStatus.OVERDUE, now)

    def record_payment_received(self, paid_on=None) -> None:
        now = datetime.now(UTC)
        self.last_payment_date = paid_on or now.date()
        self.updated_at = now
        if SubscriptionStatus(self.status) == SubscriptionStatus.OVERDUE:
            self._set_status(SubscriptionStatus.ACTIVE, now)
