"""Application tests for subscription management through the gateway."""

from datetime import UTC, date, datetime

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from commerce.payment.payment import Payment, PaymentType
from commerce.subscription.management import (
    CancelSubscription,
    ChangeSubscriptionPlan,
    ConvertTrialToActive,
    CreateSubscription,
)
from commerce.subscription.subscription import Subscription, SubscriptionCycle, SubscriptionStatus, add_months


def _create(tenant_id, **fields):
    fields.setdefault("plan_id", "pro")
    fields.setdefault("plan_name", "Pro")
    fields.setdefault("amount", 9990)
    fields.setdefault("customer_id", "cus_001")
    fields.setdefault("start_date", date(2026, 3, 1))
    return current_domain.process(CreateSubscription(tenant_id=tenant_id, **fields), asynchronous=False)


def _subscription(subscription_id):
    return current_domain.repository_for(Subscription).get(subscription_id)


def _payments():
    return current_domain.repository_for(Payment)._dao.query.all().items


class TestCreateSubscription:
    def test_trial_stays_off_the_gateway(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, is_trial=True)

        subscription = _subscription(subscription_id)
        assert subscription.status == SubscriptionStatus.TRIAL.value
        assert subscription.trial_end_date == date(2026, 3, 16)
        assert subscription.next_billing_date == date(2026, 3, 16)
        assert subscription.gateway_subscription_id is None
        assert _payments() == []
        assert fake_gateway.calls == []

    def test_custom_trial_length(self, tenant_id):
        subscription_id = _create(tenant_id, is_trial=True, trial_days=7)
        assert _subscription(subscription_id).trial_end_date == date(2026, 3, 8)

    def test_paid_subscription_records_first_invoice(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, payment_method="credit_card")

        subscription = _subscription(subscription_id)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.gateway_subscription_id.startswith("sub_")
        assert subscription.total_payments == 1
        assert subscription.next_billing_date == date(2026, 4, 1)

        [payment] = _payments()
        assert payment.payment_type == PaymentType.SUBSCRIPTION.value
        assert payment.subscription_id == subscription_id
        assert payment.amount == 9990
        assert payment.external_reference == f"subscription-{subscription_id}-payment-1"

        [call] = fake_gateway.calls_to("create_subscription")
        assert call["request"].billing_type == "CREDIT_CARD"
        assert call["request"].cycle == "MONTHLY"
        assert call["request"].next_due_date == date(2026, 3, 1)

    def test_gateway_failure_saves_nothing(self, tenant_id, fake_gateway):
        fake_gateway.configure(should_succeed=False, failure_reason="Invalid customer")

        with pytest.raises(ValidationError) as exc:
            _create(tenant_id, payment_method="pix")

        assert "Invalid customer" in exc.value.messages["gateway"][0]
        assert current_domain.repository_for(Subscription)._dao.query.all().items == []
        assert _payments() == []


class TestConvertTrial:
    def test_convert_trial_starts_billing_today(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, is_trial=True)

        current_domain.process(
            ConvertTrialToActive(tenant_id=tenant_id, subscription_id=subscription_id, payment_method="pix"),
            asynchronous=False,
        )

        today = datetime.now(UTC).date()
        subscription = _subscription(subscription_id)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.payment_method == "pix"
        assert subscription.next_billing_date == add_months(today, 1)
        assert fake_gateway.calls_to("create_subscription")[0]["request"].next_due_date == today
        assert len(_payments()) == 1

    def test_only_trials_convert(self, tenant_id):
        subscription_id = _create(tenant_id, payment_method="pix")

        with pytest.raises(ValidationError) as exc:
            current_domain.process(
                ConvertTrialToActive(tenant_id=tenant_id, subscription_id=subscription_id, payment_method="pix"),
                asynchronous=False,
            )
        assert "status" in exc.value.messages


class TestChangePlan:
    def test_change_plan_updates_gateway(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, payment_method="pix")

        current_domain.process(
            ChangeSubscriptionPlan(
                tenant_id=tenant_id,
                subscription_id=subscription_id,
                plan_id="business",
                plan_name="Business",
                amount=19990,
                cycle="annual",
            ),
            asynchronous=False,
        )

        subscription = _subscription(subscription_id)
        assert subscription.plan_id == "business"
        assert subscription.amount == 19990
        assert subscription.cycle == SubscriptionCycle.ANNUAL.value

        [call] = fake_gateway.calls_to("update_subscription")
        assert call["amount"] == 19990
        assert call["cycle"] == "YEARLY"

    def test_trial_plan_cannot_change(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, is_trial=True)

        with pytest.raises(ValidationError):
            current_domain.process(
                ChangeSubscriptionPlan(
                    tenant_id=tenant_id, subscription_id=subscription_id, plan_id="b", plan_name="B", amount=100
                ),
                asynchronous=False,
            )
        assert fake_gateway.calls_to("update_subscription") == []

    def test_gateway_failure_keeps_plan(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, payment_method="pix")
        fake_gateway.configure(should_succeed=False)

        with pytest.raises(ValidationError):
            current_domain.process(
                ChangeSubscriptionPlan(
                    tenant_id=tenant_id, subscription_id=subscription_id, plan_id="b", plan_name="B", amount=100
                ),
                asynchronous=False,
            )
        assert _subscription(subscription_id).plan_id == "pro"


class TestCancelSubscription:
    def test_cancel_active_subscription(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, payment_method="pix")
        gateway_id = _subscription(subscription_id).gateway_subscription_id

        status = current_domain.process(
            CancelSubscription(tenant_id=tenant_id, subscription_id=subscription_id, reason="Too expensive"),
            asynchronous=False,
        )

        assert status == SubscriptionStatus.CANCELLED.value
        assert _subscription(subscription_id).cancel_reason == "Too expensive"
        assert fake_gateway.calls_to("cancel_subscription")[0]["gateway_subscription_id"] == gateway_id

    def test_cancel_trial_stays_local(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, is_trial=True)

        current_domain.process(
            CancelSubscription(tenant_id=tenant_id, subscription_id=subscription_id), asynchronous=False
        )
        assert _subscription(subscription_id).status == SubscriptionStatus.CANCELLED.value
        assert fake_gateway.calls == []

    def test_cancel_twice_is_rejected(self, tenant_id):
        subscription_id = _create(tenant_id, is_trial=True)
        current_domain.process(
            CancelSubscription(tenant_id=tenant_id, subscription_id=subscription_id), asynchronous=False
        )

        with pytest.raises(ValidationError):
            current_domain.process(
                CancelSubscription(tenant_id=tenant_id, subscription_id=subscription_id), asynchronous=False
            )

    def test_gateway_failure_keeps_subscription_active(self, tenant_id, fake_gateway):
        subscription_id = _create(tenant_id, payment_method="pix")
        fake_gateway.configure(should_succeed=False)

        with pytest.raises(ValidationError):
            current_domain.process(
                CancelSubscription(tenant_id=tenant_id, subscription_id=subscription_id), asynchronous=False
            )
        assert _subscription(subscription_id).status == SubscriptionStatus.ACTIVE.value
