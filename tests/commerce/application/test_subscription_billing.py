from datetime import date

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from commerce.subscription.billing import EndTrial, ProcessRenewals, ProcessTrialEndings
from commerce.subscription.management import CreateSubscription
from commerce.subscription.subscription import Subscription, SubscriptionStatus


def _create(tenant_id, start_date, **fields):
    return current_domain.process(
        CreateSubscription(
            tenant_id=tenant_id,
            plan_id="pro",
            plan_name="Pro",
            amount=9990,
            payment_method="pix",
            start_date=start_date,
            **fields,
        ),
        asynchronous=False,
    )


def _subscription(subscription_id):
    return current_domain.repository_for(Subscription).get(subscription_id)


class TestProcessRenewals:
    def test_due_subscriptions_advance_one_cycle(self, tenant_id):
        due = _create(tenant_id, date(2026, 3, 1))
        later = _create(tenant_id, date(2026, 3, 15))

        processed = current_domain.process(ProcessRenewals(as_of=date(2026, 4, 1)), asynchronous=False)

        assert processed == 1
        renewed = _subscription(due)
        assert renewed.next_billing_date == date(2026, 5, 1)
        assert renewed.total_payments == 2
        assert renewed.last_payment_date == date(2026, 4, 1)
        assert _subscription(later).next_billing_date == date(2026, 4, 15)

    def test_second_run_renews_nothing(self, tenant_id):
        _create(tenant_id, date(2026, 3, 1))

        current_domain.process(ProcessRenewals(as_of=date(2026, 4, 1)), asynchronous=False)
        assert current_domain.process(ProcessRenewals(as_of=date(2026, 4, 1)), asynchronous=False) == 0

    def test_narrowed_to_one_tenant(self, tenant_id):
        _create(tenant_id, date(2026, 3, 1))

        processed = current_domain.process(
            ProcessRenewals(tenant_id="other-store", as_of=date(2026, 4, 1)), asynchronous=False
        )
        assert processed == 0

    def test_trials_are_not_renewed(self, tenant_id):
        trial = _create(tenant_id, date(2026, 3, 1), is_trial=True)

        assert current_domain.process(ProcessRenewals(as_of=date(2026, 4, 1)), asynchronous=False) == 0
        assert _subscription(trial).status == SubscriptionStatus.TRIAL.value


class TestProcessTrialEndings:
    def test_expired_trials_end(self, tenant_id):
        expired = _create(tenant_id, date(2026, 3, 1), is_trial=True)
        running = _create(tenant_id, date(2026, 3, 10), is_trial=True)

        processed = current_domain.process(ProcessTrialEndings(as_of=date(2026, 3, 16)), asynchronous=False)

        assert processed == 1
        ended = _subscription(expired)
        assert ended.status == SubscriptionStatus.ENDED.value
        assert ended.ended_at is not None
        assert _subscription(running).status == SubscriptionStatus.TRIAL.value

    def test_end_trial_requires_a_trial(self, tenant_id):
        active = _create(tenant_id, date(2026, 3, 1))

        with pytest.raises(ValidationError):
            current_domain.process(EndTrial(tenant_id=tenant_id, subscription_id=active), asynchronous=False)


class TestBatchIsolation:
    def test_one_failing_renewal_does_not_stop_the_batch(self, tenant_id, monkeypatch):
        failing = _create(tenant_id, date(2026, 3, 1))
        healthy = _create(tenant_id, date(2026, 3, 1))
        original_renew = Subscription.renew

        def renew(self, *args, **kwargs):
            if str(self.id) == str(failing):
                raise RuntimeError("storage unavailable")
            return original_renew(self, *args, **kwargs)

        monkeypatch.setattr(Subscription, "renew", renew)

        processed = current_domain.process(ProcessRenewals(as_of=date(2026, 4, 1)), asynchronous=False)

        assert processed == 1
        assert _subscription(failing).next_billing_date == date(2026, 4, 1)
        assert _subscription(healthy).next_billing_date == date(2026, 5, 1)

    def test_one_failing_trial_ending_does_not_stop_the_batch(self, tenant_id, monkeypatch):
        failing = _create(tenant_id, date(2026, 3, 1), is_trial=True)
        healthy = _create(tenant_id, date(2026, 3, 1), is_trial=True)
        original_end_trial = Subscription.end_trial

        def end_trial(self, *args, **kwargs):
            if str(self.id) == str(failing):
                raise ValueError("bad trial date")
            return original_end_trial(self, *args, **kwargs)

        monkeypatch.setattr(Subscription, "end_trial", end_trial)

        processed = current_domain.process(ProcessTrialEndings(as_of=date(2026, 3, 16)), asynchronous=False)

        assert processed == 1
        assert _subscription(failing).status == SubscriptionStatus.TRIAL.value
        assert _subscription(healthy).status == SubscriptionStatus.ENDED.value
