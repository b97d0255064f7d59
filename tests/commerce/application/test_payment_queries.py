"""Application tests for payment, transaction and subscription listings."""

from datetime import date

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from commerce.checkout.service import checkout_cart
from commerce.payment.payment import Payment, PaymentType, TransactionType
from commerce.payment.queries import list_payments, list_transactions
from commerce.reconciliation.service import reconcile_event
from commerce.subscription.management import CreateSubscription
from commerce.subscription.queries import list_subscriptions


@pytest.fixture()
def checkout(tenant_id, make_cart, payment_method_id):
    return checkout_cart(tenant_id, make_cart(), payment_method_id)


def _confirm(payment_id):
    gateway_payment_id = current_domain.repository_for(Payment).get(payment_id).gateway_payment_id
    reconcile_event(
        {"id": f"evt_{gateway_payment_id}", "event": "PAYMENT_CONFIRMED", "payment": {"id": gateway_payment_id}}
    )


def _subscribe(tenant_id, **fields):
    subscription_id = current_domain.process(
        CreateSubscription(
            tenant_id=tenant_id,
            plan_id="pro",
            plan_name="Pro",
            amount=9990,
            start_date=date(2026, 3, 1),
            **fields,
        ),
        asynchronous=False,
    )
    return str(subscription_id)


class TestListPayments:
    def test_by_order(self, tenant_id, checkout, make_cart, payment_method_id):
        checkout_cart(tenant_id, make_cart(user_id="user-002"), payment_method_id)

        payments = list_payments(tenant_id, order_id=checkout.order_id)

        assert [str(p.id) for p in payments] == [checkout.payment_id]
        assert len(list_payments(tenant_id)) == 2

    def test_by_subscription_and_status(self, tenant_id):
        subscription_id = _subscribe(tenant_id, payment_method="pix")

        [payment] = list_payments(tenant_id, subscription_id=subscription_id, status="pending")
        assert payment.payment_type == PaymentType.SUBSCRIPTION.value
        assert list_payments(tenant_id, subscription_id=subscription_id, status="confirmed") == []

    def test_other_tenant_sees_nothing(self, checkout):
        assert list_payments("other-store") == []

    def test_unknown_status_is_rejected(self, tenant_id):
        with pytest.raises(ValidationError) as exc:
            list_payments(tenant_id, status="settled")
        assert "status" in exc.value.messages


class TestListTransactions:
    def test_ledger_of_one_payment(self, tenant_id, checkout):
        _confirm(checkout.payment_id)

        entries = list_transactions(tenant_id, payment_id=checkout.payment_id)

        assert [t.transaction_type for _, t in entries] == [TransactionType.PAYMENT.value, TransactionType.FEE.value]
        assert all(str(p.id) == checkout.payment_id for p, _ in entries)

    def test_filtered_by_type_across_the_tenant(self, tenant_id, checkout, make_cart, payment_method_id):
        checkout_cart(tenant_id, make_cart(user_id="user-002"), payment_method_id)
        _confirm(checkout.payment_id)

        fees = list_transactions(tenant_id, transaction_type="fee")

        assert len(fees) == 1
        assert len(list_transactions(tenant_id, transaction_type="payment")) == 2

    def test_payment_of_another_tenant_is_not_found(self, checkout):
        with pytest.raises(ObjectNotFoundError):
            list_transactions("other-store", payment_id=checkout.payment_id)


class TestListSubscriptions:
    def test_filtered_by_status_and_user(self, tenant_id):
        trial = _subscribe(tenant_id, is_trial=True, user_id="user-001")
        active = _subscribe(tenant_id, payment_method="pix", user_id="user-002")

        assert {str(s.id) for s in list_subscriptions(tenant_id)} == {trial, active}
        assert [str(s.id) for s in list_subscriptions(tenant_id, status="trial")] == [trial]
        assert [str(s.id) for s in list_subscriptions(tenant_id, user_id="user-002")] == [active]
        assert list_subscriptions("other-store") == []

    def test_unknown_status_is_rejected(self, tenant_id):
        with pytest.raises(ValidationError):
            list_subscriptions(tenant_id, status="paused")
