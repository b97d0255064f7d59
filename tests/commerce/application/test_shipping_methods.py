import json

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from commerce.shipping.management import (
    CreateShippingMethod,
    ReorderShippingMethods,
    ReplaceShippingRules,
    SetShippingMethodActive,
)
from commerce.shipping.method import ShippingMethod


def _create(tenant_id, name, **fields):
    return current_domain.process(CreateShippingMethod(tenant_id=tenant_id, name=name, **fields), asynchronous=False)


def _method(method_id):
    return current_domain.repository_for(ShippingMethod).get(method_id)


class TestCreateShippingMethod:
    def test_sort_order_appends(self, tenant_id):
        first = _create(tenant_id, "Standard")
        second = _create(tenant_id, "Express")

        assert _method(first).sort_order == 0
        assert _method(second).sort_order == 1

    def test_rules_are_validated(self, tenant_id):
        with pytest.raises(ValidationError) as exc:
            _create(
                tenant_id,
                "Regional",
                method_type="location_based",
                location_rules=json.dumps([{"state": "SP", "price": 900}]),
            )
        assert "location_rules" in exc.value.messages


class TestReplaceRules:
    def test_replace_only_given_lists(self, tenant_id):
        method_id = _create(
            tenant_id,
            "By weight",
            method_type="weight_based",
            weight_rules=json.dumps([{"min_weight": 0, "max_weight": 1, "price": 1000}]),
            price_rules=json.dumps([{"min_order_value": 0, "price": 500}]),
        )

        current_domain.process(
            ReplaceShippingRules(
                tenant_id=tenant_id,
                shipping_method_id=method_id,
                weight_rules=json.dumps([{"min_weight": 0, "max_weight": 5, "price": 2000}]),
            ),
            asynchronous=False,
        )

        method = _method(method_id)
        assert method.weight_rule_list == [{"min_weight": 0, "max_weight": 5, "price": 2000}]
        assert method.price_rule_list == [{"min_order_value": 0, "price": 500}]

    def test_invalid_replacement_keeps_rules(self, tenant_id):
        method_id = _create(
            tenant_id,
            "By weight",
            method_type="weight_based",
            weight_rules=json.dumps([{"min_weight": 0, "max_weight": 1, "price": 1000}]),
        )

        with pytest.raises(ValidationError):
            current_domain.process(
                ReplaceShippingRules(
                    tenant_id=tenant_id,
                    shipping_method_id=method_id,
                    weight_rules=json.dumps([{"min_weight": 3, "max_weight": 1, "price": 1000}]),
                ),
                asynchronous=False,
            )
        assert _method(method_id).weight_rule_list[0]["max_weight"] == 1


class TestActivation:
    def test_deactivate_and_activate(self, tenant_id):
        method_id = _create(tenant_id, "Standard")

        current_domain.process(
            SetShippingMethodActive(tenant_id=tenant_id, shipping_method_id=method_id, is_active=False),
            asynchronous=False,
        )
        assert _method(method_id).is_active is False

        current_domain.process(
            SetShippingMethodActive(tenant_id=tenant_id, shipping_method_id=method_id, is_active=True),
            asynchronous=False,
        )
        assert _method(method_id).is_active is True


class TestReorder:
    def test_reorder_follows_given_sequence(self, tenant_id):
        ids = [_create(tenant_id, name) for name in ("A", "B", "C")]

        count = current_domain.process(
            ReorderShippingMethods(tenant_id=tenant_id, method_ids=json.dumps([ids[2], ids[0], ids[1]])),
            asynchronous=False,
        )

        assert count == 3
        assert [_method(i).sort_order for i in ids] == [1, 2, 0]

    def test_unknown_id_aborts_whole_reorder(self, tenant_id):
        ids = [_create(tenant_id, name) for name in ("A", "B")]

        with pytest.raises(ObjectNotFoundError):
            current_domain.process(
                ReorderShippingMethods(tenant_id=tenant_id, method_ids=json.dumps([ids[1], "missing", ids[0]])),
                asynchronous=False,
            )
        assert [_method(i).sort_order for i in ids] == [0, 1]

    def test_other_tenant_method_aborts_reorder(self, tenant_id):
        ours = _create(tenant_id, "A")
        theirs = _create("other-store", "B")

        with pytest.raises(ObjectNotFoundError):
            current_domain.process(
                ReorderShippingMethods(tenant_id=tenant_id, method_ids=json.dumps([theirs, ours])),
                asynchronous=False,
            )
        assert _method(ours).sort_order == 0

    def test_duplicate_ids_rejected(self, tenant_id):
        method_id = _create(tenant_id, "A")

        with pytest.raises(ValidationError):
            current_domain.process(
                ReorderShippingMethods(tenant_id=tenant_id, method_ids=json.dumps([method_id, method_id])),
                asynchronous=False,
            )
