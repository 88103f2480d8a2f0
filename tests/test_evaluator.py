"""Tests for condition evaluation: predicates and logical combinators."""

import pytest

from tagguard.exceptions import InvalidParameterValue, MalformedCondition, UnboundParameter
from tagguard.governance.conditions import Condition, ConditionKind
from tagguard.governance.evaluator import (
    evaluate_condition,
    evaluate_predicate,
    matched_fields,
)
from tagguard.governance.parameters import BindingContext
from tagguard.inventory import Resource


ALLOWED = BindingContext(values={"allowed": ("dev", "test", "staging", "production")})


def _resource(**tags) -> Resource:
    return Resource(id="/subscriptions/s/resourceGroups/rg/providers/x/vm1", tags=tags)


# ── Predicates ────────────────────────────────────────────────


class TestFieldExists:
    def test_present(self):
        assert evaluate_predicate(
            Condition.field_exists("tags['Owner']"), _resource(Owner="alice"), ALLOWED
        ) is True

    def test_empty_value_counts_as_present(self):
        assert evaluate_predicate(
            Condition.field_exists("Owner"), _resource(Owner=""), ALLOWED
        ) is True

    def test_absent(self):
        assert evaluate_predicate(Condition.field_exists("Owner"), _resource(), ALLOWED) is False

    def test_exists_false(self):
        cond = Condition.field_exists("Owner", exists=False)
        assert evaluate_predicate(cond, _resource(), ALLOWED) is True
        assert evaluate_predicate(cond, _resource(Owner="alice"), ALLOWED) is False


class TestFieldEquals:
    def test_exact_match(self):
        cond = Condition.field_equals("Environment", "production")
        assert evaluate_predicate(cond, _resource(Environment="production"), ALLOWED) is True

    def test_comparison_is_case_sensitive(self):
        cond = Condition.field_equals("Environment", "production")
        assert evaluate_predicate(cond, _resource(Environment="Production"), ALLOWED) is False

    def test_absent_key(self):
        cond = Condition.field_equals("Environment", "production")
        assert evaluate_predicate(cond, _resource(), ALLOWED) is False

    def test_parameter_literal(self):
        cond = Condition.field_equals("Environment", "[parameters('env')]")
        ctx = BindingContext(values={"env": "dev"})
        assert evaluate_predicate(cond, _resource(Environment="dev"), ctx) is True

    def test_unbound_parameter_literal(self):
        cond = Condition.field_equals("Environment", "[parameters('env')]")
        with pytest.raises(UnboundParameter):
            evaluate_predicate(cond, _resource(Environment="dev"), ALLOWED)


class TestValueNotIn:
    @pytest.mark.parametrize("value", ["production", "Production", "PRODUCTION", "dev"])
    def test_allowed_values_any_case(self, value):
        cond = Condition.value_not_in("Environment", "allowed")
        assert evaluate_predicate(cond, _resource(Environment=value), ALLOWED) is False

    def test_value_outside_set(self):
        cond = Condition.value_not_in("Environment", "allowed")
        assert evaluate_predicate(cond, _resource(Environment="Prod"), ALLOWED) is True

    def test_allowed_set_is_normalized(self):
        cond = Condition.value_not_in("Environment", "allowed")
        ctx = BindingContext(values={"allowed": ("Production",)})
        assert evaluate_predicate(cond, _resource(Environment="production"), ctx) is False

    def test_absent_tag_is_never_flagged(self):
        cond = Condition.value_not_in("Environment", "allowed")
        assert evaluate_predicate(cond, _resource(Owner="alice"), ALLOWED) is False

    def test_unbound_parameter(self):
        cond = Condition.value_not_in("Environment", "missing")
        with pytest.raises(UnboundParameter):
            evaluate_predicate(cond, _resource(Environment="dev"), ALLOWED)

    def test_string_parameter_is_rejected(self):
        cond = Condition.value_not_in("Environment", "allowed")
        ctx = BindingContext(values={"allowed": "production"})
        with pytest.raises(InvalidParameterValue):
            evaluate_predicate(cond, _resource(Environment="production"), ctx)


class TestMalformedLeaves:
    def test_bad_field_format(self):
        with pytest.raises(MalformedCondition):
            evaluate_condition(Condition.field_exists("tags['Owner'"), _resource(), ALLOWED)

    def test_combinator_is_not_a_predicate(self):
        with pytest.raises(MalformedCondition):
            evaluate_predicate(Condition.all_of(), _resource(), ALLOWED)

    def test_missing_parameter_name(self):
        cond = Condition(kind=ConditionKind.value_not_in, field="Environment")
        with pytest.raises(MalformedCondition):
            evaluate_condition(cond, _resource(Environment="dev"), ALLOWED)


# ── Combinators ───────────────────────────────────────────────


class TestCombinators:
    def test_empty_all_of_is_true(self):
        assert evaluate_condition(Condition.all_of(), _resource(), ALLOWED) is True

    def test_empty_any_of_is_false(self):
        assert evaluate_condition(Condition.any_of(), _resource(), ALLOWED) is False

    def test_all_of(self):
        cond = Condition.all_of(Condition.field_exists("Owner"), Condition.field_exists("Environment"))
        assert evaluate_condition(cond, _resource(Owner="a", Environment="dev"), ALLOWED) is True
        assert evaluate_condition(cond, _resource(Owner="a"), ALLOWED) is False

    def test_any_of(self):
        cond = Condition.any_of(Condition.field_exists("Owner"), Condition.field_exists("Environment"))
        assert evaluate_condition(cond, _resource(Environment="dev"), ALLOWED) is True
        assert evaluate_condition(cond, _resource(), ALLOWED) is False

    def test_not(self):
        cond = Condition.negate(Condition.field_exists("Owner"))
        assert evaluate_condition(cond, _resource(), ALLOWED) is True
        assert evaluate_condition(cond, _resource(Owner="a"), ALLOWED) is False

    def test_guarded_not_in(self):
        cond = Condition.all_of(
            Condition.field_exists("Environment"),
            Condition.value_not_in("Environment", "allowed"),
        )
        assert evaluate_condition(cond, _resource(), ALLOWED) is False
        assert evaluate_condition(cond, _resource(Environment="Prod"), ALLOWED) is True
        assert evaluate_condition(cond, _resource(Environment="Production"), ALLOWED) is False

    def test_nested_tree(self):
        cond = Condition.any_of(
            Condition.all_of(),
            Condition.field_exists("Owner"),
        )
        assert evaluate_condition(cond, _resource(), ALLOWED) is True


class TestMatchedFields:
    def test_missing_required_tags(self):
        cond = Condition.any_of(
            *(Condition.field_exists(t, exists=False) for t in ("Environment", "Owner", "CostCenter"))
        )
        assert matched_fields(cond, _resource(Environment="Prod"), ALLOWED) == ["Owner", "CostCenter"]

    def test_negated_leaves(self):
        cond = Condition.any_of(
            Condition.negate(Condition.field_exists("Owner")),
            Condition.negate(Condition.field_exists("Environment")),
        )
        assert matched_fields(cond, _resource(Environment="dev"), ALLOWED) == ["Owner"]

    def test_keys_are_deduplicated(self):
        cond = Condition.all_of(
            Condition.field_exists("Environment"),
            Condition.value_not_in("Environment", "allowed"),
        )
        assert matched_fields(cond, _resource(Environment="Prod"), ALLOWED) == ["Environment"]
