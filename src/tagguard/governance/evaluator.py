"""
Condition Evaluator

Evaluates a condition tree against a resource's tags. Evaluation is a pure
function of (resource, condition, binding context): no I/O, no shared state,
safe to run concurrently across resources and rules.

Combinator conventions:
- all_of with no children is true (vacuous truth)
- any_of with no children is false (vacuous falsity)
"""

from typing import Any

from .conditions import Condition, ConditionKind, parameter_ref, tag_key
from .parameters import BindingContext
from ..exceptions import InvalidParameterValue, MalformedCondition
from ..inventory import Resource


def evaluate_condition(
    condition: Condition,
    resource: Resource,
    context: BindingContext,
) -> bool:
    """Evaluate a condition tree, left to right with short-circuiting."""
    kind = condition.kind

    if kind == ConditionKind.all_of:
        return all(evaluate_condition(c, resource, context) for c in condition.children)
    elif kind == ConditionKind.any_of:
        return any(evaluate_condition(c, resource, context) for c in condition.children)
    elif kind == ConditionKind.not_:
        if len(condition.children) != 1:
            raise MalformedCondition("'not' requires exactly one child")
        return not evaluate_condition(condition.children[0], resource, context)
    elif kind in (
        ConditionKind.field_exists,
        ConditionKind.field_equals,
        ConditionKind.value_not_in,
    ):
        return evaluate_predicate(condition, resource, context)

    raise MalformedCondition(f"Unknown condition kind: {kind!r}")


def evaluate_predicate(
    condition: Condition,
    resource: Resource,
    context: BindingContext,
) -> bool:
    """Evaluate a single leaf predicate against the resource's tags."""
    key = tag_key(condition.field or "")
    tags = resource.tags

    if condition.kind == ConditionKind.field_exists:
        return (key in tags) == condition.exists

    if condition.kind == ConditionKind.field_equals:
        if condition.value is None:
            raise MalformedCondition(f"field_equals on {condition.field!r} has no value")
        expected = _resolve_literal(condition.value, context)
        return key in tags and tags[key] == expected

    if condition.kind == ConditionKind.value_not_in:
        if not condition.parameter:
            raise MalformedCondition(f"value_not_in on {condition.field!r} has no parameter")
        allowed = allowed_set(condition.parameter, context)
        # Absent tags belong to the existence rule, never to this one
        if key not in tags:
            return False
        return tags[key].lower() not in allowed

    raise MalformedCondition(f"'{condition.kind.value}' is not a predicate")


def allowed_set(parameter: str, context: BindingContext) -> frozenset[str]:
    """Resolve an array parameter to its lowercased value set."""
    values = context.get(parameter)
    if isinstance(values, str) or not isinstance(values, (list, tuple, set, frozenset)):
        raise InvalidParameterValue(
            f"Parameter '{parameter}' must be an array of strings for notIn"
        )
    return frozenset(str(v).lower() for v in values)


def _resolve_literal(value: str, context: BindingContext) -> Any:
    name = parameter_ref(value)
    if name is None:
        return value
    return context.get(name)


def matched_fields(
    condition: Condition,
    resource: Resource,
    context: BindingContext,
) -> list[str]:
    """
    Tag keys of the leaf predicates that evaluate true, in tree order.

    Used to explain a triggered rule, e.g. which required tags are missing.
    Leaves under ``not`` are reported when the negated predicate is false.
    """
    found: list[str] = []
    _collect(condition, resource, context, negated=False, found=found)
    return found


def _collect(
    node: Condition,
    resource: Resource,
    context: BindingContext,
    negated: bool,
    found: list[str],
) -> None:
    if node.is_leaf:
        if evaluate_predicate(node, resource, context) != negated:
            key = tag_key(node.field or "")
            if key not in found:
                found.append(key)
        return
    for child in node.children:
        _collect(
            child,
            resource,
            context,
            negated=not negated if node.kind == ConditionKind.not_ else negated,
            found=found,
        )
