"""
Condition Trees

A condition is an explicit enumerated node: a leaf predicate over one tag
(field_exists, field_equals, value_not_in) or a combinator over child
conditions (all_of, any_of, not). Trees are finite and acyclic.

Conditions can be written in the policy-rule dialect used by the tag
policy documents:

    {"allOf": [
        {"field": "tags['Environment']", "exists": "true"},
        {"field": "tags['Environment']", "notIn": "[parameters('allowedEnvironments')]"}
    ]}
"""

import re
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field

from ..exceptions import MalformedCondition


_PARAMETER_REF = re.compile(r"^\[parameters\('([^'\]]+)'\)\]$")

_QUOTED_TAG = re.compile(r"^tags\[\s*'([^']+)'\s*\]$")
_BRACKET_TAG = re.compile(r"^tags\[([^\[\]'\"]+)\]$")
_DOTTED_TAG = re.compile(r"^tags\.([^\[\]'\".\s][^\[\]'\".]*)$")
_BARE_TAG = re.compile(r"^[^\[\]'\"\s](?:[^\[\]'\"]*[^\[\]'\"\s])?$")


def parameter_ref(value: Any) -> Optional[str]:
    """Return the parameter name if ``value`` is a ``[parameters('x')]`` reference."""
    if not isinstance(value, str):
        return None
    match = _PARAMETER_REF.match(value.strip())
    return match.group(1) if match else None


def make_parameter_ref(name: str) -> str:
    return f"[parameters('{name}')]"


def tag_key(field: str) -> str:
    """
    Resolve a field expression to the tag key it names.

    Accepts ``tags[Name]``, ``tags['Name']``, ``tags.Name`` and a bare tag
    name. Raises MalformedCondition for anything else.
    """
    if not isinstance(field, str) or not field:
        raise MalformedCondition(f"Field must be a non-empty string, got {field!r}")

    for pattern in (_QUOTED_TAG, _BRACKET_TAG, _DOTTED_TAG):
        match = pattern.match(field)
        if match:
            return match.group(1).strip()

    if field.startswith("tags[") or field.startswith("tags."):
        raise MalformedCondition(f"Malformed tag field expression: {field!r}")
    if _BARE_TAG.match(field):
        return field
    raise MalformedCondition(f"Unknown field key format: {field!r}")


class ConditionKind(str, Enum):
    """Node kinds of a condition tree."""

    field_exists = "field_exists"
    field_equals = "field_equals"
    value_not_in = "value_not_in"
    all_of = "all_of"
    any_of = "any_of"
    not_ = "not"


LEAF_KINDS = frozenset(
    {ConditionKind.field_exists, ConditionKind.field_equals, ConditionKind.value_not_in}
)


class Condition(BaseModel):
    """
    A node in a condition tree.

    Leaf nodes carry ``field`` plus their operand (``exists``, ``value`` or
    ``parameter``); combinator nodes carry ``children``.
    """

    kind: ConditionKind
    field: Optional[str] = Field(None, description="Tag field expression for leaf nodes")
    exists: bool = Field(default=True, description="Expected presence for field_exists")
    value: Optional[str] = Field(None, description="Literal or parameter reference for field_equals")
    parameter: Optional[str] = Field(None, description="Parameter name holding the allowed values")
    children: list["Condition"] = Field(default_factory=list)

    # Constructors

    @classmethod
    def field_exists(cls, field: str, exists: bool = True) -> "Condition":
        return cls(kind=ConditionKind.field_exists, field=field, exists=exists)

    @classmethod
    def field_equals(cls, field: str, value: str) -> "Condition":
        return cls(kind=ConditionKind.field_equals, field=field, value=value)

    @classmethod
    def value_not_in(cls, field: str, parameter: str) -> "Condition":
        return cls(kind=ConditionKind.value_not_in, field=field, parameter=parameter)

    @classmethod
    def all_of(cls, *children: "Condition") -> "Condition":
        return cls(kind=ConditionKind.all_of, children=list(children))

    @classmethod
    def any_of(cls, *children: "Condition") -> "Condition":
        return cls(kind=ConditionKind.any_of, children=list(children))

    @classmethod
    def negate(cls, child: "Condition") -> "Condition":
        return cls(kind=ConditionKind.not_, children=[child])

    @property
    def is_leaf(self) -> bool:
        return self.kind in LEAF_KINDS

    def walk(self) -> Iterator["Condition"]:
        """Yield every node depth-first, left to right. Assumes an acyclic tree."""
        yield self
        for child in self.children:
            yield from child.walk()

    def parameters(self) -> set[str]:
        """Names of all parameters this tree refers to."""
        names: set[str] = set()
        for node in self.walk():
            if node.kind == ConditionKind.value_not_in and node.parameter:
                names.add(node.parameter)
            elif node.kind == ConditionKind.field_equals:
                ref = parameter_ref(node.value)
                if ref:
                    names.add(ref)
        return names

    # Policy-rule dialect

    @classmethod
    def from_dict(cls, data: Any) -> "Condition":
        """Parse a condition written in the policy-rule dialect."""
        if not isinstance(data, dict):
            raise MalformedCondition(f"Condition must be an object, got {type(data).__name__}")

        if "kind" in data:
            try:
                return cls.model_validate(data)
            except ValueError as e:
                raise MalformedCondition(f"Invalid condition: {e}") from e

        if "allOf" in data or "anyOf" in data:
            if len(data) != 1:
                raise MalformedCondition(f"Combinator must be the only key: {sorted(data)}")
            key = "allOf" if "allOf" in data else "anyOf"
            items = data[key]
            if not isinstance(items, list):
                raise MalformedCondition(f"'{key}' must be a list")
            children = [cls.from_dict(item) for item in items]
            kind = ConditionKind.all_of if key == "allOf" else ConditionKind.any_of
            return cls(kind=kind, children=children)

        if "not" in data:
            if len(data) != 1:
                raise MalformedCondition("'not' must be the only key")
            return cls.negate(cls.from_dict(data["not"]))

        if "field" not in data:
            raise MalformedCondition(f"Unrecognized condition keys: {sorted(data)}")

        field = data["field"]
        operators = [k for k in data if k != "field"]
        if len(operators) != 1:
            raise MalformedCondition(
                f"Field condition needs exactly one operator, got {operators}"
            )
        op = operators[0]
        operand = data[op]

        if op == "exists":
            return cls.field_exists(field, exists=_parse_bool(operand))
        if op == "equals":
            if not isinstance(operand, str):
                raise MalformedCondition(f"'equals' operand must be a string, got {operand!r}")
            return cls.field_equals(field, operand)
        if op == "notIn":
            name = parameter_ref(operand)
            if name is None:
                raise MalformedCondition(
                    f"'notIn' operand must be a parameter reference, got {operand!r}"
                )
            return cls.value_not_in(field, name)

        raise MalformedCondition(f"Unsupported operator '{op}'")

    def to_dict(self) -> dict[str, Any]:
        """Render this condition in the policy-rule dialect."""
        if self.kind == ConditionKind.all_of:
            return {"allOf": [c.to_dict() for c in self.children]}
        if self.kind == ConditionKind.any_of:
            return {"anyOf": [c.to_dict() for c in self.children]}
        if self.kind == ConditionKind.not_:
            return {"not": self.children[0].to_dict() if self.children else {}}
        if self.kind == ConditionKind.field_exists:
            return {"field": self.field, "exists": "true" if self.exists else "false"}
        if self.kind == ConditionKind.field_equals:
            return {"field": self.field, "equals": self.value}
        return {"field": self.field, "notIn": make_parameter_ref(self.parameter or "")}


Condition.model_rebuild()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise MalformedCondition(f"'exists' operand must be true or false, got {value!r}")


def validate_condition(condition: Condition) -> None:
    """
    Check that a condition tree is structurally sound.

    Raises MalformedCondition on cycles, leaves without a valid field or
    operand, combinators carrying leaf operands, or ``not`` nodes without
    exactly one child.
    """
    _validate(condition, on_path=set())


def _validate(node: Condition, on_path: set[int]) -> None:
    node_id = id(node)
    if node_id in on_path:
        raise MalformedCondition("Condition tree contains a cycle")
    on_path.add(node_id)

    if node.is_leaf:
        if node.children:
            raise MalformedCondition(f"Leaf '{node.kind.value}' must not have children")
        tag_key(node.field or "")
        if node.kind == ConditionKind.field_equals and node.value is None:
            raise MalformedCondition(f"field_equals on {node.field!r} has no value")
        if node.kind == ConditionKind.value_not_in and not node.parameter:
            raise MalformedCondition(f"value_not_in on {node.field!r} has no parameter")
    else:
        if node.field is not None:
            raise MalformedCondition(f"Combinator '{node.kind.value}' must not name a field")
        if node.kind == ConditionKind.not_ and len(node.children) != 1:
            raise MalformedCondition("'not' requires exactly one child")
        for child in node.children:
            _validate(child, on_path)

    on_path.discard(node_id)
