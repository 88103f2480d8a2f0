"""
ARM Policy Import

Converts Azure Policy definition documents (the JSON policy rules the
tagging standards are written in) into PolicyRule objects:

    {
      "name": "require-environment-tag",
      "properties": {
        "parameters": {"effect": {"type": "String", "defaultValue": "Audit",
                                  "allowedValues": ["Audit", "Deny", "Disabled"]}},
        "policyRule": {
          "if": {"field": "tags['Environment']", "exists": "false"},
          "then": {"effect": "[parameters('effect')]"}
        }
      }
    }

Only the subset of the policy language the engine evaluates is accepted:
field conditions with exists/equals/notIn under allOf/anyOf/not, and modify
operations that copy a tag from the resource group.
"""

import json
import logging
import re
from typing import Any

from .conditions import make_parameter_ref, parameter_ref, tag_key
from .parameters import ParameterDefinition, ParameterType
from .rules import Effect, PolicyRule
from ..exceptions import MalformedCondition, PolicyDefinitionError

logger = logging.getLogger(__name__)

_CONCAT_TAG_FIELD = re.compile(
    r"^\[concat\('tags\[',\s*parameters\('([^']+)'\),\s*'\]'\)\]$", re.IGNORECASE
)
_RESOURCE_GROUP_TAG = re.compile(r"^\[resourceGroup\(\)\.tags\[(.+)\]\]$", re.IGNORECASE)
_QUOTED = re.compile(r"^'([^']+)'$")
_PARAMETER_CALL = re.compile(r"^parameters\('([^']+)'\)$")

_TYPES = {"string": ParameterType.string, "array": ParameterType.array}


def is_arm_definition(data: Any) -> bool:
    """True if ``data`` looks like an Azure Policy definition."""
    if not isinstance(data, dict):
        return False
    props = data.get("properties", data)
    return isinstance(props, dict) and "policyRule" in props


def rule_from_arm(definition: dict[str, Any]) -> PolicyRule:
    """Convert one Azure Policy definition into a PolicyRule."""
    props = definition.get("properties", definition)
    name = definition.get("name") or props.get("displayName")
    if not name:
        raise PolicyDefinitionError("Policy definition has no name")

    policy_rule = props.get("policyRule") or {}
    if "if" not in policy_rule or "then" not in policy_rule:
        raise PolicyDefinitionError(f"Policy '{name}' needs policyRule.if and policyRule.then")
    then = policy_rule["then"]

    parameters = {
        param_name: _parameter_from_arm(param_name, spec)
        for param_name, spec in (props.get("parameters") or {}).items()
    }

    effect_value = then.get("effect")
    effect_parameter = parameter_ref(effect_value)
    if effect_parameter is None:
        # Literal effect: expose it as a fixed parameter
        literal = Effect.parse(effect_value)
        effect_parameter = "effect"
        parameters[effect_parameter] = ParameterDefinition(
            name=effect_parameter,
            default=literal.value,
            allowed_values=[literal.value],
        )

    inherit_tags: list[str] = []
    operations = (then.get("details") or {}).get("operations") or []
    if operations:
        inherit_tags = [_inherit_entry(name, op) for op in operations]
        # The modify engine applies its own missing-on-resource,
        # present-on-scope test, so the rule's `if` is not carried over.
        condition = None
    else:
        # Parsed by PolicyRule, which keeps a malformed `if` as a broken rule
        condition = policy_rule["if"]

    rule = PolicyRule(
        name=name,
        display_name=props.get("displayName"),
        description=props.get("description"),
        condition=condition,
        effect_parameter=effect_parameter,
        parameters=parameters,
        inherit_tags=inherit_tags,
    )
    logger.debug(f"Imported policy definition '{name}'")
    return rule


def rules_from_arm_json(json_content: str) -> list[PolicyRule]:
    """Convert a JSON document holding one definition or a list of them."""
    data = json.loads(json_content)
    items = data if isinstance(data, list) else [data]
    return [rule_from_arm(item) for item in items]


def _parameter_from_arm(name: str, spec: dict[str, Any]) -> ParameterDefinition:
    declared = str(spec.get("type", "String")).lower()
    if declared not in _TYPES:
        raise PolicyDefinitionError(
            f"Parameter '{name}' has unsupported type '{spec.get('type')}'"
        )
    metadata = spec.get("metadata") or {}
    return ParameterDefinition(
        name=name,
        type=_TYPES[declared],
        default=spec.get("defaultValue"),
        allowed_values=spec.get("allowedValues"),
        description=metadata.get("description") or metadata.get("displayName"),
    )


def _inherit_entry(rule_name: str, operation: dict[str, Any]) -> str:
    """Turn a modify operation into an inherit_tags entry (tag name or parameter reference)."""
    op = str(operation.get("operation", "")).lower()
    if op not in ("add", "addorreplace"):
        raise PolicyDefinitionError(
            f"Policy '{rule_name}': unsupported modify operation '{operation.get('operation')}'"
        )

    field = operation.get("field", "")
    concat = _CONCAT_TAG_FIELD.match(field)
    if concat:
        target = make_parameter_ref(concat.group(1))
    else:
        try:
            target = tag_key(field)
        except MalformedCondition as e:
            raise PolicyDefinitionError(f"Policy '{rule_name}': {e}") from e

    source = _RESOURCE_GROUP_TAG.match(str(operation.get("value", "")))
    if not source:
        raise PolicyDefinitionError(
            f"Policy '{rule_name}': modify value must copy a resource group tag"
        )
    inner = source.group(1).strip()
    quoted = _QUOTED.match(inner)
    call = _PARAMETER_CALL.match(inner)
    if quoted:
        source_key = quoted.group(1)
    elif call:
        source_key = make_parameter_ref(call.group(1))
    else:
        source_key = inner

    if source_key != target:
        raise PolicyDefinitionError(
            f"Policy '{rule_name}': modify must copy the same tag it sets "
            f"({source_key!r} != {target!r})"
        )
    return target
