"""Tests for importing Azure Policy definitions."""

import json

import pytest

from tagguard.exceptions import InvalidParameterValue, MalformedCondition, PolicyDefinitionError
from tagguard.governance.arm import is_arm_definition, rule_from_arm, rules_from_arm_json
from tagguard.governance.conditions import ConditionKind
from tagguard.governance.parameters import ParameterType
from tagguard.governance.rules import Effect, Verdict
from tagguard.inventory import Resource, Scope


REQUIRE_ENVIRONMENT = {
    "name": "require-environment-tag",
    "properties": {
        "displayName": "Require an Environment tag",
        "parameters": {
            "effect": {
                "type": "String",
                "defaultValue": "Audit",
                "allowedValues": ["Audit", "Deny", "Disabled"],
            }
        },
        "policyRule": {
            "if": {"field": "tags['Environment']", "exists": "false"},
            "then": {"effect": "[parameters('effect')]"},
        },
    },
}

ALLOWED_ENVIRONMENTS = {
    "name": "allowed-environments",
    "properties": {
        "parameters": {
            "allowedValues": {
                "type": "Array",
                "defaultValue": ["dev", "test", "staging", "production"],
                "metadata": {"displayName": "Allowed environments"},
            }
        },
        "policyRule": {
            "if": {
                "allOf": [
                    {"field": "tags['Environment']", "exists": "true"},
                    {"field": "tags['Environment']", "notIn": "[parameters('allowedValues')]"},
                ]
            },
            "then": {"effect": "deny"},
        },
    },
}


def _inherit(operation: dict, parameters: dict | None = None) -> dict:
    return {
        "name": "inherit-tag",
        "properties": {
            "parameters": parameters or {},
            "policyRule": {
                "if": {"field": "tags['Environment']", "exists": "false"},
                "then": {
                    "effect": "modify",
                    "details": {
                        "roleDefinitionIds": ["/providers/roleDefinitions/contributor"],
                        "operations": [operation],
                    },
                },
            },
        },
    }


CONCAT_INHERIT = _inherit(
    {
        "operation": "addOrReplace",
        "field": "[concat('tags[', parameters('tagName'), ']')]",
        "value": "[resourceGroup().tags[parameters('tagName')]]",
    },
    parameters={"tagName": {"type": "String"}},
)


class TestDetection:
    def test_is_arm_definition(self):
        assert is_arm_definition(REQUIRE_ENVIRONMENT)
        assert is_arm_definition(REQUIRE_ENVIRONMENT["properties"])
        assert not is_arm_definition({"name": "r", "condition": {}})
        assert not is_arm_definition([REQUIRE_ENVIRONMENT])


class TestImport:
    def test_parameterised_effect(self):
        rule = rule_from_arm(REQUIRE_ENVIRONMENT)
        rule.check()
        assert rule.name == "require-environment-tag"
        assert rule.display_name == "Require an Environment tag"
        assert rule.condition.kind == ConditionKind.field_exists
        assert rule.condition.exists is False
        assert rule.parameters["effect"].allowed_values == ["Audit", "Deny", "Disabled"]

        ctx = rule.resolver().bind()
        result = rule.evaluate(Resource(id="vm1"), Scope(id="rg"), ctx)
        assert result.verdict == Verdict.non_compliant

    def test_literal_effect_becomes_fixed_parameter(self):
        rule = rule_from_arm(ALLOWED_ENVIRONMENTS)
        rule.check()
        assert rule.parameters["effect"].allowed_values == ["deny"]
        assert rule.parameters["allowedValues"].type == ParameterType.array
        assert rule.parameters["allowedValues"].description == "Allowed environments"

        ctx = rule.resolver().bind()
        assert rule.effect(ctx) == Effect.deny
        result = rule.evaluate(Resource(id="vm1", tags={"Environment": "Prod"}), Scope(id="rg"), ctx)
        assert result.verdict == Verdict.non_compliant_blocking

    def test_modify_with_literal_tag(self):
        rule = rule_from_arm(
            _inherit(
                {
                    "operation": "add",
                    "field": "tags['Environment']",
                    "value": "[resourceGroup().tags['Environment']]",
                }
            )
        )
        rule.check()
        assert rule.inherit_tags == ["Environment"]
        assert rule.condition is None

        result = rule.evaluate(
            Resource(id="vm1"), Scope(id="rg", tags={"Environment": "dev"}), rule.resolver().bind()
        )
        assert result.verdict == Verdict.modified
        assert result.patches[0].value == "dev"

    def test_modify_with_parameterised_tag(self):
        rule = rule_from_arm(CONCAT_INHERIT)
        rule.check()
        assert rule.inherit_tags == ["[parameters('tagName')]"]

        ctx = rule.resolver().bind(assigned={"tagName": "CostCenter"})
        result = rule.evaluate(Resource(id="vm1"), Scope(id="rg", tags={"CostCenter": "cc-1"}), ctx)
        assert result.tag_keys == ["CostCenter"]

    def test_concat_field_in_condition_is_malformed(self):
        definition = {
            "name": "concat-audit",
            "properties": {
                "parameters": {"tagName": {"type": "String"}},
                "policyRule": {
                    "if": {"field": "[concat('tags[', parameters('tagName'), ']')]", "exists": "false"},
                    "then": {"effect": "audit"},
                },
            },
        }
        rule = rule_from_arm(definition)
        with pytest.raises(MalformedCondition):
            rule.check()

    def test_json_list(self):
        rules = rules_from_arm_json(json.dumps([REQUIRE_ENVIRONMENT, ALLOWED_ENVIRONMENTS]))
        assert [r.name for r in rules] == ["require-environment-tag", "allowed-environments"]


class TestImportErrors:
    def test_missing_name(self):
        definition = {"properties": {"policyRule": REQUIRE_ENVIRONMENT["properties"]["policyRule"]}}
        with pytest.raises(PolicyDefinitionError):
            rule_from_arm(definition)

    def test_missing_then(self):
        definition = {"name": "x", "properties": {"policyRule": {"if": {"field": "Owner", "exists": "true"}}}}
        with pytest.raises(PolicyDefinitionError):
            rule_from_arm(definition)

    def test_unsupported_parameter_type(self):
        definition = json.loads(json.dumps(REQUIRE_ENVIRONMENT))
        definition["properties"]["parameters"]["count"] = {"type": "Integer", "defaultValue": 3}
        with pytest.raises(PolicyDefinitionError):
            rule_from_arm(definition)

    def test_malformed_if_is_kept_for_the_rule_check(self):
        definition = json.loads(json.dumps(REQUIRE_ENVIRONMENT))
        definition["properties"]["policyRule"]["if"] = {"field": "tags['Environment']", "like": "dev*"}
        rule = rule_from_arm(definition)
        assert rule.name == "require-environment-tag"
        with pytest.raises(MalformedCondition, match="like"):
            rule.check()

    def test_unknown_literal_effect(self):
        definition = json.loads(json.dumps(ALLOWED_ENVIRONMENTS))
        definition["properties"]["policyRule"]["then"]["effect"] = "append"
        with pytest.raises(InvalidParameterValue):
            rule_from_arm(definition)

    @pytest.mark.parametrize(
        "operation",
        [
            {"operation": "remove", "field": "tags['Owner']"},
            {"operation": "add", "field": "tags['Owner']", "value": "alice"},
            {
                "operation": "add",
                "field": "tags['Owner']",
                "value": "[resourceGroup().tags['Environment']]",
            },
            {"operation": "add", "field": "tags[Owner", "value": "[resourceGroup().tags['Owner']]"},
        ],
    )
    def test_unsupported_operations(self, operation):
        with pytest.raises(PolicyDefinitionError):
            rule_from_arm(_inherit(operation))
