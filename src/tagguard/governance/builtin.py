"""
Built-in Tagging Policies

The tagging standard as shipped: every resource carries Environment, Owner
and CostCenter; Environment takes one of a fixed set of values; missing tags
are inherited from the resource group.
"""

from typing import Sequence

from .conditions import Condition, make_parameter_ref
from .initiative import Initiative, RuleReference
from .parameters import ParameterDefinition, ParameterType
from .rules import PolicyRule

REQUIRED_TAGS = ("Environment", "Owner", "CostCenter")
ALLOWED_ENVIRONMENTS = ("dev", "test", "staging", "production")

AUDIT_EFFECTS = ["Audit", "Deny", "Disabled"]
MODIFY_EFFECTS = ["Modify", "Disabled"]


def required_tags_rule(
    tags: Sequence[str] = REQUIRED_TAGS,
    name: str = "require-tags",
) -> PolicyRule:
    """Flags resources missing any of ``tags``."""
    return PolicyRule(
        name=name,
        display_name="Require tags on resources",
        description=f"Resources must carry the tags: {', '.join(tags)}",
        condition=Condition.any_of(
            *(Condition.field_exists(f"tags['{tag}']", exists=False) for tag in tags)
        ),
        parameters={
            "effect": ParameterDefinition(
                name="effect", default="Audit", allowed_values=AUDIT_EFFECTS
            ),
        },
    )


def allowed_values_rule(
    tag: str = "Environment",
    allowed: Sequence[str] = ALLOWED_ENVIRONMENTS,
    name: str = "allowed-environment-values",
) -> PolicyRule:
    """Flags resources whose ``tag`` value is outside the allowed set (case-insensitive)."""
    field = f"tags['{tag}']"
    return PolicyRule(
        name=name,
        display_name=f"Allowed values for the {tag} tag",
        description=f"The {tag} tag must be one of the allowed values",
        # Existence guard: a missing tag is the required-tags rule's finding
        condition=Condition.all_of(
            Condition.field_exists(field),
            Condition.value_not_in(field, "allowedValues"),
        ),
        parameters={
            "effect": ParameterDefinition(
                name="effect", default="Audit", allowed_values=AUDIT_EFFECTS
            ),
            "allowedValues": ParameterDefinition(
                name="allowedValues",
                type=ParameterType.array,
                default=list(allowed),
            ),
        },
    )


def inherit_tags_rule(
    tags: Sequence[str] = REQUIRED_TAGS,
    name: str = "inherit-tags-from-resource-group",
) -> PolicyRule:
    """Copies missing ``tags`` from the resource group."""
    return PolicyRule(
        name=name,
        display_name="Inherit tags from the resource group",
        description=f"Adds {', '.join(tags)} from the resource group when missing",
        inherit_tags=list(tags),
        parameters={
            "effect": ParameterDefinition(
                name="effect", default="Modify", allowed_values=MODIFY_EFFECTS
            ),
        },
    )


def builtin_rules() -> list[PolicyRule]:
    return [required_tags_rule(), allowed_values_rule(), inherit_tags_rule()]


def tagging_initiative() -> Initiative:
    """The tagging-standards initiative binding the three built-in rules."""
    return Initiative(
        name="tagging-standards",
        display_name="Tagging standards",
        description="Required tags, allowed Environment values, and tag inheritance",
        parameters={
            "requiredTagsEffect": ParameterDefinition(
                name="requiredTagsEffect", default="Audit", allowed_values=AUDIT_EFFECTS
            ),
            "allowedValuesEffect": ParameterDefinition(
                name="allowedValuesEffect", default="Audit", allowed_values=AUDIT_EFFECTS
            ),
            "allowedEnvironments": ParameterDefinition(
                name="allowedEnvironments",
                type=ParameterType.array,
                default=list(ALLOWED_ENVIRONMENTS),
            ),
            "inheritEffect": ParameterDefinition(
                name="inheritEffect", default="Modify", allowed_values=MODIFY_EFFECTS
            ),
        },
        rules=[
            RuleReference(
                rule="require-tags",
                parameters={"effect": make_parameter_ref("requiredTagsEffect")},
            ),
            RuleReference(
                rule="allowed-environment-values",
                parameters={
                    "effect": make_parameter_ref("allowedValuesEffect"),
                    "allowedValues": make_parameter_ref("allowedEnvironments"),
                },
            ),
            RuleReference(
                rule="inherit-tags-from-resource-group",
                parameters={"effect": make_parameter_ref("inheritEffect")},
            ),
        ],
    )
