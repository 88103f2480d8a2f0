"""
Policy Rules

A policy rule pairs a condition tree with an effect read from a parameter.
Rules are defined once and bound into any number of initiatives.

Effects:
- disabled: not evaluated, verdict is skipped
- audit:    triggered -> non_compliant, otherwise compliant
- deny:     triggered -> non_compliant_blocking, otherwise compliant
- modify:   copies missing tags from the parent scope, never flags
"""

import json
import logging
from enum import Enum
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

from .conditions import Condition, parameter_ref, validate_condition
from .evaluator import evaluate_condition, matched_fields
from .inheritance import TagPatch, compute_patches
from .parameters import BindingContext, ParameterDefinition, ParameterResolver
from ..exceptions import InvalidParameterValue, MalformedCondition, UnboundParameter
from ..inventory import Resource, Scope

logger = logging.getLogger(__name__)


class Effect(str, Enum):
    """What a rule does when its condition triggers."""

    audit = "audit"
    deny = "deny"
    disabled = "disabled"
    modify = "modify"

    @classmethod
    def parse(cls, value: Any) -> "Effect":
        """Parse an effect name case-insensitively (``Audit``, ``deny``...)."""
        if isinstance(value, Effect):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidParameterValue(f"Unknown effect: {value!r}")


class Verdict(str, Enum):
    """Per-resource, per-rule outcome."""

    compliant = "compliant"
    non_compliant = "non_compliant"
    non_compliant_blocking = "non_compliant_blocking"
    skipped = "skipped"
    modified = "modified"
    error = "error"


class EvaluationResult(BaseModel):
    """Verdict of one rule against one resource."""

    resource_id: str
    rule_name: str
    reference_id: Optional[str] = None

    verdict: Verdict
    effect: Optional[Effect] = None

    # Details
    reason: Optional[str] = None
    tag_keys: list[str] = Field(default_factory=list)
    patches: list[TagPatch] = Field(default_factory=list)

    # Set when verdict is error
    error_kind: Optional[str] = None
    error: Optional[str] = None

    @property
    def blocking(self) -> bool:
        return self.verdict == Verdict.non_compliant_blocking

    @property
    def flagged(self) -> bool:
        return self.verdict in (Verdict.non_compliant, Verdict.non_compliant_blocking)


class PolicyRule(BaseModel):
    """
    A named tag policy rule.

    ``condition`` may be omitted for modify rules, which then apply to every
    resource. ``inherit_tags`` lists the tags a modify rule copies from the
    parent scope; entries are tag names or ``[parameters('x')]`` references
    to string parameters.
    """

    name: str = Field(..., description="Rule name")
    display_name: Optional[str] = Field(None)
    description: Optional[str] = Field(None)

    condition: Optional[Condition] = Field(None, description="Root condition")
    effect_parameter: str = Field(default="effect", description="Parameter holding the effect")
    parameters: dict[str, ParameterDefinition] = Field(default_factory=dict)

    # Modify
    inherit_tags: list[str] = Field(default_factory=list)

    # Set when the condition document could not be parsed
    condition_error: Optional[str] = Field(None, exclude=True)
    raw_condition: Optional[Any] = Field(None, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _name_parameters(cls, data: Any) -> Any:
        # Allow parameter schemas keyed by name without repeating the name
        if isinstance(data, dict) and isinstance(data.get("parameters"), dict):
            params = {}
            for name, spec in data["parameters"].items():
                if isinstance(spec, dict) and "name" not in spec:
                    spec = {**spec, "name": name}
                params[name] = spec
            data = {**data, "parameters": params}
        return data

    @model_validator(mode="before")
    @classmethod
    def _parse_condition(cls, data: Any) -> Any:
        # A malformed condition breaks this rule only, so keep the document
        # and report the error when the rule is checked
        if not isinstance(data, dict):
            return data
        value = data.get("condition")
        if value is None or isinstance(value, Condition):
            return data
        try:
            return {**data, "condition": Condition.from_dict(value)}
        except MalformedCondition as e:
            return {**data, "condition": None, "condition_error": str(e), "raw_condition": value}

    def resolver(self) -> ParameterResolver:
        return ParameterResolver(self.parameters)

    def check(self) -> None:
        """
        Validate the rule's structure.

        Raises MalformedCondition for a bad condition tree or a modify rule
        without tags, UnboundParameter for references to undeclared
        parameters.
        """
        if self.condition_error is not None:
            raise MalformedCondition(f"Rule '{self.name}': {self.condition_error}")
        if self.condition is not None:
            validate_condition(self.condition)
            referenced = self.condition.parameters()
        else:
            referenced = set()

        referenced.add(self.effect_parameter)
        referenced.update(
            ref for ref in (parameter_ref(t) for t in self.inherit_tags) if ref
        )
        for name in sorted(referenced):
            if name not in self.parameters:
                raise UnboundParameter(
                    name, f"Rule '{self.name}' refers to undeclared parameter '{name}'"
                )

        if self.may_modify() and not self.inherit_tags:
            raise MalformedCondition(f"Modify rule '{self.name}' names no tags to inherit")
        if self.condition is None and not self.may_modify():
            raise MalformedCondition(f"Rule '{self.name}' has no condition")

    def may_modify(self) -> bool:
        """True when the effect parameter can take the modify value."""
        definition = self.parameters.get(self.effect_parameter)
        if definition is None:
            return False
        if definition.allowed_values:
            return any(v.lower() == Effect.modify.value for v in definition.allowed_values)
        return isinstance(definition.default, str) and definition.default.lower() == Effect.modify.value

    def effect(self, context: BindingContext) -> Effect:
        """The effect bound for this evaluation."""
        return Effect.parse(context.get(self.effect_parameter))

    def inherited_tag_names(self, context: BindingContext) -> list[str]:
        names = []
        for entry in self.inherit_tags:
            ref = parameter_ref(entry)
            value = context.get(ref) if ref else entry
            if not isinstance(value, str) or not value:
                raise InvalidParameterValue(
                    f"Rule '{self.name}' inherit tag {entry!r} must resolve to a tag name"
                )
            names.append(value)
        return names

    def evaluate(
        self,
        resource: Resource,
        scope: Scope,
        context: BindingContext,
        reference_id: Optional[str] = None,
    ) -> EvaluationResult:
        """
        Evaluate this rule against one resource snapshot.

        Raises MalformedCondition, UnboundParameter or InvalidParameterValue
        when the rule cannot be evaluated; callers isolate those per rule.
        """
        effect = self.effect(context)
        base = dict(
            resource_id=resource.id,
            rule_name=self.name,
            reference_id=reference_id,
            effect=effect,
        )

        if effect == Effect.disabled:
            return EvaluationResult(**base, verdict=Verdict.skipped, reason="Effect is disabled")

        if self.condition_error is not None:
            raise MalformedCondition(f"Rule '{self.name}': {self.condition_error}")

        if effect == Effect.modify:
            return self._evaluate_modify(resource, scope, context, base)

        if self.condition is None:
            raise MalformedCondition(f"Rule '{self.name}' has no condition")

        triggered = evaluate_condition(self.condition, resource, context)
        logger.debug(f"Rule '{self.name}' on {resource.id}: triggered={triggered}")

        if not triggered:
            return EvaluationResult(**base, verdict=Verdict.compliant)

        fields = matched_fields(self.condition, resource, context)
        if effect == Effect.deny:
            verdict = Verdict.non_compliant_blocking
            reason = f"Rule '{self.name}' denied the resource state"
        else:
            verdict = Verdict.non_compliant
            reason = f"Rule '{self.name}' flagged the resource for audit"
        if fields:
            reason = f"{reason}: {', '.join(fields)}"
        return EvaluationResult(**base, verdict=verdict, reason=reason, tag_keys=fields)

    def _evaluate_modify(
        self,
        resource: Resource,
        scope: Scope,
        context: BindingContext,
        base: dict,
    ) -> EvaluationResult:
        names = self.inherited_tag_names(context)
        if self.condition is not None and not evaluate_condition(self.condition, resource, context):
            return EvaluationResult(**base, verdict=Verdict.compliant, reason="Condition not met")

        patches = compute_patches(names, resource, scope, rule_name=self.name)
        if not patches:
            return EvaluationResult(**base, verdict=Verdict.compliant)
        return EvaluationResult(
            **base,
            verdict=Verdict.modified,
            reason=f"Inherit {', '.join(p.key for p in patches)} from scope {scope.id}",
            tag_keys=[p.key for p in patches],
            patches=patches,
        )

    # Serialization

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PolicyRule":
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "PolicyRule":
        """Load a rule from YAML."""
        return cls.from_dict(yaml.safe_load(yaml_content))

    @classmethod
    def from_json(cls, json_content: str) -> "PolicyRule":
        """Load a rule from JSON."""
        return cls.from_dict(json.loads(json_content))

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_none=True, exclude={"condition"})
        if self.condition is not None:
            data["condition"] = self.condition.to_dict()
        elif self.condition_error is not None:
            data["condition"] = self.raw_condition
        return data

    def to_yaml(self) -> str:
        """Export the rule as YAML."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)
