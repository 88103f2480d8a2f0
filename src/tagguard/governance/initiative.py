"""
Initiatives

An initiative is an ordered set of rule references plus the parameter
bindings that map initiative-level parameters onto each rule's own
parameters. Binding an initiative against an assignment resolves every
parameter up front: configuration errors surface here, never part-way
through a scan.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, model_validator

from .conditions import parameter_ref
from .parameters import BindingContext, ParameterDefinition
from .rules import Effect, PolicyRule
from ..exceptions import (
    InitiativeError,
    MalformedCondition,
    UnboundParameter,
)

logger = logging.getLogger(__name__)


class RuleReference(BaseModel):
    """
    A rule included in an initiative.

    ``parameters`` maps the rule's parameter names to either an initiative
    parameter reference (``[parameters('requiredTagsEffect')]``) or a
    literal value.
    """

    rule: str = Field(..., description="Name of the referenced rule")
    reference_id: Optional[str] = Field(None, description="Unique id within the initiative")
    parameters: dict[str, Any] = Field(default_factory=dict)

    @property
    def ref_id(self) -> str:
        return self.reference_id or self.rule


class Initiative(BaseModel):
    """A named collection of rule references assigned as a unit."""

    name: str = Field(...)
    display_name: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    version: str = Field(default="1.0")

    parameters: dict[str, ParameterDefinition] = Field(default_factory=dict)
    rules: list[RuleReference] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _name_parameters(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("parameters"), dict):
            params = {}
            for name, spec in data["parameters"].items():
                if isinstance(spec, dict) and "name" not in spec:
                    spec = {**spec, "name": name}
                params[name] = spec
            data = {**data, "parameters": params}
        return data

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "Initiative":
        """Load an initiative from YAML."""
        return cls(**yaml.safe_load(yaml_content))

    @classmethod
    def from_json(cls, json_content: str) -> "Initiative":
        """Load an initiative from JSON."""
        return cls(**json.loads(json_content))

    def to_yaml(self) -> str:
        """Export the initiative as YAML."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)

    def bind(
        self,
        rules: Union[Mapping[str, PolicyRule], Iterable[PolicyRule]],
        assignment: Optional[Mapping[str, Any]] = None,
    ) -> "BoundInitiative":
        """
        Resolve every rule's parameters for an assignment.

        Raises InitiativeError for unknown rules or duplicate reference ids,
        and ParameterError subclasses (MissingDefault, UnboundParameter,
        InvalidParameterValue) for unresolvable parameters. A rule whose
        condition tree is malformed does not fail the binding: it is kept
        as a broken rule and reported on every evaluation.
        """
        if not isinstance(rules, Mapping):
            rules = {rule.name: rule for rule in rules}
        assignment = dict(assignment or {})

        for name in assignment:
            if name not in self.parameters:
                raise UnboundParameter(
                    name, f"Initiative '{self.name}' declares no parameter '{name}'"
                )

        # Explicit values are validated against the initiative's declaration
        explicit = {
            name: self.parameters[name].validate_value(value)
            for name, value in assignment.items()
            if value is not None
        }

        seen: set[str] = set()
        bound: list[BoundRule] = []
        for reference in self.rules:
            if reference.ref_id in seen:
                raise InitiativeError(
                    f"Initiative '{self.name}' has duplicate reference id '{reference.ref_id}'"
                )
            seen.add(reference.ref_id)

            rule = rules.get(reference.rule)
            if rule is None:
                raise InitiativeError(
                    f"Initiative '{self.name}' references unknown rule '{reference.rule}'"
                )
            bound.append(self._bind_rule(rule, reference, explicit))

        logger.info(
            f"Bound initiative '{self.name}': {len(bound)} rules, "
            f"{sum(1 for b in bound if b.error is not None)} broken"
        )
        return BoundInitiative(initiative=self, rules=bound)

    def _bind_rule(
        self,
        rule: PolicyRule,
        reference: RuleReference,
        explicit: Mapping[str, Any],
    ) -> "BoundRule":
        try:
            rule.check()
        except MalformedCondition as e:
            logger.warning(f"Rule '{rule.name}' in initiative '{self.name}' is malformed: {e}")
            return BoundRule(reference_id=reference.ref_id, rule=rule, context=None, error=e)

        assigned: dict[str, Any] = {}
        defaults: dict[str, Any] = {}
        for rule_param, mapped in reference.parameters.items():
            if rule_param not in rule.parameters:
                raise UnboundParameter(
                    rule_param,
                    f"Reference '{reference.ref_id}' binds undeclared parameter "
                    f"'{rule_param}' of rule '{rule.name}'",
                )
            initiative_param = parameter_ref(mapped)
            if initiative_param is None:
                defaults[rule_param] = mapped
                continue
            definition = self.parameters.get(initiative_param)
            if definition is None:
                raise UnboundParameter(
                    initiative_param,
                    f"Reference '{reference.ref_id}' maps to undeclared initiative "
                    f"parameter '{initiative_param}'",
                )
            if initiative_param in explicit:
                assigned[rule_param] = explicit[initiative_param]
            elif definition.has_default():
                defaults[rule_param] = definition.default

        context = rule.resolver().bind(assigned=assigned, initiative_defaults=defaults)
        # An unknown effect name is a configuration error, not a per-resource one
        rule.effect(context)
        return BoundRule(reference_id=reference.ref_id, rule=rule, context=context)


@dataclass
class BoundRule:
    """A rule with its resolved parameters, or the error that broke it."""

    reference_id: str
    rule: PolicyRule
    context: Optional[BindingContext]
    error: Optional[Exception] = None

    @property
    def effect(self) -> Optional[Effect]:
        if self.context is None:
            return None
        return self.rule.effect(self.context)


class BoundInitiative:
    """
    An initiative whose parameters are fully resolved.

    Rule order is the initiative's declaration order. Effects come from the
    bound contexts, so an Audit to Deny switch takes effect on the next bind.
    """

    def __init__(self, initiative: Initiative, rules: list[BoundRule]):
        self.initiative = initiative
        self._rules = list(rules)

    @property
    def name(self) -> str:
        return self.initiative.name

    @property
    def rules(self) -> list[BoundRule]:
        return list(self._rules)

    @property
    def broken(self) -> list[BoundRule]:
        return [b for b in self._rules if b.error is not None]

    def get(self, reference_id: str) -> Optional[BoundRule]:
        for bound in self._rules:
            if bound.reference_id == reference_id:
                return bound
        return None

    def __len__(self) -> int:
        return len(self._rules)
