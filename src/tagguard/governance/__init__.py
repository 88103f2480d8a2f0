"""
Tag Governance

Condition trees, parameters, rules and initiatives for resource-tagging
standards, plus the engine that evaluates them over a resource inventory.
"""

from .conditions import Condition, ConditionKind, tag_key, validate_condition
from .evaluator import evaluate_condition, evaluate_predicate
from .parameters import (
    BindingContext,
    ParameterDefinition,
    ParameterResolver,
    ParameterType,
    resolve_parameter,
)
from .inheritance import TagPatch, PatchConflict, PatchOutcome, compute_patches, apply_patches
from .rules import Effect, Verdict, EvaluationResult, PolicyRule
from .initiative import Initiative, RuleReference, BoundInitiative, BoundRule
from .compliance import ComplianceEngine, ComplianceReport, ResourceReport, ScanSummary
from .scanner import ComplianceScanner
from .arm import rule_from_arm, rules_from_arm_json
from .loader import load_rules, load_initiative, load_assignment
from .builtin import (
    required_tags_rule,
    allowed_values_rule,
    inherit_tags_rule,
    builtin_rules,
    tagging_initiative,
)

__all__ = [
    "Condition",
    "ConditionKind",
    "tag_key",
    "validate_condition",
    "evaluate_condition",
    "evaluate_predicate",
    "BindingContext",
    "ParameterDefinition",
    "ParameterResolver",
    "ParameterType",
    "resolve_parameter",
    "TagPatch",
    "PatchConflict",
    "PatchOutcome",
    "compute_patches",
    "apply_patches",
    "Effect",
    "Verdict",
    "EvaluationResult",
    "PolicyRule",
    "Initiative",
    "RuleReference",
    "BoundInitiative",
    "BoundRule",
    "ComplianceEngine",
    "ComplianceReport",
    "ResourceReport",
    "ScanSummary",
    "ComplianceScanner",
    "rule_from_arm",
    "rules_from_arm_json",
    "load_rules",
    "load_initiative",
    "load_assignment",
    "required_tags_rule",
    "allowed_values_rule",
    "inherit_tags_rule",
    "builtin_rules",
    "tagging_initiative",
]
