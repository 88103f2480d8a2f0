"""
Compliance Engine

Runs a bound initiative against resources and aggregates the verdicts.

For one resource:
1. Modify rules compute patches against the unpatched snapshot.
2. Patches are merged in declaration order, first rule wins per key.
3. Every other rule is evaluated, on the unpatched snapshot by default.

Each rule is isolated: a rule that cannot be evaluated produces an error
result and the remaining rules still run.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from .inheritance import PatchConflict, TagPatch, apply_patches
from .initiative import BoundInitiative, BoundRule
from .rules import Effect, EvaluationResult, Verdict
from ..exceptions import TagGuardError
from ..inventory import Resource, Scope
from ..observability.tracing import TraceContext

if TYPE_CHECKING:
    from ..observability.metrics import ScanMetrics

logger = logging.getLogger(__name__)


class ResourceReport(BaseModel):
    """All rule verdicts for one resource, in rule declaration order.

    Attributes:
        resource_id: Identifier of the evaluated resource.
        scope_id: Parent scope the resource inherits from.
        results: One result per rule reference, including errors.
        patches: Patches that were applied (after conflict resolution).
        conflicts: Patches dropped because an earlier rule patched the key.
        patched_tags: Resource tags after the patches were merged.
        evaluated_after_modify: Whether boolean rules saw the patched tags.
    """

    resource_id: str
    scope_id: Optional[str] = None

    results: list[EvaluationResult] = Field(default_factory=list)
    patches: list[TagPatch] = Field(default_factory=list)
    conflicts: list[PatchConflict] = Field(default_factory=list)
    patched_tags: dict[str, str] = Field(default_factory=dict)

    evaluated_after_modify: bool = False

    @property
    def errors(self) -> list[EvaluationResult]:
        return [r for r in self.results if r.verdict == Verdict.error]

    @property
    def compliant(self) -> bool:
        """No rule blocked the resource."""
        return not any(r.blocking for r in self.results)

    @property
    def audit_compliant(self) -> bool:
        """No rule flagged the resource and every rule could be evaluated."""
        return not any(r.flagged or r.verdict == Verdict.error for r in self.results)

    def verdict_for(self, rule_or_reference: str) -> Optional[EvaluationResult]:
        for result in self.results:
            if rule_or_reference in (result.reference_id, result.rule_name):
                return result
        return None


class ScanSummary(BaseModel):
    """Counts over a scan."""

    resources: int = 0
    compliant: int = 0
    non_compliant: int = 0
    blocked: int = 0
    errored: int = 0
    patched: int = 0
    timed_out: int = 0
    failed: int = 0


class ComplianceReport(BaseModel):
    """Compliance report for an initiative over an inventory.

    Attributes:
        report_id: Unique report identifier.
        initiative: Name of the evaluated initiative.
        generated_at: When the scan started.
        duration_ms: Wall-clock scan duration.
        resources: Per-resource reports keyed by resource id.
        timed_out: Resources not evaluated before the scan deadline.
        failed: Resources whose evaluation raised, with the error message.
    """

    report_id: str = Field(default_factory=lambda: f"scan_{uuid.uuid4().hex[:12]}")
    initiative: str
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: Optional[float] = None

    resources: dict[str, ResourceReport] = Field(default_factory=dict)
    timed_out: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.timed_out and not self.failed

    @property
    def compliant(self) -> bool:
        return self.complete and all(r.compliant for r in self.resources.values())

    def summary(self) -> ScanSummary:
        reports = list(self.resources.values())
        return ScanSummary(
            resources=len(reports),
            compliant=sum(1 for r in reports if r.audit_compliant),
            non_compliant=sum(1 for r in reports if any(x.flagged for x in r.results)),
            blocked=sum(1 for r in reports if not r.compliant),
            errored=sum(1 for r in reports if r.errors),
            patched=sum(1 for r in reports if r.patches),
            timed_out=len(self.timed_out),
            failed=len(self.failed),
        )

    def to_mapping(self) -> dict[str, list[dict]]:
        """Resource id -> list of (rule, verdict, patch) entries for downstream reporting."""
        mapping: dict[str, list[dict]] = {}
        for resource_id, report in self.resources.items():
            mapping[resource_id] = [
                {
                    "rule": r.reference_id or r.rule_name,
                    "verdict": r.verdict.value,
                    "patch": {p.key: p.value for p in r.patches} or None,
                    "error": r.error,
                }
                for r in report.results
            ]
        return mapping


class ComplianceEngine:
    """
    Evaluates one resource at a time against a bound initiative.

    Holds no per-resource state, so a single engine may be shared by many
    worker threads.
    """

    def __init__(
        self,
        initiative: BoundInitiative,
        evaluate_after_modify: bool = False,
        metrics: Optional["ScanMetrics"] = None,
    ):
        self.initiative = initiative
        self.evaluate_after_modify = evaluate_after_modify
        self.metrics = metrics

    def evaluate_resource(self, resource: Resource, scope: Optional[Scope] = None) -> ResourceReport:
        """Evaluate every rule of the initiative against one resource."""
        if scope is None:
            scope = Scope(id=resource.scope_id or "", tags={})
        with TraceContext("tagguard.evaluate_resource", **{"resource.id": resource.id}) as trace:
            report = self._evaluate_all(resource, scope)
            trace.set_attribute("resource.compliant", report.compliant)
        if self.metrics is not None:
            self.metrics.record_resource(report)
        return report

    def _evaluate_all(self, resource: Resource, scope: Scope) -> ResourceReport:
        bound_rules = self.initiative.rules
        results: list[Optional[EvaluationResult]] = [None] * len(bound_rules)

        # Modify rules first, read-only against the unpatched snapshot
        patch_sets = []
        for index, bound in enumerate(bound_rules):
            if bound.error is not None or self._effect_of(bound) != Effect.modify:
                continue
            result = self._evaluate(bound, resource, scope)
            results[index] = result
            if result.patches:
                patch_sets.append(result.patches)

        outcome = apply_patches(resource, patch_sets)
        target = outcome.resource if self.evaluate_after_modify else resource

        for index, bound in enumerate(bound_rules):
            if results[index] is None:
                results[index] = self._evaluate(bound, target, scope)

        return ResourceReport(
            resource_id=resource.id,
            scope_id=resource.scope_id,
            results=results,
            patches=outcome.applied,
            conflicts=outcome.conflicts,
            patched_tags=dict(outcome.resource.tags),
            evaluated_after_modify=self.evaluate_after_modify,
        )

    @staticmethod
    def _effect_of(bound: BoundRule) -> Optional[Effect]:
        try:
            return bound.effect
        except TagGuardError:
            # Reported by _evaluate with the rest of the rule's errors
            return None

    def _evaluate(self, bound: BoundRule, resource: Resource, scope: Scope) -> EvaluationResult:
        if bound.error is not None:
            return self._error_result(bound, resource, bound.error)
        try:
            return bound.rule.evaluate(
                resource, scope, bound.context, reference_id=bound.reference_id
            )
        except TagGuardError as e:
            logger.warning(
                f"Rule '{bound.reference_id}' could not be evaluated on {resource.id}: {e}"
            )
            return self._error_result(bound, resource, e)

    @staticmethod
    def _error_result(bound: BoundRule, resource: Resource, error: Exception) -> EvaluationResult:
        return EvaluationResult(
            resource_id=resource.id,
            rule_name=bound.rule.name,
            reference_id=bound.reference_id,
            verdict=Verdict.error,
            error_kind=getattr(error, "kind", type(error).__name__),
            error=str(error),
            reason=f"Rule could not be evaluated: {error}",
        )
