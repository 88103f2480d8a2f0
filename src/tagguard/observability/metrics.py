"""
Prometheus Metrics Integration.

Provides metrics collection for compliance scans.
"""

from typing import TYPE_CHECKING, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

if TYPE_CHECKING:
    from ..governance.compliance import ComplianceReport, ResourceReport


class ScanMetrics:
    """Prometheus metrics for tag compliance scans.

    Tracks rule verdicts, evaluation errors, inheritance patches and
    conflicts, and scan durations.

    Args:
        prefix: Metric name prefix. Defaults to ``tagguard``.
        registry: Registry to register with. Defaults to the global registry;
            tests pass a fresh ``CollectorRegistry``.
    """

    def __init__(
        self,
        prefix: str = "tagguard",
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        registry = registry if registry is not None else REGISTRY
        self.registry = registry

        self.rule_verdicts = Counter(
            f"{prefix}_rule_verdicts_total",
            "Rule verdicts by rule and verdict",
            ["rule", "verdict"],
            registry=registry,
        )
        self.evaluation_errors = Counter(
            f"{prefix}_evaluation_errors_total",
            "Rules that could not be evaluated, by error kind",
            ["kind"],
            registry=registry,
        )
        self.patches_applied = Counter(
            f"{prefix}_patches_applied_total",
            "Inherited tags merged into resources",
            ["tag"],
            registry=registry,
        )
        self.patch_conflicts = Counter(
            f"{prefix}_patch_conflicts_total",
            "Patches dropped because an earlier rule patched the same tag",
            registry=registry,
        )
        self.scan_duration = Histogram(
            f"{prefix}_scan_duration_seconds",
            "Compliance scan duration in seconds",
            registry=registry,
        )
        self.resources_scanned = Gauge(
            f"{prefix}_resources_scanned",
            "Resources evaluated by the last scan, by outcome",
            ["outcome"],
            registry=registry,
        )

    def record_resource(self, report: "ResourceReport") -> None:
        """Record every verdict, patch and conflict of one resource evaluation."""
        for result in report.results:
            self.rule_verdicts.labels(
                rule=result.reference_id or result.rule_name,
                verdict=result.verdict.value,
            ).inc()
            if result.error_kind:
                self.evaluation_errors.labels(kind=result.error_kind).inc()
        for patch in report.patches:
            self.patches_applied.labels(tag=patch.key).inc()
        if report.conflicts:
            self.patch_conflicts.inc(len(report.conflicts))

    def record_scan(self, report: "ComplianceReport") -> None:
        """Record scan duration and outcome counts.

        Args:
            report: The finished scan report.
        """
        if report.duration_ms is not None:
            self.scan_duration.observe(report.duration_ms / 1000)
        summary = report.summary()
        self.resources_scanned.labels(outcome="compliant").set(summary.compliant)
        self.resources_scanned.labels(outcome="non_compliant").set(summary.non_compliant)
        self.resources_scanned.labels(outcome="blocked").set(summary.blocked)
        self.resources_scanned.labels(outcome="timed_out").set(summary.timed_out)
        self.resources_scanned.labels(outcome="failed").set(summary.failed)


# Global metrics instance
_scan_metrics: Optional[ScanMetrics] = None


def setup_metrics() -> ScanMetrics:
    """
    Setup Prometheus metrics on the global registry.

    Returns:
        ScanMetrics instance
    """
    global _scan_metrics

    if _scan_metrics is None:
        _scan_metrics = ScanMetrics()

    return _scan_metrics


def get_metrics() -> Optional[ScanMetrics]:
    """Get the global metrics instance, if set up."""
    return _scan_metrics


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090).
    """
    start_http_server(port)
