"""
Compliance Scanner

Bulk scans fan per-resource evaluation out over a bounded worker pool.
Results come back in completion order and are keyed by resource id; within
one resource, rule order is the initiative's declaration order.

A scan-level deadline bounds the whole run. Resources still pending when it
expires are listed in the report as timed out and the report is marked
incomplete. Resources whose evaluation raises are recorded as failed
without stopping the scan.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Optional

from .compliance import ComplianceEngine, ComplianceReport, ResourceReport
from ..inventory import Inventory, Resource
from ..observability.tracing import TraceContext

if TYPE_CHECKING:
    from ..config import ScanSettings
    from ..observability.metrics import ScanMetrics

logger = logging.getLogger(__name__)


class ComplianceScanner:
    """
    Scans an inventory against one bound initiative.

    Args:
        engine: Engine holding the bound initiative.
        max_workers: Upper bound on concurrent resource evaluations.
        deadline_seconds: Overall scan deadline; ``None`` waits for every resource.
        metrics: Optional metrics sink for scan-level measurements.
    """

    def __init__(
        self,
        engine: ComplianceEngine,
        max_workers: int = 8,
        deadline_seconds: Optional[float] = None,
        metrics: Optional["ScanMetrics"] = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.engine = engine
        self.max_workers = max_workers
        self.deadline_seconds = deadline_seconds
        self.metrics = metrics

    @classmethod
    def from_settings(
        cls,
        engine: ComplianceEngine,
        settings: "ScanSettings",
        metrics: Optional["ScanMetrics"] = None,
    ) -> "ComplianceScanner":
        return cls(
            engine,
            max_workers=settings.max_workers,
            deadline_seconds=settings.deadline_seconds,
            metrics=metrics,
        )

    def scan(self, inventory: Inventory) -> ComplianceReport:
        """Scan with a thread pool."""
        report = ComplianceReport(initiative=self.engine.initiative.name)
        start = time.perf_counter()

        with TraceContext(
            "tagguard.scan",
            **{"scan.initiative": report.initiative, "scan.resources": len(inventory)},
        ) as trace:
            executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="tagguard-scan"
            )
            try:
                futures = {
                    executor.submit(
                        self.engine.evaluate_resource, resource, inventory.scope_for(resource)
                    ): resource
                    for resource in inventory.resources
                }
                done, pending = wait(futures, timeout=self.deadline_seconds)
                for future in done:
                    self._collect(report, futures[future], future)
                for future in pending:
                    future.cancel()
                    report.timed_out.append(futures[future].id)
            finally:
                executor.shutdown(wait=False, cancel_futures=True)
            if report.timed_out:
                trace.add_event("deadline_exceeded", {"scan.timed_out": len(report.timed_out)})

            self._finish(report, start)
            trace.set_attribute("scan.complete", report.complete)
        return report

    async def scan_async(self, inventory: Inventory) -> ComplianceReport:
        """Scan with asyncio tasks, bounded by a semaphore."""
        report = ComplianceReport(initiative=self.engine.initiative.name)
        start = time.perf_counter()
        semaphore = asyncio.Semaphore(self.max_workers)

        async def evaluate(resource: Resource) -> ResourceReport:
            async with semaphore:
                return await asyncio.to_thread(
                    self.engine.evaluate_resource, resource, inventory.scope_for(resource)
                )

        with TraceContext(
            "tagguard.scan_async",
            **{"scan.initiative": report.initiative, "scan.resources": len(inventory)},
        ) as trace:
            tasks = {
                asyncio.create_task(evaluate(resource)): resource
                for resource in inventory.resources
            }
            if tasks:
                done, pending = await asyncio.wait(tasks, timeout=self.deadline_seconds)
                for task in pending:
                    task.cancel()
                    report.timed_out.append(tasks[task].id)
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
                    trace.add_event("deadline_exceeded", {"scan.timed_out": len(pending)})
                for task in done:
                    self._collect(report, tasks[task], task)

            self._finish(report, start)
            trace.set_attribute("scan.complete", report.complete)
        return report

    @classmethod
    def _collect(cls, report: ComplianceReport, resource: Resource, outcome) -> None:
        # Engine errors are already per-rule results; anything raised here is
        # recorded against the resource and the scan carries on
        try:
            resource_report = outcome.result()
        except Exception as e:
            logger.exception(f"Evaluation of resource {resource.id} failed")
            report.failed[resource.id] = f"{type(e).__name__}: {e}"
            return
        cls._add(report, resource_report)

    @staticmethod
    def _add(report: ComplianceReport, resource_report: ResourceReport) -> None:
        if resource_report.resource_id in report.resources:
            logger.warning(
                f"Duplicate resource id {resource_report.resource_id} in inventory; "
                f"keeping the last evaluation"
            )
        report.resources[resource_report.resource_id] = resource_report

    def _finish(self, report: ComplianceReport, start: float) -> None:
        report.duration_ms = (time.perf_counter() - start) * 1000
        report.timed_out.sort()
        summary = report.summary()
        if report.timed_out:
            logger.warning(
                f"Scan {report.report_id} hit its deadline: "
                f"{len(report.timed_out)} resources not evaluated"
            )
        if report.failed:
            logger.warning(
                f"Scan {report.report_id}: {len(report.failed)} resources failed to evaluate"
            )
        logger.info(
            f"Scan {report.report_id} of '{report.initiative}': "
            f"{summary.resources} resources, {summary.compliant} compliant, "
            f"{summary.non_compliant} non-compliant, {summary.blocked} blocked, "
            f"{summary.errored} with errors, {summary.patched} patched "
            f"in {report.duration_ms:.1f}ms"
        )
        if self.metrics is not None:
            self.metrics.record_scan(report)
