"""
Observability components for TagGuard.

Provides OpenTelemetry tracing and Prometheus metrics for compliance scans.
"""

from .tracing import configure_tracing, get_tracer, TraceContext
from .metrics import ScanMetrics, setup_metrics, get_metrics, start_metrics_server

__all__ = [
    "configure_tracing",
    "get_tracer",
    "TraceContext",
    "ScanMetrics",
    "setup_metrics",
    "get_metrics",
    "start_metrics_server",
]
