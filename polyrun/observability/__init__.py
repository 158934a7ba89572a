"""
polyrun Observability Module.

Provides OpenTelemetry-based metrics for monitoring code executions.
Supports multiple exporter backends (Prometheus, OTLP, Console).
"""

from polyrun.observability.metrics import (
    # Initialization
    init_metrics,
    shutdown_metrics,
    is_initialized,
    get_meter_provider,
    get_meter,
    ExporterType,
    # Execution metrics
    record_execution_started,
    record_execution_finished,
    record_setup_failure,
    record_cleanup_warning,
    # Context managers
    ExecutionTimer,
)

__all__ = [
    # Initialization
    "init_metrics",
    "shutdown_metrics",
    "is_initialized",
    "get_meter_provider",
    "get_meter",
    "ExporterType",
    # Execution metrics
    "record_execution_started",
    "record_execution_finished",
    "record_setup_failure",
    "record_cleanup_warning",
    # Context managers
    "ExecutionTimer",
]
