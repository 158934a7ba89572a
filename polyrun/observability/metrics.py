"""
OpenTelemetry metrics definitions for polyrun.

This module provides metrics instrumentation using OpenTelemetry SDK,
with configurable exporter backends (Prometheus, OTLP, Console, etc.).
Recording functions are no-ops until ``init_metrics`` has been called.
"""

import threading
import time
from typing import Optional, List
from enum import Enum


class ExporterType(str, Enum):
    """Supported metrics exporter types."""
    PROMETHEUS = "prometheus"
    OTLP = "otlp"
    OTLP_HTTP = "otlp_http"
    CONSOLE = "console"
    NONE = "none"  # For testing or disabled export


# Global state
_meter = None
_meter_provider = None
_initialized = False
_lock = threading.Lock()

# Metric instruments
_execution_counter = None
_execution_duration = None
_execution_in_progress = None
_setup_failure_counter = None
_cleanup_warning_counter = None
_truncation_counter = None


def _create_exporter(
    exporter_type: ExporterType,
    **kwargs,
):
    """
    Create a metric reader based on the exporter type.

    Args:
        exporter_type: Type of exporter to create
        **kwargs: Additional arguments for the exporter
            - endpoint: OTLP endpoint URL
            - headers: OTLP headers dict
            - export_interval_millis: Export interval for periodic exporters

    Returns:
        A metric reader instance, or None for ExporterType.NONE
    """
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

    export_interval = kwargs.pop("export_interval_millis", 10000)

    if exporter_type == ExporterType.PROMETHEUS:
        from opentelemetry.exporter.prometheus import PrometheusMetricReader
        return PrometheusMetricReader()

    elif exporter_type == ExporterType.OTLP:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
        exporter = OTLPMetricExporter(**kwargs)
        return PeriodicExportingMetricReader(
            exporter,
            export_interval_millis=export_interval,
        )

    elif exporter_type == ExporterType.OTLP_HTTP:
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        exporter = OTLPMetricExporter(**kwargs)
        return PeriodicExportingMetricReader(
            exporter,
            export_interval_millis=export_interval,
        )

    elif exporter_type == ExporterType.CONSOLE:
        from opentelemetry.sdk.metrics.export import ConsoleMetricExporter
        exporter = ConsoleMetricExporter()
        return PeriodicExportingMetricReader(
            exporter,
            export_interval_millis=export_interval,
        )

    elif exporter_type == ExporterType.NONE:
        return None

    else:
        raise ValueError(f"Unknown exporter type: {exporter_type}")


def init_metrics(
    service_name: str = "polyrun",
    exporter_type: str | ExporterType = ExporterType.PROMETHEUS,
    additional_readers: Optional[List] = None,
    **exporter_kwargs,
):
    """
    Initialize OpenTelemetry metrics with the specified exporter.

    Args:
        service_name: Name of the service for resource identification
        exporter_type: Exporter type ("prometheus", "otlp", "otlp_http", "console", "none")
        additional_readers: Extra metric readers, e.g. an InMemoryMetricReader in tests
        **exporter_kwargs: Additional arguments for the exporter
            - endpoint: OTLP endpoint URL (e.g., "http://localhost:4317")
            - headers: OTLP headers dict
            - export_interval_millis: Export interval for periodic exporters

    Returns:
        The configured MeterProvider

    Example:
        # Prometheus (default)
        init_metrics()

        # OTLP gRPC
        init_metrics(exporter_type="otlp", endpoint="http://localhost:4317")
    """
    global _meter, _meter_provider, _initialized
    global _execution_counter, _execution_duration, _execution_in_progress
    global _setup_failure_counter, _cleanup_warning_counter, _truncation_counter

    with _lock:
        if _initialized:
            return _meter_provider

        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME

        if isinstance(exporter_type, str):
            exporter_type = ExporterType(exporter_type)

        resource = Resource.create({SERVICE_NAME: service_name})

        readers = []
        primary_reader = _create_exporter(exporter_type, **exporter_kwargs)
        if primary_reader is not None:
            readers.append(primary_reader)
        if additional_readers:
            readers.extend(additional_readers)

        # Kept local rather than installed globally so that shutdown and
        # re-initialisation work within one process.
        _meter_provider = MeterProvider(resource=resource, metric_readers=readers)
        _meter = _meter_provider.get_meter("polyrun.metrics")

        _execution_counter = _meter.create_counter(
            name="polyrun_execution_total",
            description="Total number of executions by language and outcome",
            unit="1",
        )

        _execution_duration = _meter.create_histogram(
            name="polyrun_execution_duration_seconds",
            description="Wall-clock execution duration in seconds",
            unit="s",
        )

        _execution_in_progress = _meter.create_up_down_counter(
            name="polyrun_execution_in_progress",
            description="Number of executions currently holding a container",
            unit="1",
        )

        _setup_failure_counter = _meter.create_counter(
            name="polyrun_setup_failure_total",
            description="Executions rejected before running, by error type",
            unit="1",
        )

        _cleanup_warning_counter = _meter.create_counter(
            name="polyrun_cleanup_warning_total",
            description="Teardown failures by resource kind",
            unit="1",
        )

        _truncation_counter = _meter.create_counter(
            name="polyrun_output_truncated_total",
            description="Executions whose output exceeded the capture limit",
            unit="1",
        )

        _initialized = True
        return _meter_provider


def shutdown_metrics() -> None:
    """Shutdown the meter provider and flush metrics."""
    global _meter_provider, _meter, _initialized
    global _execution_counter, _execution_duration, _execution_in_progress
    global _setup_failure_counter, _cleanup_warning_counter, _truncation_counter
    with _lock:
        if _meter_provider is not None:
            _meter_provider.shutdown()
        _meter_provider = None
        _meter = None
        _execution_counter = None
        _execution_duration = None
        _execution_in_progress = None
        _setup_failure_counter = None
        _cleanup_warning_counter = None
        _truncation_counter = None
        _initialized = False


def is_initialized() -> bool:
    """Check if metrics have been initialized."""
    return _initialized


def get_meter_provider():
    """Get the current meter provider."""
    return _meter_provider


def get_meter():
    """Get the current meter instance."""
    return _meter


# =============================================================================
# Execution Metrics Helper Functions
# =============================================================================


def record_execution_started(language: str) -> None:
    if _execution_in_progress is not None:
        _execution_in_progress.add(1, {"language": language})


def record_execution_finished(
    language: str,
    outcome: str,
    duration: float,
    truncated: bool = False,
) -> None:
    """Record a finished execution. ``duration`` is in seconds."""
    attributes = {"language": language, "outcome": outcome}
    if _execution_counter is not None:
        _execution_counter.add(1, attributes)
    if _execution_duration is not None:
        _execution_duration.record(duration, attributes)
    if _execution_in_progress is not None:
        _execution_in_progress.add(-1, {"language": language})
    if truncated and _truncation_counter is not None:
        _truncation_counter.add(1, {"language": language})


def record_setup_failure(language: str, error_type: str) -> None:
    if _setup_failure_counter is not None:
        _setup_failure_counter.add(1, {"language": language, "error_type": error_type})


def record_cleanup_warning(resource: str) -> None:
    if _cleanup_warning_counter is not None:
        _cleanup_warning_counter.add(1, {"resource": resource})


# =============================================================================
# Context Managers
# =============================================================================


class ExecutionTimer:
    """Tracks one execution in the in-progress gauge and duration histogram.

    The caller sets ``outcome`` and ``truncated`` before leaving the block; an
    exception escaping the block is recorded as outcome ``error``.
    """

    def __init__(self, language: str):
        self.language = language
        self.outcome: Optional[str] = None
        self.truncated = False
        self.start_time: Optional[float] = None

    def __enter__(self) -> "ExecutionTimer":
        self.start_time = time.monotonic()
        record_execution_started(self.language)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return
        duration = time.monotonic() - self.start_time
        outcome = "error" if exc_type is not None else (self.outcome or "unknown")
        record_execution_finished(self.language, outcome, duration, self.truncated)
