"""
Observability service for structured logging, metrics and tracing.

This module provides structured JSON logging with request correlation,
OpenTelemetry integration for tracing simulation cycles, and lightweight
metric recording through the log stream.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from middleware.request_id import request_id_var


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per record.

    Each log entry contains:
    - timestamp: ISO 8601 formatted UTC timestamp
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - message: The log message
    - logger: Name of the logger that produced the entry
    - request_id: Correlation ID for request tracing

    Additional fields can be attached via the ``extra_data`` attribute
    on the log record (``logger.info(..., extra={"extra_data": {...}})``).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": request_id_var.get(""),
        }

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class ObservabilityService:
    """
    Centralized logging, metrics, and tracing for the service.

    The simulation clock reports cycle durations and drop counts through
    ``record_metric``; the control surface records flag changes through
    ``log_audit_event``; cycles run inside ``create_span`` when tracing is
    configured.
    """

    def __init__(self, settings: Optional[Any] = None):
        """
        Initialize the observability service.

        Args:
            settings: Application settings containing log_level, otel_endpoint,
                     and otel_service_name configuration
        """
        self.settings = settings
        self.tracer = None
        self._logger = logging.getLogger("observability")
        self._setup_logging()
        self._setup_tracing()

    def _setup_logging(self) -> None:
        """Install a single stdout handler with the JSON formatter on the root logger."""
        log_level_str = getattr(self.settings, "log_level", None) or "INFO"
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        self._logger.info("Observability service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def _setup_tracing(self) -> None:
        """
        Configure OpenTelemetry tracing.

        Sets up the TracerProvider and OTLP span exporter when an endpoint
        is configured; otherwise spans are no-ops.
        """
        otel_endpoint = getattr(self.settings, "otel_endpoint", None)
        if not otel_endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.resources import SERVICE_NAME, Resource
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor

            service_name = getattr(self.settings, "otel_service_name", "fleet-telemetry")

            provider = TracerProvider(resource=Resource(attributes={
                SERVICE_NAME: service_name
            }))
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint)))
            trace.set_tracer_provider(provider)

            self.tracer = trace.get_tracer(service_name)

            self._logger.info("OpenTelemetry tracing configured", extra={
                "extra_data": {
                    "otel_endpoint": otel_endpoint,
                    "service_name": service_name
                }
            })
        except ImportError as e:
            self._logger.warning(
                "OpenTelemetry packages not installed, tracing disabled",
                extra={"extra_data": {"error": str(e)}}
            )

    def log_audit_event(
        self,
        event_type: str,
        user_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an audit event for operator actions.

        Args:
            event_type: Type of audit event (e.g., "simulation_control")
            user_id: ID of the operator performing the action
            resource_type: Type of resource acted upon ("simulation", "robot")
            resource_id: ID of the specific resource, if any
            action: Action performed (e.g., "start", "stop", "update_config")
            details: Additional details about the event
        """
        audit_data = {
            "audit_event": True,
            "event_type": event_type,
            "user_id": user_id,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "action": action,
        }

        if details:
            audit_data["details"] = details

        self._logger.info(
            f"Audit: {event_type} - {action} on {resource_type}",
            extra={"extra_data": audit_data}
        )

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record a custom metric as a debug-level structured log entry.

        Args:
            name: Name of the metric
            value: Metric value
            tags: Optional tags for metric dimensions
        """
        metric_data = {
            "metric_name": name,
            "metric_value": value,
        }

        if tags:
            metric_data["tags"] = tags

        self._logger.debug(
            f"Metric: {name}={value}",
            extra={"extra_data": metric_data}
        )

    def create_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """
        Create an OpenTelemetry span, or a no-op context manager if tracing is off.

        Args:
            name: Name of the span
            attributes: Optional attributes to add to the span
        """
        if self.tracer:
            return _SpanContextManager(self.tracer.start_as_current_span(name), attributes or {})
        return _NoOpSpanContextManager()


class _SpanContextManager:
    """Context manager wrapper that adds attributes to a span after entering."""

    def __init__(self, span_context, attributes: Dict[str, Any]):
        self._span_context = span_context
        self._attributes = attributes
        self._span = None

    def __enter__(self):
        self._span = self._span_context.__enter__()
        if self._span is not None and hasattr(self._span, "set_attribute"):
            for key, value in self._attributes.items():
                self._span.set_attribute(key, value)
        return self._span

    def __exit__(self, exc_type, exc_val, exc_tb):
        return self._span_context.__exit__(exc_type, exc_val, exc_tb)


class _NoOpSpanContextManager:
    """No-op span used when tracing is not configured."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def record_exception(self, exception: Exception) -> None:
        pass


_observability_service: Optional[ObservabilityService] = None


def get_observability_service() -> Optional[ObservabilityService]:
    """
    Get the global observability service instance.

    Returns:
        The service instance, or None if not initialized
    """
    return _observability_service


def initialize_observability(settings: Optional[Any] = None) -> ObservabilityService:
    """
    Initialize the global observability service.

    Args:
        settings: Application settings for configuration

    Returns:
        The initialized service
    """
    global _observability_service
    _observability_service = ObservabilityService(settings)
    return _observability_service
