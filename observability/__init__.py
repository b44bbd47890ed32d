"""
Observability module for structured logging, metrics, and tracing.

This module provides:
- JSONFormatter for structured JSON log output
- ObservabilityService for centralized logging and metrics
- Integration with OpenTelemetry for tracing simulation cycles
"""

from observability.service import (
    JSONFormatter,
    ObservabilityService,
    get_observability_service,
    initialize_observability,
)

__all__ = [
    "JSONFormatter",
    "ObservabilityService",
    "get_observability_service",
    "initialize_observability",
]
