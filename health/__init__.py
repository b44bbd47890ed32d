"""
Health check module for the fleet telemetry service.

Reports the entity store's reachability and the simulation clock's
liveness.
"""

from health.service import (
    HealthCheckService,
    HealthStatus,
    DependencyHealth,
)

__all__ = [
    "HealthCheckService",
    "HealthStatus",
    "DependencyHealth",
]
