"""
Health checks for the fleet telemetry service.

Readiness looks at two things: whether the entity store answers, and
whether the simulation clock is ticking without a stalled cycle. A down
store or a stalled cycle makes the service unhealthy; a stopped clock
only degrades it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from fleet.models import utcnow
from fleet.store import EntityStore

logger = logging.getLogger(__name__)

CRITICAL_DEPENDENCIES = frozenset({"entity_store"})


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "entity_store", "simulation_clock")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
        details: Optional extra facts about the dependency
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class HealthStatus:
    status: str  # "healthy", "degraded", "unhealthy"
    timestamp: datetime
    dependencies: list[DependencyHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": _iso(self.timestamp),
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


class HealthCheckService:
    """
    Checks the entity store and the simulation clock.

    Args:
        store: The entity store to ping.
        clock: Optional SimulationClock; omitted in tests that only
            care about the store.
        check_timeout: Seconds to wait for the store ping.
    """

    def __init__(
        self,
        store: EntityStore,
        clock: Optional[Any] = None,
        check_timeout: float = 5.0,
    ):
        self.store = store
        self.clock = clock
        self.check_timeout = check_timeout

    async def check_readiness(self) -> HealthStatus:
        dependencies = [await self._check_entity_store()]
        if self.clock is not None:
            dependencies.append(self._check_clock())

        return HealthStatus(
            status=self._determine_overall_status(dependencies),
            timestamp=utcnow(),
            dependencies=dependencies,
        )

    async def check_liveness(self) -> dict[str, Any]:
        return {"status": "alive", "timestamp": _iso(utcnow())}

    async def check_health(self) -> dict[str, Any]:
        return {"status": "ok", "timestamp": _iso(utcnow())}

    async def _check_entity_store(self) -> DependencyHealth:
        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(self.store.health_check(), timeout=self.check_timeout)
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            if result:
                return DependencyHealth(name="entity_store", healthy=True, response_time_ms=elapsed_ms)
            logger.warning(f"Entity store health check returned False after {elapsed_ms:.2f}ms")
            return DependencyHealth(
                name="entity_store",
                healthy=False,
                response_time_ms=elapsed_ms,
                error="Entity store health check returned False",
            )
        except asyncio.TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Entity store health check timed out after {self.check_timeout} seconds"
            logger.warning(error_msg)
            return DependencyHealth(
                name="entity_store", healthy=False, response_time_ms=elapsed_ms, error=error_msg
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"Entity store health check failed: {str(e)}"
            logger.error(error_msg)
            return DependencyHealth(
                name="entity_store", healthy=False, response_time_ms=elapsed_ms, error=error_msg
            )

    def _check_clock(self) -> DependencyHealth:
        clock = self.clock
        details = {
            "running": clock.running,
            "stalled": clock.is_stalled,
            "cycles": clock.cycle_count,
            "skipped_cycles": clock.skipped_cycles,
            "failed_cycles": clock.failed_cycles,
        }
        age = clock.current_cycle_age_seconds
        if age is not None:
            details["current_cycle_age_seconds"] = round(age, 3)

        error = None
        if not clock.running:
            error = "Simulation clock is not running"
        elif clock.is_stalled:
            error = f"Simulation cycle has exceeded {clock.stall_threshold_seconds}s"
        return DependencyHealth(
            name="simulation_clock",
            healthy=error is None,
            response_time_ms=0.0,
            error=error,
            details=details,
        )

    def _determine_overall_status(self, dependencies: list[DependencyHealth]) -> str:
        """
        - "healthy": every dependency is healthy
        - "unhealthy": the entity store is down or a cycle has stalled
        - "degraded": only non-critical dependencies are failing
        """
        unhealthy = [dep for dep in dependencies if not dep.healthy]
        if not unhealthy:
            return "healthy"
        if any(
            dep.name in CRITICAL_DEPENDENCIES or (dep.details or {}).get("stalled")
            for dep in unhealthy
        ):
            return "unhealthy"
        return "degraded"
