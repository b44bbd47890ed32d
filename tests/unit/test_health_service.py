"""
Unit tests for the health check service.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from health.service import DependencyHealth, HealthCheckService


def _clock(running=True, stalled=False, age=None):
    return SimpleNamespace(
        running=running,
        is_stalled=stalled,
        current_cycle_age_seconds=age,
        stall_threshold_seconds=10.0,
        cycle_count=12,
        skipped_cycles=1,
        failed_cycles=0,
    )


def _store(healthy=True, side_effect=None):
    store = MagicMock()
    store.health_check = AsyncMock(return_value=healthy, side_effect=side_effect)
    return store


class TestCheckReadiness:
    @pytest.mark.asyncio
    async def test_all_healthy(self):
        service = HealthCheckService(_store(), clock=_clock())

        status = await service.check_readiness()

        assert status.status == "healthy"
        assert [d.name for d in status.dependencies] == ["entity_store", "simulation_clock"]

    @pytest.mark.asyncio
    async def test_store_down_is_unhealthy(self):
        service = HealthCheckService(_store(healthy=False), clock=_clock())

        status = await service.check_readiness()

        assert status.status == "unhealthy"
        assert status.dependencies[0].error

    @pytest.mark.asyncio
    async def test_store_exception_is_unhealthy(self):
        service = HealthCheckService(_store(side_effect=ConnectionError("refused")))

        status = await service.check_readiness()

        assert status.status == "unhealthy"
        assert "refused" in status.dependencies[0].error

    @pytest.mark.asyncio
    async def test_store_timeout(self):
        async def hang():
            await asyncio.sleep(5)

        store = MagicMock()
        store.health_check = hang
        service = HealthCheckService(store, check_timeout=0.05)

        status = await service.check_readiness()

        assert status.status == "unhealthy"
        assert "timed out" in status.dependencies[0].error

    @pytest.mark.asyncio
    async def test_stalled_cycle_is_unhealthy(self):
        service = HealthCheckService(_store(), clock=_clock(stalled=True, age=12.5))

        status = await service.check_readiness()

        assert status.status == "unhealthy"
        clock_dep = status.dependencies[1]
        assert clock_dep.details["stalled"] is True
        assert clock_dep.details["current_cycle_age_seconds"] == 12.5

    @pytest.mark.asyncio
    async def test_stopped_clock_is_degraded(self):
        service = HealthCheckService(_store(), clock=_clock(running=False))

        status = await service.check_readiness()

        assert status.status == "degraded"

    @pytest.mark.asyncio
    async def test_to_dict_shape(self):
        status = await HealthCheckService(_store(), clock=_clock()).check_readiness()

        data = status.to_dict()

        assert data["status"] == "healthy"
        assert data["timestamp"].endswith("Z")
        assert data["dependencies"][1]["details"]["cycles"] == 12


class TestSimpleChecks:
    @pytest.mark.asyncio
    async def test_liveness(self):
        result = await HealthCheckService(_store()).check_liveness()

        assert result["status"] == "alive"

    @pytest.mark.asyncio
    async def test_health(self):
        result = await HealthCheckService(_store()).check_health()

        assert result["status"] == "ok"


def test_dependency_health_omits_empty_fields():
    data = DependencyHealth(name="entity_store", healthy=True, response_time_ms=1.234).to_dict()

    assert data == {"name": "entity_store", "healthy": True, "response_time_ms": 1.23}
