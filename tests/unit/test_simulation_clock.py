"""
Unit tests for the simulation clock.

Cycles are driven with ``run_once`` wherever timing does not matter;
only the scheduling tests start the background loop.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from errors.exceptions import conflict, entity_store_unavailable
from fleet.memory_store import InMemoryEntityStore
from fleet.models import EntityStatus, OperatingMode
from simulation.clock import SimulationClock
from simulation.controller import SimulationController
from simulation.engine import SimulationEngine
from simulation.motion import MotionModel


def _hub():
    hub = MagicMock()
    hub.publish_many = AsyncMock(side_effect=lambda frames, event="telemetry": len(frames))
    return hub


def _published_ids(hub) -> list:
    ids = []
    for call in hub.publish_many.await_args_list:
        ids.extend(frame.entity_id for frame in call.args[0])
    return ids


def _clock(store, controller=None, hub=None, engine=None, **kwargs) -> SimulationClock:
    return SimulationClock(
        store=store,
        controller=controller or SimulationController(),
        engine=engine or SimulationEngine(motion=MotionModel(clock=lambda: 0.0)),
        hub=hub or _hub(),
        **kwargs,
    )


async def _fill(store, *entities):
    for entity in entities:
        await store.insert(entity)


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_advances_and_publishes_every_eligible_robot(self, store, make_entity):
        await _fill(store, make_entity("robot-001"), make_entity("robot-002", mode=OperatingMode.IDLE))
        hub = _hub()
        clock = _clock(store, hub=hub)

        report = await clock.run_once()

        assert report.simulated == 2
        assert report.frames == 2
        assert report.failed == 0
        assert sorted(_published_ids(hub)) == ["robot-001", "robot-002"]
        robot = await store.get("robot-001")
        assert robot.battery == pytest.approx(79.85)
        assert robot.version == 2

    @pytest.mark.asyncio
    async def test_offline_robot_gets_no_mutation_and_no_frame(self, store, make_entity):
        await _fill(
            store,
            make_entity("robot-001"),
            make_entity("robot-005", status=EntityStatus.OFFLINE, battery=0),
        )
        hub = _hub()
        clock = _clock(store, hub=hub)
        before = await store.get("robot-005")

        for _ in range(3):
            await clock.run_once()

        after = await store.get("robot-005")
        assert after == before
        assert "robot-005" not in _published_ids(hub)

    @pytest.mark.asyncio
    async def test_disabled_robots_are_left_alone(self, store, make_entity):
        await _fill(store, make_entity("robot-001"), make_entity("robot-002"))
        controller = SimulationController(global_enabled=False)
        controller.set_entity("robot-002", True)
        hub = _hub()

        report = await _clock(store, controller=controller, hub=hub).run_once()

        assert report.simulated == 1
        assert _published_ids(hub) == ["robot-002"]
        assert (await store.get("robot-001")).version == 1

    @pytest.mark.asyncio
    async def test_nothing_to_do_publishes_nothing(self, store):
        hub = _hub()

        report = await _clock(store, hub=hub).run_once()

        assert report.simulated == 0
        hub.publish_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_failing_robot_does_not_stop_the_others(self, make_entity):
        class FlakyStore(InMemoryEntityStore):
            async def update(self, entity_id, partial, expected_version=None):
                if entity_id == "robot-002":
                    raise entity_store_unavailable("write failed")
                return await super().update(entity_id, partial, expected_version)

        store = FlakyStore()
        await _fill(store, make_entity("robot-001"), make_entity("robot-002"), make_entity("robot-003"))
        hub = _hub()

        report = await _clock(store, hub=hub).run_once()

        assert report.simulated == 2
        assert report.failed == 1
        assert report.failed_ids == ["robot-002"]
        assert sorted(_published_ids(hub)) == ["robot-001", "robot-003"]
        assert (await store.get("robot-002")).version == 1

    @pytest.mark.asyncio
    async def test_unexpected_per_robot_error_is_isolated(self, store, make_entity):
        await _fill(store, make_entity("robot-001"), make_entity("robot-002"))
        engine = SimulationEngine(motion=MotionModel(clock=lambda: 0.0))
        real_advance = engine.advance

        def advance(entity, now=None):
            if entity.id == "robot-001":
                raise RuntimeError("boom")
            return real_advance(entity, now=now)

        engine.advance = advance
        clock = SimulationClock(store, SimulationController(), engine, _hub())

        report = await clock.run_once()

        assert report.failed_ids == ["robot-001"]
        assert report.simulated == 1

    @pytest.mark.asyncio
    async def test_cycle_level_failure_is_not_fatal(self, store, make_entity):
        await _fill(store, make_entity("robot-001"))
        clock = _clock(store)
        real_list = store.list
        store.list = AsyncMock(side_effect=RuntimeError("store exploded"))

        failed = await clock.run_once()

        assert failed.error == "store exploded"
        assert clock.failed_cycles == 1

        store.list = real_list
        recovered = await clock.run_once()
        assert recovered.error is None
        assert recovered.simulated == 1

    @pytest.mark.asyncio
    async def test_tick_never_reverts_concurrent_config_write(self, make_entity):
        class RacingStore(InMemoryEntityStore):
            """Applies an operator config change after the cycle took its snapshot."""

            async def list(self):
                snapshot = await super().list()
                current = await self.get("robot-001")
                await self.update(
                    "robot-001",
                    {"config": current.config.model_copy(update={"speed_limit": 4.0})},
                )
                return snapshot

        store = RacingStore()
        await _fill(store, make_entity("robot-001", speed_limit=2.0))

        report = await _clock(store).run_once()

        robot = await store.get("robot-001")
        assert robot.config.speed_limit == 4.0
        assert robot.battery == 80.0
        assert report.failed_ids == ["robot-001"]

    @pytest.mark.asyncio
    async def test_failed_write_keeps_delivery_direction(self, make_entity):
        class ConflictOnceStore(InMemoryEntityStore):
            def __init__(self):
                super().__init__()
                self.failures = 1

            async def update(self, entity_id, partial, expected_version=None):
                if self.failures:
                    self.failures -= 1
                    raise conflict(f"Robot {entity_id} was modified concurrently")
                return await super().update(entity_id, partial, expected_version)

        store = ConflictOnceStore()
        await _fill(store, make_entity("robot-003", mode=OperatingMode.DELIVERY, x=14.9, speed_limit=2))
        motion = MotionModel(clock=lambda: 0.0)
        clock = _clock(store, engine=SimulationEngine(motion=motion))

        first = await clock.run_once()

        assert first.failed_ids == ["robot-003"]
        assert (await store.get("robot-003")).location.x == pytest.approx(14.9)
        assert motion.direction_of("robot-003") is None

        second = await clock.run_once()

        assert second.failed == 0
        assert (await store.get("robot-003")).location.x == pytest.approx(15.1)
        assert motion.direction_of("robot-003") == -1

    @pytest.mark.asyncio
    async def test_overlapping_cycle_is_skipped(self, make_entity):
        release = asyncio.Event()

        class SlowStore(InMemoryEntityStore):
            async def list(self):
                await release.wait()
                return await super().list()

        store = SlowStore()
        clock = _clock(store)

        first = asyncio.create_task(clock.run_once())
        while not clock.busy:
            await asyncio.sleep(0)

        second = await clock.run_once()
        assert second.skipped is True
        assert clock.skipped_cycles == 1

        release.set()
        report = await first
        assert report.skipped is False
        assert clock.cycle_count == 1


class TestScheduling:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, store, make_entity):
        await _fill(store, make_entity("robot-001"))
        clock = _clock(store, interval_seconds=0.01)

        clock.start()
        assert clock.running
        await asyncio.sleep(0.1)
        await clock.stop()

        assert not clock.running
        assert clock.cycle_count >= 2
        assert (await store.get("robot-001")).version > 1

    @pytest.mark.asyncio
    async def test_stalled_cycle_is_reported_but_not_cancelled(self, caplog):
        finished = asyncio.Event()

        class StallingStore(InMemoryEntityStore):
            async def list(self):
                await asyncio.sleep(0.25)
                finished.set()
                return []

        clock = _clock(StallingStore(), interval_seconds=0.02, stall_threshold_seconds=0.05)

        with caplog.at_level(logging.WARNING):
            clock.start()
            await asyncio.sleep(0.15)
            assert clock.is_stalled
            assert clock.skipped_cycles > 0
            await clock.stop()

        assert finished.is_set()
        assert clock.last_report is not None
        assert clock.last_report.error is None
        assert any(
            r.levelno == logging.CRITICAL and "stall threshold" in r.getMessage()
            for r in caplog.records
        )

    def test_invalid_interval_rejected(self, store):
        with pytest.raises(ValueError):
            _clock(store, interval_seconds=0)
