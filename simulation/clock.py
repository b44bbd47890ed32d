"""
Fixed-rate simulation clock.

Every tick the clock runs one cycle: list the fleet, advance each robot
that should be simulated, persist the changes as partial, version-checked
merges and publish one telemetry frame per successfully advanced robot.

Cycles never overlap. A tick that fires while the previous cycle is still
running is skipped and counted. A cycle that takes longer than the stall
threshold is reported at CRITICAL level but left to finish; it is never
cancelled.
"""

import asyncio
import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from errors.exceptions import AppException
from fleet.models import Entity, EntityStatus, utcnow
from fleet.store import EntityStore
from realtime.hub import BroadcastHub
from realtime.protocol import TELEMETRY_EVENT, TelemetryFrame
from simulation.controller import SimulationController
from simulation.engine import SimulationEngine

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Outcome of one cycle."""
    cycle: int
    started_at: datetime
    duration_ms: float = 0.0
    considered: int = 0
    simulated: int = 0
    failed: int = 0
    frames: int = 0
    skipped: bool = False
    error: Optional[str] = None
    failed_ids: List[str] = field(default_factory=list)


class SimulationClock:
    """
    Drives the simulation on a fixed interval.

    Args:
        store: Where robots are read from and written to.
        controller: Decides which robots advance this cycle.
        engine: Computes each robot's next state.
        hub: Receives the cycle's telemetry frames.
        interval_seconds: Time between tick fires.
        stall_threshold_seconds: A cycle running longer than this is
            reported as stalled.
        observability: Optional ObservabilityService for metrics and spans.
    """

    def __init__(
        self,
        store: EntityStore,
        controller: SimulationController,
        engine: SimulationEngine,
        hub: BroadcastHub,
        interval_seconds: float = 0.5,
        stall_threshold_seconds: float = 10.0,
        observability=None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if stall_threshold_seconds <= 0:
            raise ValueError("stall_threshold_seconds must be positive")
        self.store = store
        self.controller = controller
        self.engine = engine
        self.hub = hub
        self.interval_seconds = interval_seconds
        self.stall_threshold_seconds = stall_threshold_seconds
        self.observability = observability

        self._cycle_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._cycle_started_monotonic: Optional[float] = None
        self.cycle_count = 0
        self.skipped_cycles = 0
        self.failed_cycles = 0
        self.last_report: Optional[CycleReport] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def busy(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def is_stalled(self) -> bool:
        """True while the in-flight cycle has exceeded the stall threshold."""
        if self._cycle_started_monotonic is None:
            return False
        return time.monotonic() - self._cycle_started_monotonic > self.stall_threshold_seconds

    @property
    def current_cycle_age_seconds(self) -> Optional[float]:
        if self._cycle_started_monotonic is None:
            return None
        return time.monotonic() - self._cycle_started_monotonic

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="simulation-clock")
        logger.info(
            f"Simulation clock started, interval {self.interval_seconds}s",
            extra={"extra_data": {
                "interval_seconds": self.interval_seconds,
                "stall_threshold_seconds": self.stall_threshold_seconds,
            }}
        )

    async def stop(self) -> None:
        """Stop firing ticks and wait for any in-flight cycle to finish."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        cycle_task, self._cycle_task = self._cycle_task, None
        if cycle_task is not None and not cycle_task.done():
            await asyncio.gather(cycle_task, return_exceptions=True)
        logger.info(
            "Simulation clock stopped",
            extra={"extra_data": {
                "cycles": self.cycle_count,
                "skipped_cycles": self.skipped_cycles,
                "failed_cycles": self.failed_cycles,
            }}
        )

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time()
        while True:
            next_fire += self.interval_seconds
            if self._cycle_task is not None and not self._cycle_task.done():
                self._record_skip()
            else:
                self._cycle_task = asyncio.create_task(self._supervise(), name="simulation-cycle")

            delay = next_fire - loop.time()
            if delay < 0:
                # fell behind; resume the schedule from now instead of bursting
                next_fire = loop.time()
                delay = 0
            await asyncio.sleep(delay)

    async def _supervise(self) -> None:
        """Run one cycle and watch it for stalls without cancelling it."""
        cycle = asyncio.create_task(self.run_once())
        done, _ = await asyncio.wait({cycle}, timeout=self.stall_threshold_seconds)
        if not done:
            logger.critical(
                f"Simulation cycle {self.cycle_count} exceeded stall threshold "
                f"of {self.stall_threshold_seconds}s",
                extra={"extra_data": {
                    "cycle": self.cycle_count,
                    "stall_threshold_seconds": self.stall_threshold_seconds,
                }}
            )
            self._metric("simulation.cycle.stalled", 1)
            await asyncio.wait({cycle})
        if not cycle.cancelled() and cycle.exception() is not None:
            # run_once reports its own failures; anything reaching here is a bug
            logger.error(
                f"Simulation cycle raised: {cycle.exception()}",
                exc_info=cycle.exception(),
            )

    def _record_skip(self) -> None:
        self.skipped_cycles += 1
        logger.warning(
            "Simulation tick skipped, previous cycle still running",
            extra={"extra_data": {
                "skipped_cycles": self.skipped_cycles,
                "cycle_age_seconds": self.current_cycle_age_seconds,
            }}
        )
        self._metric("simulation.cycle.skipped", 1)

    async def run_once(self) -> CycleReport:
        """
        Run a single cycle now.

        If a cycle is already in flight this returns immediately with a
        report marked ``skipped``. Failures are logged and reported; this
        never raises for errors inside the cycle.
        """
        if self._cycle_lock.locked():
            self._record_skip()
            return CycleReport(cycle=self.cycle_count, started_at=utcnow(), skipped=True)

        async with self._cycle_lock:
            self.cycle_count += 1
            report = CycleReport(cycle=self.cycle_count, started_at=utcnow())
            self._cycle_started_monotonic = time.monotonic()
            try:
                with self._span(report.cycle):
                    await self._cycle(report)
            except Exception as e:
                self.failed_cycles += 1
                report.error = str(e)
                logger.error(
                    f"Simulation cycle {report.cycle} failed: {e}",
                    exc_info=True,
                    extra={"extra_data": {"cycle": report.cycle, "error": str(e)}}
                )
                self._metric("simulation.cycle.failed", 1)
            finally:
                report.duration_ms = (time.monotonic() - self._cycle_started_monotonic) * 1000
                self._cycle_started_monotonic = None
                self.last_report = report

            self._metric("simulation.cycle.duration_ms", report.duration_ms)
            self._metric("simulation.robots.simulated", report.simulated)
            self._metric("realtime.frames.published", report.frames)
            logger.debug(
                f"Simulation cycle {report.cycle} complete: {report.simulated} simulated, "
                f"{report.failed} failed",
                extra={"extra_data": {
                    "cycle": report.cycle,
                    "considered": report.considered,
                    "simulated": report.simulated,
                    "failed": report.failed,
                    "frames": report.frames,
                    "duration_ms": report.duration_ms,
                }}
            )
            return report

    async def _cycle(self, report: CycleReport) -> None:
        entities = await self.store.list()
        report.considered = len(entities)

        targets = [
            entity for entity in entities
            if entity.status != EntityStatus.OFFLINE and self.controller.should_simulate(entity.id)
        ]
        if not targets:
            return

        now = utcnow()
        results = await asyncio.gather(*(self._advance(entity, now) for entity in targets))
        frames: List[TelemetryFrame] = []
        for entity, frame in zip(targets, results):
            if frame is None:
                report.failed += 1
                report.failed_ids.append(entity.id)
            else:
                frames.append(frame)
        report.simulated = len(frames)

        if frames:
            await self.hub.publish_many(frames, event=TELEMETRY_EVENT)
            report.frames = len(frames)
            self._metric("realtime.frames.dropped", self.hub.dropped_total)

    async def _advance(self, entity: Entity, now: datetime) -> Optional[TelemetryFrame]:
        """Advance and persist one robot. Returns None if anything about it failed."""
        try:
            step = self.engine.advance(entity, now=now)
            await self.store.update(
                step.entity_id, step.changes, expected_version=step.expected_version
            )
            self.engine.commit(step)
            return step.frame
        except AppException as e:
            logger.warning(
                f"Robot {entity.id} not updated this cycle: {e.message}",
                extra={"extra_data": {
                    "entity_id": entity.id,
                    "error_code": e.error_code.value,
                }}
            )
        except Exception as e:
            logger.error(
                f"Simulating robot {entity.id} failed: {e}",
                exc_info=True,
                extra={"extra_data": {"entity_id": entity.id, "error": str(e)}}
            )
        return None

    def _span(self, cycle: int):
        if self.observability is None:
            return nullcontext()
        return self.observability.create_span("simulation.cycle", {"cycle": cycle})

    def _metric(self, name: str, value: float) -> None:
        if self.observability is not None:
            self.observability.record_metric(name, value)
