"""
One robot, one tick: motion, then battery, then status.

The engine is pure: it neither reads nor writes the store, and the motion
model's direction table only changes through ``commit``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from fleet.models import Entity, EntityStatus, utcnow
from realtime.protocol import TelemetryFrame
from simulation.battery import BatteryModel
from simulation.motion import MotionModel, MotionPlan
from simulation.status import StatusArbiter


@dataclass
class EntityStep:
    """The result of advancing one robot: what to persist and what to broadcast."""
    entity_id: str
    changes: Dict[str, Any]
    frame: TelemetryFrame
    expected_version: int
    motion: Optional[MotionPlan] = None


class SimulationEngine:
    def __init__(
        self,
        motion: Optional[MotionModel] = None,
        battery: Optional[BatteryModel] = None,
        arbiter: Optional[StatusArbiter] = None,
    ):
        self.motion = motion or MotionModel()
        self.battery = battery or BatteryModel()
        self.arbiter = arbiter or StatusArbiter()

    def advance(self, entity: Entity, now: Optional[datetime] = None) -> EntityStep:
        """
        Compute the next state of ``entity``.

        Raises:
            ValueError: If called for an offline robot.
        """
        if entity.status == EntityStatus.OFFLINE:
            raise ValueError(f"Robot {entity.id} is offline and cannot be simulated")

        now = now or utcnow()
        config = entity.config
        plan = self.motion.plan(entity.id, entity.location, config)
        location = plan.location
        battery = self.battery.drain(entity.battery, config.operating_mode)
        status = self.arbiter.status_for(config, battery)

        return EntityStep(
            entity_id=entity.id,
            changes={
                "location": location,
                "battery": battery,
                "status": status,
                "last_update": now,
            },
            frame=TelemetryFrame(
                entity_id=entity.id,
                location=location,
                battery=battery,
                status=status,
                speed=self.arbiter.speed_for(config),
                timestamp=now,
            ),
            expected_version=entity.version,
            motion=plan,
        )

    def commit(self, step: EntityStep) -> None:
        """Record the side effects of a step once its changes are persisted."""
        if step.motion is not None:
            self.motion.commit(step.entity_id, step.motion)
