"""
Per-mode kinematics.

Patrol oscillates on the absolute wall clock: ``t`` is seconds since the
epoch, not time since the previous tick, so jitter in tick timing changes
the apparent patrol speed. That is the intended behaviour.
"""

import math
import random
import time
from typing import Callable, Dict, NamedTuple, Optional

from fleet.models import ARENA_MAX, ARENA_MIN, EntityConfig, Location, OperatingMode, clamp

PATROL_STEP = 0.1
DELIVERY_STEP_FACTOR = 0.1
DELIVERY_TURN_MAX_X = 15.0
DELIVERY_TURN_MIN_X = 0.0
IDLE_JITTER = 0.01
DOCK_ANCHOR = (1.0, 1.0)
DOCK_STEP = 0.05


class MotionPlan(NamedTuple):
    location: Location
    direction: Optional[int] = None


class MotionModel:
    """
    Computes the next position of a robot from its configuration.

    Owns the delivery-mode direction table: robot id to +1 or -1,
    created lazily at +1 on a robot's first delivery step.

    Args:
        clock: Returns wall-clock seconds; defaults to ``time.time``.
        rng: Source of idle jitter; defaults to a private ``random.Random``.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self._clock = clock
        self._rng = rng or random.Random()
        self._directions: Dict[str, int] = {}

    def direction_of(self, entity_id: str) -> Optional[int]:
        """Return the stored delivery direction, or None if the robot never delivered."""
        return self._directions.get(entity_id)

    def set_direction(self, entity_id: str, direction: int) -> None:
        if direction not in (-1, 1):
            raise ValueError("direction must be -1 or +1")
        self._directions[entity_id] = direction

    def directions(self) -> Dict[str, int]:
        return dict(self._directions)

    def reset(self, entity_id: Optional[str] = None) -> None:
        """Forget one robot's direction, or all of them when no id is given."""
        if entity_id is None:
            self._directions.clear()
        else:
            self._directions.pop(entity_id, None)

    def plan(self, entity_id: str, location: Location, config: EntityConfig) -> MotionPlan:
        """
        Compute the next location without touching the direction table.

        For delivery robots the plan carries the direction to store once the
        move has been persisted; ``commit`` applies it.
        """
        x, y = location.x, location.y
        mode = config.operating_mode
        next_direction = None

        if mode == OperatingMode.PATROL:
            t = self._clock()
            x += math.sin(t) * PATROL_STEP
            y += math.cos(t) * PATROL_STEP
        elif mode == OperatingMode.DELIVERY:
            direction = self._directions.get(entity_id, 1)
            x += direction * config.speed_limit * DELIVERY_STEP_FACTOR
            # takes effect on the next tick
            next_direction = direction
            if x > DELIVERY_TURN_MAX_X:
                next_direction = -1
            if x < DELIVERY_TURN_MIN_X:
                next_direction = 1
        elif mode == OperatingMode.IDLE:
            x += self._rng.uniform(-IDLE_JITTER, IDLE_JITTER)
            y += self._rng.uniform(-IDLE_JITTER, IDLE_JITTER)
        elif mode == OperatingMode.MAINTENANCE:
            dock_x, dock_y = DOCK_ANCHOR
            if x > dock_x:
                x -= DOCK_STEP
            if y > dock_y:
                y -= DOCK_STEP

        return MotionPlan(
            location=Location(
                x=clamp(x, ARENA_MIN, ARENA_MAX),
                y=clamp(y, ARENA_MIN, ARENA_MAX),
                z=location.z,
            ),
            direction=next_direction,
        )

    def commit(self, entity_id: str, plan: MotionPlan) -> None:
        if plan.direction is not None:
            self.set_direction(entity_id, plan.direction)

    def step(self, entity_id: str, location: Location, config: EntityConfig) -> Location:
        """Plan and commit in one go; ``z`` is carried through."""
        plan = self.plan(entity_id, location, config)
        self.commit(entity_id, plan)
        return plan.location
