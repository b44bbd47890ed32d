"""
Unit tests for per-mode kinematics.
"""

import math
import random

import pytest
from hypothesis import given, strategies as st

from fleet.models import ARENA_MAX, ARENA_MIN, EntityConfig, Location, OperatingMode
from simulation.motion import MotionModel


def _config(mode: OperatingMode, speed_limit: float = 2.0) -> EntityConfig:
    return EntityConfig(operating_mode=mode, speed_limit=speed_limit, battery_threshold=20)


class TestPatrol:
    def test_patrol_follows_wall_clock(self):
        model = MotionModel(clock=lambda: 0.0)

        result = model.step("robot-001", Location(x=5, y=5), _config(OperatingMode.PATROL))

        # sin(0) = 0, cos(0) = 1
        assert result.x == pytest.approx(5.0)
        assert result.y == pytest.approx(5.1)

    def test_patrol_uses_absolute_time(self):
        t = 1000.25
        model = MotionModel(clock=lambda: t)

        result = model.step("robot-001", Location(x=10, y=10), _config(OperatingMode.PATROL))

        assert result.x == pytest.approx(10 + math.sin(t) * 0.1)
        assert result.y == pytest.approx(10 + math.cos(t) * 0.1)


class TestDelivery:
    def test_first_step_moves_forward(self):
        model = MotionModel()

        result = model.step("robot-003", Location(x=14, y=3), _config(OperatingMode.DELIVERY))

        assert result.x == pytest.approx(14.2)
        assert result.y == 3
        assert model.direction_of("robot-003") == 1

    def test_direction_reverses_on_the_tick_after_crossing(self):
        model = MotionModel()
        config = _config(OperatingMode.DELIVERY)

        crossed = model.step("robot-003", Location(x=14.9, y=3), config)
        assert crossed.x == pytest.approx(15.1)
        assert model.direction_of("robot-003") == -1

        back = model.step("robot-003", crossed, config)
        assert back.x == pytest.approx(14.9)

    def test_plan_leaves_direction_table_alone(self):
        model = MotionModel()

        plan = model.plan("robot-003", Location(x=14.9, y=3), _config(OperatingMode.DELIVERY))

        assert plan.location.x == pytest.approx(15.1)
        assert plan.direction == -1
        assert model.directions() == {}

    def test_non_delivery_plan_has_no_direction(self):
        plan = MotionModel(clock=lambda: 0.0).plan("robot-001", Location(x=5, y=5), _config(OperatingMode.PATROL))

        assert plan.direction is None

    def test_direction_turns_forward_below_zero(self):
        model = MotionModel()
        model.set_direction("robot-003", -1)
        config = _config(OperatingMode.DELIVERY, speed_limit=5.0)

        result = model.step("robot-003", Location(x=0.2, y=3), config)

        # clamped into the arena, direction flipped for the next tick
        assert result.x == 0.0
        assert model.direction_of("robot-003") == 1

    def test_directions_are_per_robot(self):
        model = MotionModel()
        model.set_direction("a", -1)
        config = _config(OperatingMode.DELIVERY)

        a = model.step("a", Location(x=10, y=0), config)
        b = model.step("b", Location(x=10, y=0), config)

        assert a.x == pytest.approx(9.8)
        assert b.x == pytest.approx(10.2)

    def test_reset_forgets_direction(self):
        model = MotionModel()
        model.set_direction("a", -1)
        model.set_direction("b", -1)

        model.reset("a")
        assert model.direction_of("a") is None
        assert model.direction_of("b") == -1

        model.reset()
        assert model.directions() == {}

    def test_set_direction_rejects_other_values(self):
        with pytest.raises(ValueError):
            MotionModel().set_direction("a", 0)


class TestIdleAndMaintenance:
    def test_idle_jitters_within_a_centimetre(self):
        model = MotionModel(rng=random.Random(3))

        result = model.step("robot-002", Location(x=8, y=1), _config(OperatingMode.IDLE))

        assert abs(result.x - 8) <= 0.01
        assert abs(result.y - 1) <= 0.01

    def test_maintenance_moves_toward_dock(self):
        model = MotionModel()

        result = model.step("robot-004", Location(x=3, y=0.5), _config(OperatingMode.MAINTENANCE))

        assert result.x == pytest.approx(2.95)
        assert result.y == 0.5

    def test_maintenance_stops_at_dock(self):
        model = MotionModel()

        result = model.step("robot-004", Location(x=1, y=1), _config(OperatingMode.MAINTENANCE))

        assert (result.x, result.y) == (1, 1)

    def test_z_is_carried_through(self):
        model = MotionModel()

        result = model.step("robot-004", Location(x=3, y=3, z=1.5), _config(OperatingMode.MAINTENANCE))

        assert result.z == 1.5


coordinate = st.floats(min_value=ARENA_MIN, max_value=ARENA_MAX, allow_nan=False)


@given(
    x=coordinate,
    y=coordinate,
    mode=st.sampled_from(list(OperatingMode)),
    speed=st.floats(min_value=0.5, max_value=5.0),
    now=st.floats(min_value=0, max_value=2e9),
    direction=st.sampled_from([-1, 1]),
)
def test_step_stays_inside_arena(x, y, mode, speed, now, direction):
    model = MotionModel(clock=lambda: now, rng=random.Random(0))
    model.set_direction("r", direction)

    result = model.step("r", Location(x=x, y=y), _config(mode, speed))

    assert ARENA_MIN <= result.x <= ARENA_MAX
    assert ARENA_MIN <= result.y <= ARENA_MAX
