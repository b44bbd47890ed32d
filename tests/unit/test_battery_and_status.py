"""
Unit tests for battery drain and status arbitration.
"""

import pytest
from hypothesis import given, strategies as st

from fleet.models import EntityConfig, EntityStatus, OperatingMode
from simulation.battery import DEFAULT_DRAIN_RATES, BatteryModel
from simulation.status import StatusArbiter


def _config(mode: OperatingMode, threshold: float = 20, speed_limit: float = 2.5) -> EntityConfig:
    return EntityConfig(operating_mode=mode, speed_limit=speed_limit, battery_threshold=threshold)


class TestBatteryModel:
    @pytest.mark.parametrize("mode, expected", [
        (OperatingMode.PATROL, 0.15),
        (OperatingMode.DELIVERY, 0.2),
        (OperatingMode.MAINTENANCE, 0.05),
        (OperatingMode.IDLE, 0.03),
    ])
    def test_default_rates(self, mode, expected):
        assert BatteryModel().drain_rate(mode) == expected

    def test_drain_subtracts_rate(self):
        assert BatteryModel().drain(21, OperatingMode.PATROL) == pytest.approx(20.85)

    def test_drain_floors_at_zero(self):
        assert BatteryModel().drain(0.1, OperatingMode.DELIVERY) == 0.0

    def test_configured_rates_override_defaults(self):
        model = BatteryModel({"patrol": 1.0})

        assert model.drain_rate(OperatingMode.PATROL) == 1.0
        assert model.drain_rate(OperatingMode.IDLE) == DEFAULT_DRAIN_RATES[OperatingMode.IDLE]

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            BatteryModel({"idle": -0.1})

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            BatteryModel({"sprint": 0.5})


class TestStatusArbiter:
    def test_healthy_patrol_is_active(self):
        assert StatusArbiter().status_for(_config(OperatingMode.PATROL), 20.85) == EntityStatus.ACTIVE

    def test_low_battery_forces_maintenance(self):
        config = _config(OperatingMode.PATROL)

        assert StatusArbiter().status_for(config, 18.85) == EntityStatus.MAINTENANCE
        assert config.operating_mode == OperatingMode.PATROL

    def test_battery_at_threshold_is_maintenance(self):
        assert StatusArbiter().status_for(_config(OperatingMode.DELIVERY), 20) == EntityStatus.MAINTENANCE

    def test_maintenance_mode_always_maintenance(self):
        assert StatusArbiter().status_for(_config(OperatingMode.MAINTENANCE), 99) == EntityStatus.MAINTENANCE

    def test_idle_mode_is_idle(self):
        assert StatusArbiter().status_for(_config(OperatingMode.IDLE), 50) == EntityStatus.IDLE

    @pytest.mark.parametrize("mode, factor", [
        (OperatingMode.PATROL, 0.6),
        (OperatingMode.DELIVERY, 0.8),
        (OperatingMode.MAINTENANCE, 0.3),
        (OperatingMode.IDLE, 0.1),
    ])
    def test_speed_factor(self, mode, factor):
        assert StatusArbiter().speed_for(_config(mode, speed_limit=2.5)) == pytest.approx(2.5 * factor)


@given(
    battery=st.floats(min_value=0, max_value=100, allow_nan=False),
    mode=st.sampled_from(list(OperatingMode)),
)
def test_drain_never_increases_and_stays_in_range(battery, mode):
    drained = BatteryModel().drain(battery, mode)

    assert 0 <= drained <= 100
    assert drained <= battery
