"""Per-mode battery drain. Recharging is not modelled: battery only goes down."""

from typing import Mapping, Optional

from fleet.models import BATTERY_MAX, BATTERY_MIN, OperatingMode, clamp

DEFAULT_DRAIN_RATES = {
    OperatingMode.PATROL: 0.15,
    OperatingMode.DELIVERY: 0.2,
    OperatingMode.MAINTENANCE: 0.05,
    OperatingMode.IDLE: 0.03,
}


class BatteryModel:
    """Applies a fixed per-tick drain chosen by operating mode."""

    def __init__(self, drain_rates: Optional[Mapping[str, float]] = None):
        rates = dict(DEFAULT_DRAIN_RATES)
        for mode, rate in (drain_rates or {}).items():
            if rate < 0:
                raise ValueError(f"Drain rate for {mode} cannot be negative")
            rates[OperatingMode(mode)] = float(rate)
        self.drain_rates = rates

    def drain_rate(self, mode: OperatingMode) -> float:
        return self.drain_rates.get(mode, 0.0)

    def drain(self, battery: float, mode: OperatingMode) -> float:
        return clamp(battery - self.drain_rate(mode), BATTERY_MIN, BATTERY_MAX)
