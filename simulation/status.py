"""
Status and speed derivation.

Status is decided after the battery has been drained for the tick:

1. Maintenance mode always reports ``maintenance``.
2. Otherwise a battery at or below the robot's threshold forces
   ``maintenance`` while leaving the configured mode untouched.
3. Otherwise idle mode reports ``idle`` and every other mode ``active``.
"""

from fleet.models import EntityConfig, EntityStatus, OperatingMode

SPEED_FACTORS = {
    OperatingMode.PATROL: 0.6,
    OperatingMode.DELIVERY: 0.8,
    OperatingMode.MAINTENANCE: 0.3,
    OperatingMode.IDLE: 0.1,
}


class StatusArbiter:
    """Derives a robot's status and reported speed. Never called for offline robots."""

    def status_for(self, config: EntityConfig, battery: float) -> EntityStatus:
        if config.operating_mode == OperatingMode.MAINTENANCE:
            return EntityStatus.MAINTENANCE
        if battery <= config.battery_threshold:
            return EntityStatus.MAINTENANCE
        if config.operating_mode == OperatingMode.IDLE:
            return EntityStatus.IDLE
        return EntityStatus.ACTIVE

    def speed_for(self, config: EntityConfig) -> float:
        return config.speed_limit * SPEED_FACTORS.get(config.operating_mode, 0.0)
