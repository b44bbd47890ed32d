"""Demo fleet inserted at startup when the store is empty."""

import logging
from typing import List

from fleet.models import (
    CameraResolution,
    Entity,
    EntityConfig,
    EntityStatus,
    ImuSensitivity,
    Location,
    OperatingMode,
    SensorConfig,
)
from fleet.store import EntityStore

logger = logging.getLogger(__name__)


def _robot(
    number: int,
    status: EntityStatus,
    x: float,
    y: float,
    battery: float,
    zone: str,
    mode: OperatingMode,
    speed_limit: float,
    threshold: float,
    camera: CameraResolution,
    imu: ImuSensitivity,
) -> Entity:
    return Entity(
        id=f"robot-{number:03d}",
        name=f"Robot-{number:03d}",
        status=status,
        location=Location(x=x, y=y, z=0.0),
        battery=battery,
        assigned_zone=zone,
        config=EntityConfig(
            operating_mode=mode,
            speed_limit=speed_limit,
            battery_threshold=threshold,
            sensor_config=SensorConfig(camera_resolution=camera, imu_sensitivity=imu),
        ),
        version=1,
    )


def demo_fleet() -> List[Entity]:
    return [
        _robot(1, EntityStatus.ACTIVE, 5.2, 3.1, 85, "warehouse-a", OperatingMode.PATROL,
               2.5, 20, CameraResolution.P1080, ImuSensitivity.MEDIUM),
        _robot(2, EntityStatus.IDLE, 8.7, 1.2, 45, "warehouse-b", OperatingMode.IDLE,
               1.8, 15, CameraResolution.P720, ImuSensitivity.LOW),
        _robot(3, EntityStatus.ACTIVE, 4.5, 9.1, 12, "warehouse-a", OperatingMode.DELIVERY,
               3.2, 25, CameraResolution.K4, ImuSensitivity.HIGH),
        _robot(4, EntityStatus.MAINTENANCE, 0.8, 0.5, 78, "dock", OperatingMode.MAINTENANCE,
               1.0, 30, CameraResolution.P1080, ImuSensitivity.MEDIUM),
        _robot(5, EntityStatus.OFFLINE, 12.3, 7.8, 0, "warehouse-b", OperatingMode.IDLE,
               2.0, 20, CameraResolution.P720, ImuSensitivity.LOW),
    ]


async def seed_demo_fleet(store: EntityStore) -> int:
    """Insert the demo fleet unless the store already holds robots; return how many were added."""
    if await store.list():
        return 0
    fleet = demo_fleet()
    for entity in fleet:
        await store.insert(entity)
    logger.info(
        "Demo fleet seeded",
        extra={"extra_data": {"count": len(fleet)}}
    )
    return len(fleet)
