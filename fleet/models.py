"""
Domain models for tracked robots.

Pydantic models shared by the store, the simulation and the HTTP surface.
Field names are snake_case in Python; the HTTP and WebSocket payloads use
the camelCase aliases the dashboard expects.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ARENA_MIN = 0.0
ARENA_MAX = 20.0

BATTERY_MIN = 0.0
BATTERY_MAX = 100.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


class EntityStatus(str, Enum):
    """Operating status; OFFLINE is frozen as far as the simulation is concerned."""
    ACTIVE = "active"
    IDLE = "idle"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class OperatingMode(str, Enum):
    """Behavioural profile driving motion, drain and speed rules."""
    PATROL = "patrol"
    DELIVERY = "delivery"
    MAINTENANCE = "maintenance"
    IDLE = "idle"


class CameraResolution(str, Enum):
    P720 = "720p"
    P1080 = "1080p"
    K4 = "4k"


class ImuSensitivity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Location(_CamelModel):
    """Position in meters. x and y live in the arena, z is carried through unchanged."""
    x: float
    y: float
    z: float = 0.0


class SensorConfig(_CamelModel):
    camera_resolution: CameraResolution = CameraResolution.P1080
    imu_sensitivity: ImuSensitivity = ImuSensitivity.MEDIUM


class EntityConfig(_CamelModel):
    """Per-robot configuration read by every tick."""
    operating_mode: OperatingMode
    speed_limit: float = Field(ge=0.5, le=5.0)
    battery_threshold: float = Field(ge=10, le=30)
    sensor_config: SensorConfig = Field(default_factory=SensorConfig)


class Entity(_CamelModel):
    """
    A tracked robot as persisted by the entity store.

    ``version`` increases by one on every successful write so concurrent
    writers can detect that the record changed underneath them.
    """
    id: str
    name: str
    status: EntityStatus = EntityStatus.IDLE
    location: Location
    battery: float = Field(ge=BATTERY_MIN, le=BATTERY_MAX)
    assigned_zone: str
    config: EntityConfig
    last_update: datetime = Field(default_factory=utcnow)
    version: int = 0


class EntitySpec(_CamelModel):
    """Payload for creating a robot; location, battery and status are assigned by the store."""
    name: str
    assigned_zone: str
    config: EntityConfig

    @field_validator("name", "assigned_zone")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class SensorConfigUpdate(_CamelModel):
    camera_resolution: Optional[CameraResolution] = None
    imu_sensitivity: Optional[ImuSensitivity] = None


class EntityConfigUpdate(_CamelModel):
    """Partial configuration update; unset fields keep their stored value."""
    operating_mode: Optional[OperatingMode] = None
    speed_limit: Optional[float] = Field(default=None, ge=0.5, le=5.0)
    battery_threshold: Optional[float] = Field(default=None, ge=10, le=30)
    sensor_config: Optional[SensorConfigUpdate] = None

    def apply_to(self, config: EntityConfig) -> EntityConfig:
        changes = self.model_dump(exclude_none=True, exclude={"sensor_config"})
        if self.sensor_config is not None:
            changes["sensor_config"] = config.sensor_config.model_copy(
                update=self.sensor_config.model_dump(exclude_none=True)
            )
        return config.model_copy(update=changes)
