"""
WebSocket wire format.

Outbound, one message per robot per cycle::

    {"event": "telemetry", "entityId": "robot-001",
     "location": {"x": 5.3, "y": 3.2, "z": 0.0},
     "battery": 84.85, "status": "active", "speed": 1.5,
     "timestamp": "2024-01-01T00:00:00.000000Z"}

Inbound, informational only::

    {"type": "subscribe", "entityIds": ["robot-001"]}
    {"type": "unsubscribe", "entityIds": ["robot-001"]}
"""

from datetime import datetime
from typing import Any, Dict, List, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from fleet.models import EntityStatus, Location, utcnow

TELEMETRY_EVENT = "telemetry"


def isoformat_z(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


class TelemetryFrame(BaseModel):
    """Ephemeral per-robot, per-cycle state snapshot."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    entity_id: str
    location: Location
    battery: float
    status: EntityStatus
    speed: float
    timestamp: datetime = Field(default_factory=utcnow)

    def to_message(self, event: str = TELEMETRY_EVENT) -> Dict[str, Any]:
        return {
            "event": event,
            "entityId": self.entity_id,
            "location": {"x": self.location.x, "y": self.location.y, "z": self.location.z},
            "battery": self.battery,
            "status": self.status.value,
            "speed": self.speed,
            "timestamp": isoformat_z(self.timestamp),
        }


class SubscriptionMessage(BaseModel):
    """Client request to (un)subscribe from robots; recorded but never used to filter."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: Literal["subscribe", "unsubscribe"]
    entity_ids: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("entityIds", "robotIds", "entity_ids"),
    )

    @field_validator("entity_ids")
    @classmethod
    def validate_entity_ids(cls, v: List[str]) -> List[str]:
        cleaned = [i.strip() for i in v if i and i.strip()]
        if len(cleaned) > 1000:
            raise ValueError("entityIds cannot exceed 1000 entries")
        return cleaned
