"""
Listing robots with filters and pagination.

Filtering is done over the snapshot returned by ``EntityStore.list()``;
fleets are small enough that no backend-specific query language is needed.
"""

import math
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleet.models import Entity, EntityStatus


class BatteryLevel(str, Enum):
    """Battery buckets: low is at most 20, medium above 20 up to 60, high above 60."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EntityQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=50)
    status: Optional[EntityStatus] = None
    zone: Optional[str] = None
    battery_level: Optional[BatteryLevel] = None
    search: Optional[str] = None


class Pagination(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int


class EntityPage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    robots: List[Entity]
    pagination: Pagination


def _in_battery_level(battery: float, level: BatteryLevel) -> bool:
    if level is BatteryLevel.LOW:
        return battery <= 20
    if level is BatteryLevel.MEDIUM:
        return 20 < battery <= 60
    return battery > 60


def matches(entity: Entity, query: EntityQuery) -> bool:
    if query.status is not None and entity.status != query.status:
        return False
    if query.zone and entity.assigned_zone != query.zone:
        return False
    if query.battery_level is not None and not _in_battery_level(entity.battery, query.battery_level):
        return False
    if query.search:
        needle = query.search.lower()
        if needle not in entity.name.lower() and needle not in entity.assigned_zone.lower():
            return False
    return True


def paginate(entities: List[Entity], query: EntityQuery) -> EntityPage:
    """Apply ``query`` filters, order by name, and cut out the requested page."""
    selected = sorted((e for e in entities if matches(e, query)), key=lambda e: e.name)
    start = (query.page - 1) * query.limit
    return EntityPage(
        robots=selected[start:start + query.limit],
        pagination=Pagination(
            page=query.page,
            limit=query.limit,
            total=len(selected),
            total_pages=math.ceil(len(selected) / query.limit),
        ),
    )
