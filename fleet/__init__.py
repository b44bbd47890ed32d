"""
Fleet domain: robot records and the stores that persist them.
"""

from fleet.models import (
    ARENA_MAX,
    ARENA_MIN,
    Entity,
    EntityConfig,
    EntityConfigUpdate,
    EntitySpec,
    EntityStatus,
    Location,
    OperatingMode,
)
from fleet.memory_store import InMemoryEntityStore
from fleet.store import EntityStore

__all__ = [
    "ARENA_MAX",
    "ARENA_MIN",
    "Entity",
    "EntityConfig",
    "EntityConfigUpdate",
    "EntitySpec",
    "EntityStatus",
    "EntityStore",
    "InMemoryEntityStore",
    "Location",
    "OperatingMode",
]
