"""
Entity store abstraction.

The simulation and the HTTP surface only talk to robots through this
interface. Implementations decide where records live; all of them apply
updates as partial merges and bump ``version`` on every write, so a
simulation tick and a configuration change touching the same robot never
revert each other's fields.
"""

import random
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

from errors.exceptions import conflict, validation_error
from fleet.models import (
    ARENA_MAX,
    ARENA_MIN,
    BATTERY_MAX,
    Entity,
    EntitySpec,
    EntityStatus,
    Location,
    utcnow,
)

# Fields a caller may change through update(); identity and version are owned by the store.
PATCHABLE_FIELDS = frozenset({
    "name",
    "status",
    "location",
    "battery",
    "assigned_zone",
    "config",
    "last_update",
})


class EntityStore(ABC):
    """
    Abstract base class for robot persistence.

    All methods are async so implementations can do non-blocking I/O.
    """

    @abstractmethod
    async def list(self) -> List[Entity]:
        """
        Return every stored robot.

        Returns:
            A list of independent copies; mutating them does not touch the store.
        """

    @abstractmethod
    async def get(self, entity_id: str) -> Entity:
        """
        Fetch one robot.

        Raises:
            AppException: RESOURCE_NOT_FOUND if no robot has this id.
        """

    @abstractmethod
    async def update(
        self,
        entity_id: str,
        partial: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Entity:
        """
        Merge ``partial`` into the stored robot and return the new record.

        Args:
            entity_id: Robot to update.
            partial: Field name to new value; fields not named are preserved.
            expected_version: When given, the write only succeeds if the
                stored version still equals it.

        Raises:
            AppException: RESOURCE_NOT_FOUND if no robot has this id,
                CONFLICT if ``expected_version`` is stale,
                VALIDATION_ERROR if ``partial`` names an unknown field or
                produces an invalid record.
        """

    @abstractmethod
    async def create(self, spec: EntitySpec) -> Entity:
        """Create a robot idle, at full battery, at a random arena location."""

    async def insert(self, entity: Entity) -> Entity:
        """Store a fully specified robot as-is (used for seeding)."""
        raise NotImplementedError

    async def health_check(self) -> bool:
        """
        Report whether the backend is reachable.

        Must not raise; connectivity issues result in False.
        """
        return True


def new_entity(entity_id: str, spec: EntitySpec, rng: Optional[random.Random] = None) -> Entity:
    """Build the initial record for a newly created robot."""
    rng = rng or random
    return Entity(
        id=entity_id,
        name=spec.name,
        status=EntityStatus.IDLE,
        location=Location(
            x=rng.uniform(ARENA_MIN, ARENA_MAX),
            y=rng.uniform(ARENA_MIN, ARENA_MAX),
            z=0.0,
        ),
        battery=BATTERY_MAX,
        assigned_zone=spec.assigned_zone,
        config=spec.config,
        last_update=utcnow(),
        version=1,
    )


def apply_partial(
    entity: Entity,
    partial: Mapping[str, Any],
    expected_version: Optional[int] = None,
) -> Entity:
    """
    Merge a partial update into ``entity`` and return the validated result.

    The returned record has ``version`` incremented and ``last_update``
    refreshed unless the caller supplied one.
    """
    unknown = set(partial) - PATCHABLE_FIELDS
    if unknown:
        raise validation_error(
            f"Cannot update fields: {', '.join(sorted(unknown))}",
            details={"entity_id": entity.id, "fields": sorted(unknown)},
        )

    if expected_version is not None and entity.version != expected_version:
        raise conflict(
            f"Robot {entity.id} was modified concurrently",
            details={
                "entity_id": entity.id,
                "expected_version": expected_version,
                "actual_version": entity.version,
            },
        )

    merged = entity.model_dump()
    merged.update(partial)
    if "last_update" not in partial:
        merged["last_update"] = utcnow()
    merged["version"] = entity.version + 1

    try:
        return Entity.model_validate(merged)
    except ValueError as e:
        raise validation_error(
            f"Update would produce an invalid robot record: {e}",
            details={"entity_id": entity.id},
        ) from e
