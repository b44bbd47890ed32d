"""
In-process entity store.

The default backend for development and tests. Records live in a dict
guarded by an asyncio lock; every read returns a deep copy so callers
cannot mutate stored state by accident.
"""

import asyncio
import logging
import random
import uuid
from typing import Any, Dict, List, Mapping, Optional

from errors.exceptions import resource_not_found
from fleet.models import Entity, EntitySpec
from fleet.store import EntityStore, apply_partial, new_entity

logger = logging.getLogger(__name__)


class InMemoryEntityStore(EntityStore):
    """Dict-backed EntityStore with optimistic version checks."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._entities: Dict[str, Entity] = {}
        self._lock = asyncio.Lock()
        self._rng = rng or random.Random()

    async def list(self) -> List[Entity]:
        async with self._lock:
            return [entity.model_copy(deep=True) for entity in self._entities.values()]

    async def get(self, entity_id: str) -> Entity:
        async with self._lock:
            return self._require(entity_id).model_copy(deep=True)

    async def update(
        self,
        entity_id: str,
        partial: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Entity:
        async with self._lock:
            updated = apply_partial(self._require(entity_id), partial, expected_version)
            self._entities[entity_id] = updated
            return updated.model_copy(deep=True)

    async def create(self, spec: EntitySpec) -> Entity:
        entity = new_entity(uuid.uuid4().hex, spec, self._rng)
        async with self._lock:
            self._entities[entity.id] = entity
        logger.info(
            f"Robot created: {entity.name}",
            extra={"extra_data": {"entity_id": entity.id, "zone": entity.assigned_zone}}
        )
        return entity.model_copy(deep=True)

    async def insert(self, entity: Entity) -> Entity:
        async with self._lock:
            self._entities[entity.id] = entity.model_copy(deep=True)
        return entity

    def _require(self, entity_id: str) -> Entity:
        entity = self._entities.get(entity_id)
        if entity is None:
            raise resource_not_found(
                f"Robot with ID {entity_id} not found",
                details={"entity_id": entity_id},
            )
        return entity
