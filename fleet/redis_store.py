"""
Redis-backed entity store.

Each robot is stored as a JSON string under ``robot:<id>`` and its id is
added to the ``robots`` set. Updates use WATCH/MULTI so a write that races
with another writer is retried against the fresh record instead of
overwriting it.
"""

import logging
import uuid
from typing import Any, List, Mapping, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from errors.exceptions import entity_store_unavailable, resource_not_found
from fleet.models import Entity, EntitySpec
from fleet.store import EntityStore, apply_partial, new_entity

logger = logging.getLogger(__name__)

INDEX_KEY = "robots"


class RedisEntityStore(EntityStore):
    """
    Redis implementation of EntityStore.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
        client: Redis async client instance (initialized via connect())
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.client = None

    async def connect(self) -> None:
        """Create the async client. Must be called before any other method."""
        self.client = redis.from_url(self.redis_url, decode_responses=True)

    async def disconnect(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    def _get_key(self, entity_id: str) -> str:
        return f"robot:{entity_id}"

    def _require_client(self):
        if not self.client:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self.client

    async def list(self) -> List[Entity]:
        client = self._require_client()
        try:
            ids = sorted(await client.smembers(INDEX_KEY))
            if not ids:
                return []
            payloads = await client.mget([self._get_key(i) for i in ids])
        except RedisConnectionError as e:
            raise entity_store_unavailable(details={"error": str(e)}) from e
        return [Entity.model_validate_json(p) for p in payloads if p is not None]

    async def get(self, entity_id: str) -> Entity:
        client = self._require_client()
        try:
            payload = await client.get(self._get_key(entity_id))
        except RedisConnectionError as e:
            raise entity_store_unavailable(details={"error": str(e)}) from e
        if payload is None:
            raise resource_not_found(
                f"Robot with ID {entity_id} not found",
                details={"entity_id": entity_id},
            )
        return Entity.model_validate_json(payload)

    async def update(
        self,
        entity_id: str,
        partial: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Entity:
        client = self._require_client()
        key = self._get_key(entity_id)
        try:
            async with client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(key)
                        payload = await pipe.get(key)
                        if payload is None:
                            raise resource_not_found(
                                f"Robot with ID {entity_id} not found",
                                details={"entity_id": entity_id},
                            )
                        updated = apply_partial(
                            Entity.model_validate_json(payload), partial, expected_version
                        )
                        pipe.multi()
                        pipe.set(key, updated.model_dump_json())
                        await pipe.execute()
                        return updated
                    except WatchError:
                        logger.debug(
                            f"Concurrent write on {key}, retrying",
                            extra={"extra_data": {"entity_id": entity_id}}
                        )
                        continue
        except RedisConnectionError as e:
            raise entity_store_unavailable(details={"error": str(e)}) from e

    async def create(self, spec: EntitySpec) -> Entity:
        return await self.insert(new_entity(uuid.uuid4().hex, spec))

    async def insert(self, entity: Entity) -> Entity:
        client = self._require_client()
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._get_key(entity.id), entity.model_dump_json())
                pipe.sadd(INDEX_KEY, entity.id)
                await pipe.execute()
        except RedisConnectionError as e:
            raise entity_store_unavailable(details={"error": str(e)}) from e
        return entity

    async def health_check(self) -> bool:
        if not self.client:
            return False
        try:
            return await self.client.ping() is True
        except Exception:
            return False
