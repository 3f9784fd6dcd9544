"""
Read-through entity cache on Redis.

Entities are stored as JSON strings under "{namespace}-{id}" with a TTL.
Every hit slides the TTL forward; the refresh runs in the background so a
slow Redis never delays the read that triggered it. Every other command is
bounded by `op_timeout` and raises asyncio.TimeoutError when Redis stalls.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")


class CacheStore(Generic[M]):
    def __init__(
        self,
        rdb: aioredis.Redis,
        model: type[M],
        namespace: str,
        ttl: int,
        refresh_timeout: float = 1.0,
        op_timeout: float = 0.5,
        id_of: Callable[[M], Any] = lambda obj: obj.id,
    ) -> None:
        self._rdb = rdb
        self._model = model
        self.namespace = namespace
        self.ttl = ttl
        self.refresh_timeout = refresh_timeout
        self.op_timeout = op_timeout
        self._id_of = id_of
        self._refreshes: set[asyncio.Task] = set()

    def key(self, entity_id: Any) -> str:
        return f"{self.namespace}-{entity_id}"

    async def _command(self, command: Awaitable[T]) -> T:
        return await asyncio.wait_for(command, timeout=self.op_timeout)

    async def get(self, entity_id: Any) -> Optional[M]:
        key = self.key(entity_id)
        raw = await self._command(self._rdb.get(key))
        if raw is None:
            return None
        try:
            obj = self._model.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning("Evicting undecodable cache entry %s: %s", key, exc)
            await self._command(self._rdb.delete(key))
            return None
        self.refresh(key)
        return obj

    async def set(self, obj: M) -> None:
        await self._command(
            self._rdb.set(self.key(self._id_of(obj)), obj.model_dump_json(), ex=self.ttl)
        )

    async def delete(self, entity_id: Any) -> None:
        await self._command(self._rdb.delete(self.key(entity_id)))

    # ── Sliding TTL ────────────────────────────────────────────────────────

    def refresh(self, key: str) -> None:
        """Push the key's expiry `ttl` seconds forward without waiting for it."""
        task = asyncio.create_task(self._expire(key))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    async def _expire(self, key: str) -> None:
        try:
            await asyncio.wait_for(self._rdb.expire(key, self.ttl), timeout=self.refresh_timeout)
        except asyncio.TimeoutError:
            logger.warning("TTL refresh of %s exceeded %.1fs", key, self.refresh_timeout)
        except (RedisError, OSError) as exc:
            logger.warning("TTL refresh of %s failed: %s", key, exc)

    async def drain(self) -> None:
        """Wait for in-flight TTL refreshes (shutdown and tests)."""
        if self._refreshes:
            await asyncio.gather(*self._refreshes, return_exceptions=True)
