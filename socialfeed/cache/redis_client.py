"""
Redis client lifecycle.

The cache is optional: when Redis is disabled or unreachable at startup,
init_redis() returns None and every read goes straight to the database.
"""
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from socialfeed.config import Settings, settings

logger = logging.getLogger(__name__)

_redis: Optional[aioredis.Redis] = None


async def init_redis(cfg: Settings = settings) -> Optional[aioredis.Redis]:
    global _redis
    if not cfg.redis_enabled:
        logger.info("Redis cache disabled by configuration")
        return None

    client = aioredis.Redis(
        host=cfg.redis_host,
        port=cfg.redis_port,
        password=cfg.redis_password or None,
        db=cfg.redis_db,
        decode_responses=True,
        socket_timeout=cfg.redis_op_timeout,
        socket_connect_timeout=cfg.redis_op_timeout,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.warning(
            "Redis unreachable at %s:%s (%s); serving reads from the database",
            cfg.redis_host, cfg.redis_port, exc,
        )
        await client.aclose()
        return None

    _redis = client
    logger.info("Redis connected at %s:%s", cfg.redis_host, cfg.redis_port)
    return client


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
    _redis = None
