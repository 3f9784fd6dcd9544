"""
Process wiring for an embedding application (HTTP server, worker, CLI).

Startup sequence:
  1. Configure OTel tracing (optional; → Jaeger via OTLP)
  2. Create the engine and tables, seed reference roles
  3. Connect to Redis (missing Redis only disables the cache)
  4. Build stores, cache stores and services

Shutdown drains pending cache refreshes, closes Redis and disposes the pool.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from socialfeed.cache import new_cache_storage
from socialfeed.cache.redis_client import close_redis, init_redis
from socialfeed.config import Settings, settings as default_settings
from socialfeed.database import build_engine, build_session_factory, init_db
from socialfeed.services import Services, build_services
from socialfeed.store import new_storage
from socialfeed.telemetry import setup_tracing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(
    cfg: Settings = default_settings, tracing: bool = False
) -> AsyncIterator[Services]:
    """Open every connection the services need and close them on exit."""
    logger.info("Starting %s (env=%s)", cfg.service_name, cfg.environment)
    if tracing:
        setup_tracing(cfg)

    engine = build_engine(cfg)
    cache = None
    try:
        await init_db(engine)
        rdb = await init_redis(cfg)
        cache = new_cache_storage(rdb, cfg)
        storage = new_storage(build_session_factory(engine), cfg)

        logger.info("Store ready (cache %s)", "enabled" if cache else "disabled")
        yield build_services(storage, cache, cfg)
    finally:
        logger.info("Shutting down...")
        if cache is not None:
            await cache.drain()
        await close_redis()
        await engine.dispose()
