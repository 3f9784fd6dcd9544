"""Redis cache stores and the cache-aside wrappers over the entity stores."""
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis

from socialfeed.cache.comments import CommentCacheStore
from socialfeed.cache.store import CacheStore
from socialfeed.config import Settings, settings as default_settings
from socialfeed.schemas import Post, User


@dataclass
class CacheStorage:
    users: CacheStore[User]
    posts: CacheStore[Post]
    comments: CommentCacheStore

    async def drain(self) -> None:
        for store in (self.users, self.posts, self.comments):
            await store.drain()


def new_cache_storage(
    rdb: Optional[aioredis.Redis], cfg: Settings = default_settings
) -> Optional[CacheStorage]:
    """None when Redis is not available; callers then read straight from the database."""
    if rdb is None:
        return None
    return CacheStorage(
        users=CacheStore(
            rdb, User, "user", cfg.redis_users_ttl, cfg.redis_refresh_timeout, cfg.redis_op_timeout
        ),
        posts=CacheStore(
            rdb, Post, "post", cfg.redis_posts_ttl, cfg.redis_refresh_timeout, cfg.redis_op_timeout
        ),
        comments=CommentCacheStore(
            rdb, cfg.redis_comments_ttl, cfg.redis_refresh_timeout, cfg.redis_op_timeout
        ),
    )


__all__ = ["CacheStorage", "CacheStore", "CommentCacheStore", "new_cache_storage"]
