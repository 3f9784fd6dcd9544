"""Comment cache: single comments plus the per-post comment collection."""
import logging
from typing import Optional

import redis.asyncio as aioredis
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from socialfeed.cache.store import CacheStore
from socialfeed.schemas import Comment

logger = logging.getLogger(__name__)

_COMMENT_LIST = TypeAdapter(list[Comment])


class CommentCacheStore(CacheStore[Comment]):
    def __init__(
        self,
        rdb: aioredis.Redis,
        ttl: int,
        refresh_timeout: float = 1.0,
        op_timeout: float = 0.5,
    ) -> None:
        super().__init__(rdb, Comment, "comment", ttl, refresh_timeout, op_timeout)

    @staticmethod
    def post_key(post_id: int) -> str:
        return f"post-{post_id}-comments"

    async def get_by_post_id(self, post_id: int) -> Optional[list[Comment]]:
        """Cached comments of a post, or None on a miss. An empty list is a hit."""
        key = self.post_key(post_id)
        raw = await self._command(self._rdb.get(key))
        if raw is None:
            return None
        try:
            comments = _COMMENT_LIST.validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning("Evicting undecodable cache entry %s: %s", key, exc)
            await self._command(self._rdb.delete(key))
            return None
        self.refresh(key)
        return comments

    async def set_by_post_id(self, post_id: int, comments: list[Comment]) -> None:
        await self._command(
            self._rdb.set(self.post_key(post_id), _COMMENT_LIST.dump_json(comments), ex=self.ttl)
        )

    async def delete_by_post_id(self, post_id: int) -> None:
        await self._command(self._rdb.delete(self.post_key(post_id)))

    async def delete_comment(self, post_id: int, comment_id: int) -> None:
        """Drop one comment from the cached collection and its own entry."""
        await self.delete(comment_id)
        comments = await self.get_by_post_id(post_id)
        if comments is None:
            return
        remaining = [c for c in comments if c.id != comment_id]
        if len(remaining) != len(comments):
            await self.set_by_post_id(post_id, remaining)
