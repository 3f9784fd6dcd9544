"""
Cache-aside wrappers over the entity stores.

  Read  │ cache hit → return it
        │ miss or Redis error → store → best-effort populate
  Write │ store first, then delete the affected keys

Redis failures are logged and counted, never raised: the database stays the
source of truth and the cache only ever speeds reads up. Without a cache
(None) every call goes straight to the store.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, TypeVar

from redis.exceptions import RedisError

from socialfeed.cache import CacheStorage
from socialfeed.cache.comments import CommentCacheStore
from socialfeed.cache.store import CacheStore
from socialfeed.schemas import Comment, FeedFilter, Pageable, Post, PostWithMetadata, User
from socialfeed.store import CommentStore, PostStore, Storage, UserStore
from socialfeed.store.base import BatchResult
from socialfeed.telemetry import CACHE_REQUESTS_TOTAL

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


async def _read_through(
    entity: str,
    cached: Optional[Callable[[], Awaitable[Optional[T]]]],
    load: Callable[[], Awaitable[T]],
    populate: Optional[Callable[[T], Awaitable[None]]],
) -> T:
    if cached is None:
        return await load()

    try:
        value = await cached()
    except _CACHE_ERRORS as exc:
        CACHE_REQUESTS_TOTAL.labels(entity=entity, result="error").inc()
        logger.warning("Cache read for %s failed: %s", entity, exc)
        value = None
    else:
        result = "hit" if value is not None else "miss"
        CACHE_REQUESTS_TOTAL.labels(entity=entity, result=result).inc()
        logger.debug("Cache %s for %s", result, entity)
        if value is not None:
            return value

    value = await load()
    await _best_effort(f"populate {entity}", populate(value))
    return value


async def _best_effort(action: str, op: Awaitable[Any]) -> None:
    try:
        await op
    except _CACHE_ERRORS as exc:
        logger.warning("Cache %s failed: %s", action, exc)


class CachedUserStore:
    def __init__(self, store: UserStore, cache: Optional[CacheStore[User]] = None) -> None:
        self.store = store
        self.cache = cache

    async def _forget(self, user_id: int) -> None:
        if self.cache is not None:
            await _best_effort(f"invalidate user {user_id}", self.cache.delete(user_id))

    async def get_by_id(self, user_id: int) -> User:
        cache = self.cache
        return await _read_through(
            "user",
            (lambda: cache.get(user_id)) if cache is not None else None,
            lambda: self.store.get_by_id(user_id),
            cache.set if cache is not None else None,
        )

    async def get_by_email(self, email: str) -> User:
        return await self.store.get_by_email(email)

    async def create(self, user: User, password: str) -> User:
        return await self.store.create(user, password)

    async def create_and_invite(
        self, user: User, password: str, token: str, expires_in: timedelta
    ) -> User:
        return await self.store.create_and_invite(user, password, token, expires_in)

    async def update(self, user: User) -> User:
        user = await self.store.update(user)
        await self._forget(user.id)
        return user

    async def delete(self, user_id: int) -> None:
        await self.store.delete(user_id)
        await self._forget(user_id)

    async def activate(self, token: str) -> User:
        user = await self.store.activate(token)
        await self._forget(user.id)
        return user

    async def create_batch(self, users: list[tuple[User, str]]) -> BatchResult:
        return await self.store.create_batch(users)


class CachedPostStore:
    def __init__(
        self,
        store: PostStore,
        cache: Optional[CacheStore[Post]] = None,
        comments: Optional[CommentCacheStore] = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.comments = comments

    async def get_by_id(self, post_id: int) -> Post:
        cache = self.cache
        return await _read_through(
            "post",
            (lambda: cache.get(post_id)) if cache is not None else None,
            lambda: self.store.get_by_id(post_id),
            cache.set if cache is not None else None,
        )

    async def create(self, post: Post) -> Post:
        return await self.store.create(post)

    async def update(self, post: Post) -> Post:
        post = await self.store.update(post)
        if self.cache is not None:
            await _best_effort(f"invalidate post {post.id}", self.cache.delete(post.id))
        return post

    async def delete(self, post_id: int) -> None:
        await self.store.delete(post_id)
        if self.cache is not None:
            await _best_effort(f"invalidate post {post_id}", self.cache.delete(post_id))
        if self.comments is not None:
            await _best_effort(
                f"invalidate comments of post {post_id}",
                self.comments.delete_by_post_id(post_id),
            )

    async def get_user_feed(
        self, user_id: int, pageable: Pageable, feed_filter: FeedFilter
    ) -> list[PostWithMetadata]:
        return await self.store.get_user_feed(user_id, pageable, feed_filter)

    async def create_batch(self, posts: list[Post]) -> BatchResult:
        return await self.store.create_batch(posts)


class CachedCommentStore:
    def __init__(self, store: CommentStore, cache: Optional[CommentCacheStore] = None) -> None:
        self.store = store
        self.cache = cache

    async def get_by_id(self, comment_id: int) -> Comment:
        cache = self.cache
        return await _read_through(
            "comment",
            (lambda: cache.get(comment_id)) if cache is not None else None,
            lambda: self.store.get_by_id(comment_id),
            cache.set if cache is not None else None,
        )

    async def get_by_post_id(self, post_id: int) -> list[Comment]:
        cache = self.cache
        if cache is None:
            return await self.store.get_by_post_id(post_id)
        return await _read_through(
            "comments",
            lambda: cache.get_by_post_id(post_id),
            lambda: self.store.get_by_post_id(post_id),
            lambda comments: cache.set_by_post_id(post_id, comments),
        )

    async def create(self, comment: Comment) -> Comment:
        comment = await self.store.create(comment)
        if self.cache is not None:
            await _best_effort(
                f"invalidate comments of post {comment.post_id}",
                self.cache.delete_by_post_id(comment.post_id),
            )
        return comment

    async def delete(self, comment_id: int) -> Comment:
        comment = await self.store.delete(comment_id)
        if self.cache is not None:
            await _best_effort(f"invalidate comment {comment_id}", self.cache.delete(comment_id))
            await _best_effort(
                f"invalidate comments of post {comment.post_id}",
                self.cache.delete_by_post_id(comment.post_id),
            )
        return comment

    async def create_batch(self, comments: list[Comment]) -> BatchResult:
        return await self.store.create_batch(comments)


def wrap_storage(
    storage: Storage, cache: Optional[CacheStorage]
) -> tuple[CachedUserStore, CachedPostStore, CachedCommentStore]:
    if cache is None:
        return (
            CachedUserStore(storage.users),
            CachedPostStore(storage.posts),
            CachedCommentStore(storage.comments),
        )
    return (
        CachedUserStore(storage.users, cache.users),
        CachedPostStore(storage.posts, cache.posts, cache.comments),
        CachedCommentStore(storage.comments, cache.comments),
    )
