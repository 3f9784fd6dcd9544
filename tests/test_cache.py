"""Tests for the Redis cache stores and the cache-aside wrappers."""

import asyncio
import time
import unittest

from socialfeed.cache import CacheStore, CommentCacheStore, new_cache_storage
from socialfeed.cache.redis_client import init_redis
from socialfeed.config import Settings
from socialfeed.schemas import Comment, Post, User
from socialfeed.services import build_services
from tests.support import BrokenRedis, FakeRedis, HangingRedis, StoreTestCase


class SlowExpireRedis(FakeRedis):
    async def expire(self, key: str, seconds: int) -> bool:
        await asyncio.sleep(5)
        return await super().expire(key, seconds)


class TestCacheStore(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.rdb = FakeRedis()
        self.cache = CacheStore(self.rdb, User, "user", ttl=60, refresh_timeout=0.5)

    async def test_set_then_get(self) -> None:
        user = User(id=3, username="alice", email="alice@example.com", is_active=True)
        await self.cache.set(user)
        self.assertIn("user-3", self.rdb.data)
        self.assertEqual(self.rdb.ttls["user-3"], 60)

        cached = await self.cache.get(3)
        self.assertEqual(cached, user)

    async def test_miss(self) -> None:
        self.assertIsNone(await self.cache.get(404))

    async def test_hit_slides_ttl(self) -> None:
        await self.cache.set(User(id=3, username="a", email="a@example.com"))
        await self.cache.get(3)
        await self.cache.drain()
        self.assertEqual(self.rdb.expire_calls, [("user-3", 60)])

    async def test_slow_refresh_is_abandoned(self) -> None:
        rdb = SlowExpireRedis()
        cache = CacheStore(rdb, User, "user", ttl=60, refresh_timeout=0.05)
        await cache.set(User(id=1, username="a", email="a@example.com"))
        self.assertIsNotNone(await cache.get(1))
        await asyncio.wait_for(cache.drain(), timeout=2)

    async def test_undecodable_entry_is_evicted_and_missed(self) -> None:
        self.rdb.data["user-9"] = "{not json"
        self.assertIsNone(await self.cache.get(9))
        self.assertNotIn("user-9", self.rdb.data)

    async def test_delete(self) -> None:
        await self.cache.set(User(id=3, username="a", email="a@example.com"))
        await self.cache.delete(3)
        self.assertIsNone(await self.cache.get(3))


class TestCommentCacheStore(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.rdb = FakeRedis()
        self.cache = CommentCacheStore(self.rdb, ttl=30)
        self.comments = [
            Comment(id=2, post_id=1, user_id=5, content="second", username="bob"),
            Comment(id=1, post_id=1, user_id=6, content="first", username="carol"),
        ]

    async def test_collection_round_trip(self) -> None:
        await self.cache.set_by_post_id(1, self.comments)
        self.assertIn("post-1-comments", self.rdb.data)
        self.assertEqual(await self.cache.get_by_post_id(1), self.comments)

    async def test_empty_collection_is_a_hit(self) -> None:
        await self.cache.set_by_post_id(1, [])
        self.assertEqual(await self.cache.get_by_post_id(1), [])
        self.assertIsNone(await self.cache.get_by_post_id(2))

    async def test_delete_comment_from_collection(self) -> None:
        await self.cache.set_by_post_id(1, self.comments)
        await self.cache.delete_comment(1, 2)
        remaining = await self.cache.get_by_post_id(1)
        self.assertEqual([c.id for c in remaining], [1])

    async def test_delete_collection(self) -> None:
        await self.cache.set_by_post_id(1, self.comments)
        await self.cache.delete_by_post_id(1)
        self.assertIsNone(await self.cache.get_by_post_id(1))


class TestCacheStorage(unittest.IsolatedAsyncioTestCase):
    async def test_no_client_means_no_cache(self) -> None:
        self.assertIsNone(new_cache_storage(None))

    async def test_disabled_redis_is_not_connected(self) -> None:
        self.assertIsNone(await init_redis(Settings(redis_enabled=False)))

    async def test_ttls_come_from_settings(self) -> None:
        cfg = Settings(redis_users_ttl=11, redis_posts_ttl=22, redis_comments_ttl=33)
        storage = new_cache_storage(FakeRedis(), cfg)
        self.assertEqual(
            (storage.users.ttl, storage.posts.ttl, storage.comments.ttl), (11, 22, 33)
        )

    def test_op_timeout_comes_from_settings(self) -> None:
        storage = new_cache_storage(FakeRedis(), Settings(redis_op_timeout=0.25))
        self.assertEqual(
            {storage.users.op_timeout, storage.posts.op_timeout, storage.comments.op_timeout},
            {0.25},
        )


class TestCacheAside(StoreTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self.rdb = FakeRedis()
        self.cache = new_cache_storage(self.rdb, self.settings)
        self.services = build_services(self.storage, self.cache, self.settings)
        self.alice = await self.make_user("alice")
        self.post = await self.make_post(self.alice, title="Cached")

    async def asyncTearDown(self) -> None:
        await self.cache.drain()
        await super().asyncTearDown()

    async def test_read_populates_then_serves_from_cache(self) -> None:
        key = f"post-{self.post.id}"
        await self.services.posts.get_post(self.post.id)
        self.assertIn(key, self.rdb.data)

        # Change the row behind the cache's back: the cached copy is served.
        await self.storage.posts.update(self.post.model_copy(update={"title": "Direct"}))
        self.assertEqual((await self.services.posts.get_post(self.post.id)).title, "Cached")

    async def test_update_invalidates_post(self) -> None:
        await self.services.posts.get_post(self.post.id)
        await self.services.posts.update_post(self.alice, self.post.id, title="New title")
        self.assertNotIn(f"post-{self.post.id}", self.rdb.data)

        fetched = await self.services.posts.get_post(self.post.id)
        self.assertEqual(fetched.title, "New title")
        self.assertEqual(fetched.version, 1)

    async def test_delete_drops_post_and_comment_collection(self) -> None:
        await self.services.posts.add_comment(self.alice, self.post.id, "hi")
        await self.services.posts.get_post_with_comments(self.post.id)
        self.assertIn(f"post-{self.post.id}-comments", self.rdb.data)

        await self.services.posts.delete_post(self.alice, self.post.id)
        self.assertNotIn(f"post-{self.post.id}", self.rdb.data)
        self.assertNotIn(f"post-{self.post.id}-comments", self.rdb.data)

    async def test_new_comment_invalidates_collection(self) -> None:
        first = await self.services.posts.get_post_with_comments(self.post.id)
        self.assertEqual(first.comments, [])

        await self.services.posts.add_comment(self.alice, self.post.id, "fresh")
        self.assertNotIn(f"post-{self.post.id}-comments", self.rdb.data)

        second = await self.services.posts.get_post_with_comments(self.post.id)
        self.assertEqual([c.content for c in second.comments], ["fresh"])

    async def test_user_update_invalidates_user(self) -> None:
        await self.services.users.get_user(self.alice.id)
        self.assertIn(f"user-{self.alice.id}", self.rdb.data)

        self.alice.username = "alice_renamed"
        await self.services.users.update_user(self.alice)
        self.assertNotIn(f"user-{self.alice.id}", self.rdb.data)
        self.assertEqual(
            (await self.services.users.get_user(self.alice.id)).username, "alice_renamed"
        )

    async def test_cached_user_has_no_password_hash(self) -> None:
        await self.services.users.get_user(self.alice.id)
        self.assertNotIn("password_hash", self.rdb.data[f"user-{self.alice.id}"])


class TestBrokenRedis(StoreTestCase):
    async def test_everything_falls_back_to_the_database(self) -> None:
        cache = new_cache_storage(BrokenRedis(), self.settings)
        services = build_services(self.storage, cache, self.settings)
        alice = await self.make_user("alice")
        post = await self.make_post(alice)

        self.assertEqual((await services.users.get_user(alice.id)).id, alice.id)
        self.assertEqual((await services.posts.get_post(post.id)).id, post.id)

        updated = await services.posts.update_post(alice, post.id, content="still works")
        self.assertEqual(updated.version, 1)
        await services.posts.add_comment(alice, post.id, "ok")
        with_comments = await services.posts.get_post_with_comments(post.id)
        self.assertEqual(len(with_comments.comments), 1)
        await services.posts.delete_post(alice, post.id)


class TestHangingRedis(StoreTestCase):
    settings_overrides = {"redis_op_timeout": 0.05}

    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self.cache = new_cache_storage(HangingRedis(), self.settings)
        self.services = build_services(self.storage, self.cache, self.settings)
        self.alice = await self.make_user("alice")
        self.post = await self.make_post(self.alice, title="Slow cache")

    async def test_cache_commands_time_out(self) -> None:
        with self.assertRaises(asyncio.TimeoutError):
            await self.cache.posts.get(self.post.id)
        with self.assertRaises(asyncio.TimeoutError):
            await self.cache.comments.delete_by_post_id(self.post.id)

    async def test_reads_fall_back_to_the_database_in_time(self) -> None:
        started = time.monotonic()
        post = await self.services.posts.get_post(self.post.id)
        user = await self.services.users.get_user(self.alice.id)
        with_comments = await self.services.posts.get_post_with_comments(self.post.id)
        self.assertLess(time.monotonic() - started, 2.0)

        self.assertEqual(post.title, "Slow cache")
        self.assertEqual(user.id, self.alice.id)
        self.assertEqual(with_comments.comments, [])

    async def test_writes_are_not_held_up_by_invalidation(self) -> None:
        started = time.monotonic()
        updated = await self.services.posts.update_post(self.alice, self.post.id, title="New")
        await self.services.posts.add_comment(self.alice, self.post.id, "hi")
        await self.services.posts.delete_post(self.alice, self.post.id)
        self.assertLess(time.monotonic() - started, 2.0)
        self.assertEqual(updated.version, 1)
