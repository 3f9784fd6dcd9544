"""Tests for the follow graph."""

from socialfeed.errors import AlreadyExistsError, ConflictError, NotFoundError
from tests.support import StoreTestCase


class TestFollowerStore(StoreTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self.alice = await self.make_user("alice")
        self.bob = await self.make_user("bob")

    async def test_follow_and_list(self) -> None:
        edge = await self.storage.followers.follow(self.bob.id, self.alice.id)
        self.assertEqual((edge.user_id, edge.follower_id), (self.alice.id, self.bob.id))
        self.assertIsNotNone(edge.created_at)

        followers = await self.storage.followers.list_followers(self.alice.id)
        self.assertEqual([f.follower_id for f in followers], [self.bob.id])
        self.assertEqual(await self.storage.followers.list_followers(self.bob.id), [])

    async def test_duplicate_follow(self) -> None:
        await self.storage.followers.follow(self.bob.id, self.alice.id)
        with self.assertRaises(AlreadyExistsError):
            await self.storage.followers.follow(self.bob.id, self.alice.id)

    async def test_self_follow(self) -> None:
        with self.assertRaises(ConflictError):
            await self.storage.followers.follow(self.alice.id, self.alice.id)

    async def test_follow_unknown_user(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.storage.followers.follow(self.bob.id, 9999)

    async def test_unfollow(self) -> None:
        await self.storage.followers.follow(self.bob.id, self.alice.id)
        await self.storage.followers.unfollow(self.bob.id, self.alice.id)
        self.assertEqual(await self.storage.followers.list_followers(self.alice.id), [])
        with self.assertRaises(NotFoundError):
            await self.storage.followers.unfollow(self.bob.id, self.alice.id)
