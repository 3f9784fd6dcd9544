"""Tests for ownership / role-precedence authorization of post mutations."""

import unittest
from unittest.mock import AsyncMock, MagicMock

from socialfeed.errors import ForbiddenError, InternalError, NotFoundError
from socialfeed.schemas import Post, Role, User
from socialfeed.services.authz import can_mutate, check_post_mutation
from tests.support import StoreTestCase


def _user(user_id: int, role: str, level: int) -> User:
    return User(
        id=user_id,
        username=f"u{user_id}",
        email=f"u{user_id}@example.com",
        is_active=True,
        role=Role(name=role, level=level),
    )


class TestCanMutate(unittest.TestCase):
    def test_matrix(self) -> None:
        cases = [
            # actor, owner, required, actor level, allowed
            (1, 1, 3, 1, True),   # owner always passes
            (2, 1, 2, 1, False),  # plain user on someone else's post
            (2, 1, 2, 2, True),   # exactly the required level
            (2, 1, 2, 3, True),   # higher level
            (2, 1, 3, 2, False),  # moderator trying an admin action
        ]
        for actor, owner, required, level, allowed in cases:
            with self.subTest(actor=actor, owner=owner, required=required, level=level):
                self.assertEqual(can_mutate(actor, owner, required, level), allowed)


class TestCheckPostMutationUnit(unittest.IsolatedAsyncioTestCase):
    async def test_owner_skips_role_lookup(self) -> None:
        roles = MagicMock()
        roles.get_by_name = AsyncMock()
        post = Post(id=1, title="t", content="c", user_id=7)
        await check_post_mutation(roles, _user(7, "user", 1), post, "admin")
        roles.get_by_name.assert_not_called()

    async def test_lookup_failure_is_internal_error(self) -> None:
        roles = MagicMock()
        roles.get_by_name = AsyncMock(side_effect=NotFoundError("role 'ghost' not found"))
        post = Post(id=1, title="t", content="c", user_id=7)
        with self.assertRaises(InternalError):
            await check_post_mutation(roles, _user(8, "admin", 3), post, "ghost")


class TestCheckPostMutationRoles(StoreTestCase):
    """Against the seeded role table: user=1, moderator=2, admin=3."""

    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self.post = Post(id=1, title="t", content="c", user_id=100)

    async def test_moderator_may_update_but_not_delete(self) -> None:
        moderator = _user(2, "moderator", 2)
        await check_post_mutation(self.storage.roles, moderator, self.post, "moderator")
        with self.assertRaises(ForbiddenError):
            await check_post_mutation(self.storage.roles, moderator, self.post, "admin")

    async def test_admin_may_update_and_delete(self) -> None:
        admin = _user(3, "admin", 3)
        await check_post_mutation(self.storage.roles, admin, self.post, "moderator")
        await check_post_mutation(self.storage.roles, admin, self.post, "admin")

    async def test_plain_user_is_forbidden(self) -> None:
        with self.assertRaises(ForbiddenError):
            await check_post_mutation(
                self.storage.roles, _user(4, "user", 1), self.post, "moderator"
            )

    async def test_unknown_required_role_is_internal_error(self) -> None:
        with self.assertRaises(InternalError):
            await check_post_mutation(
                self.storage.roles, _user(3, "admin", 3), self.post, "superuser"
            )
