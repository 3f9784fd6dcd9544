"""Tests for process wiring."""

import os
import tempfile
import unittest

from socialfeed.runtime import lifespan
from socialfeed.schemas import User
from tests.support import make_settings


class TestLifespan(unittest.IsolatedAsyncioTestCase):
    async def test_services_work_without_redis(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cfg = make_settings(os.path.join(tmp, "runtime.db"))
            async with lifespan(cfg) as services:
                user, token = await services.users.invite(
                    User(username="zed", email="zed@example.com"), "pw"
                )
                await services.users.activate(token)
                post = await services.posts.create_post(user, "Hi", "There", ["intro"])
                feed = await services.feed.get_user_feed(user.id)
                self.assertEqual([p.id for p in feed], [post.id])
