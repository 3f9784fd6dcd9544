"""Shared fixtures: a throwaway SQLite database per test and an in-memory Redis double."""

import asyncio
import os
import tempfile
import unittest
from datetime import datetime
from typing import Optional

from redis.exceptions import ConnectionError as RedisConnectionError

from socialfeed.config import Settings
from socialfeed.database import build_engine, build_session_factory, init_db
from socialfeed.schemas import Post, Role, User
from socialfeed.store import new_storage


def make_settings(db_path: str, **overrides) -> Settings:
    values = dict(
        database_url=f"sqlite+aiosqlite:///{db_path}",
        redis_enabled=False,
        bcrypt_rounds=4,
        batch_concurrency=1,
        redis_refresh_timeout=0.5,
    )
    values.update(overrides)
    return Settings(**values)


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Creates the schema and seeds the default roles in a fresh database file."""

    settings_overrides: dict = {}

    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.settings = make_settings(
            os.path.join(self._tmp.name, "socialfeed.db"), **self.settings_overrides
        )
        self.engine = build_engine(self.settings)
        await init_db(self.engine)
        self.storage = new_storage(build_session_factory(self.engine), self.settings)

    async def asyncTearDown(self) -> None:
        await self.engine.dispose()
        self._tmp.cleanup()

    async def make_user(
        self, username: str, role: str = "user", active: bool = True
    ) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            is_active=active,
            role=Role(name=role),
        )
        return await self.storage.users.create(user, f"{username}-secret")

    async def make_post(
        self,
        author: User,
        title: str = "Hello",
        content: str = "First post",
        tags: Optional[list[str]] = None,
        created_at: Optional[datetime] = None,
    ) -> Post:
        post = Post(
            title=title,
            content=content,
            tags=tags or [],
            user_id=author.id,
            created_at=created_at,
        )
        return await self.storage.posts.create(post)


class FakeRedis:
    """The slice of redis.asyncio.Redis the cache uses, backed by dicts."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}
        self.expire_calls: list[tuple[str, int]] = []

    async def get(self, key: str):
        return self.data.get(key)

    async def set(self, key: str, value, ex: Optional[int] = None):
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def expire(self, key: str, seconds: int) -> bool:
        self.expire_calls.append((key, seconds))
        if key not in self.data:
            return False
        self.ttls[key] = seconds
        return True

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


class BrokenRedis:
    """Every command fails as if the server were unreachable."""

    async def _fail(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    get = set = delete = expire = ping = _fail

    async def aclose(self) -> None:
        return None


class HangingRedis(FakeRedis):
    """Accepts the connection but never answers reads or writes."""

    async def _hang(self, *args, **kwargs):
        await asyncio.sleep(30)

    get = set = delete = _hang
