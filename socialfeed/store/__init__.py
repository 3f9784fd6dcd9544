"""Entity stores backed by the relational database."""
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from socialfeed.config import Settings, settings as default_settings
from socialfeed.store.base import BatchResult
from socialfeed.store.comments import CommentStore
from socialfeed.store.followers import FollowerStore
from socialfeed.store.posts import PostStore
from socialfeed.store.query import QueryBuilder
from socialfeed.store.roles import RoleStore
from socialfeed.store.users import UserStore


@dataclass
class Storage:
    users: UserStore
    roles: RoleStore
    posts: PostStore
    comments: CommentStore
    followers: FollowerStore


def new_storage(
    session_factory: async_sessionmaker[AsyncSession],
    cfg: Settings = default_settings,
) -> Storage:
    return Storage(
        users=UserStore(session_factory, cfg),
        roles=RoleStore(session_factory, cfg),
        posts=PostStore(session_factory, cfg),
        comments=CommentStore(session_factory, cfg),
        followers=FollowerStore(session_factory, cfg),
    )


__all__ = [
    "BatchResult",
    "CommentStore",
    "FollowerStore",
    "PostStore",
    "QueryBuilder",
    "RoleStore",
    "Storage",
    "UserStore",
    "new_storage",
]
