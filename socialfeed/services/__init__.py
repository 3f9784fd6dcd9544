"""Use-case layer: the services a transport layer calls into."""
from dataclasses import dataclass
from typing import Optional

from socialfeed.cache import CacheStorage
from socialfeed.cache.aside import wrap_storage
from socialfeed.config import Settings, settings as default_settings
from socialfeed.services.feed import FeedService
from socialfeed.services.posts import PostService
from socialfeed.services.users import UserService
from socialfeed.store import Storage


@dataclass
class Services:
    users: UserService
    posts: PostService
    feed: FeedService


def build_services(
    storage: Storage,
    cache: Optional[CacheStorage] = None,
    cfg: Settings = default_settings,
) -> Services:
    users, posts, comments = wrap_storage(storage, cache)
    return Services(
        users=UserService(users, storage.followers, cfg),
        posts=PostService(posts, comments, storage.roles, cfg),
        feed=FeedService(posts),
    )


__all__ = ["FeedService", "PostService", "Services", "UserService", "build_services"]
