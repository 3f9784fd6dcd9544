"""
Post and comment use cases.

Mutations run: authorize → store write (version compare-and-swap for post
updates) → cache invalidation (done by the cache-aside stores).
"""
import logging
from typing import Optional, Sequence

from opentelemetry import trace

from socialfeed.cache.aside import CachedCommentStore, CachedPostStore
from socialfeed.config import Settings, settings as default_settings
from socialfeed.errors import DirtyRecordError
from socialfeed.schemas import Comment, Post, User
from socialfeed.services.authz import check_comment_mutation, check_post_mutation
from socialfeed.store import RoleStore
from socialfeed.telemetry import DIRTY_WRITES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class PostService:
    def __init__(
        self,
        posts: CachedPostStore,
        comments: CachedCommentStore,
        roles: RoleStore,
        cfg: Settings = default_settings,
    ) -> None:
        self.posts = posts
        self.comments = comments
        self.roles = roles
        self.settings = cfg

    async def get_post(self, post_id: int) -> Post:
        return await self.posts.get_by_id(post_id)

    async def get_post_with_comments(self, post_id: int) -> Post:
        with tracer.start_as_current_span("posts.get_with_comments") as span:
            span.set_attribute("post.id", post_id)
            post = await self.posts.get_by_id(post_id)
            post.comments = await self.comments.get_by_post_id(post_id)
            span.set_attribute("post.comments", len(post.comments))
            return post

    async def create_post(
        self, author: User, title: str, content: str, tags: Sequence[str] = ()
    ) -> Post:
        post = Post(title=title, content=content, tags=list(tags), user_id=author.id)
        return await self.posts.create(post)

    async def update_post(
        self,
        actor: User,
        post_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        version: Optional[int] = None,
    ) -> Post:
        """
        Change title and/or content. `version` is the version the caller last
        read; when omitted the version read here is used.
        """
        with tracer.start_as_current_span("posts.update") as span:
            span.set_attribute("post.id", post_id)
            span.set_attribute("actor.id", actor.id)

            post = await self.posts.get_by_id(post_id)
            await check_post_mutation(self.roles, actor, post, self.settings.post_update_role)

            if version is not None:
                post.version = version
            if title is not None:
                post.title = title
            if content is not None:
                post.content = content

            try:
                return await self.posts.update(post)
            except DirtyRecordError:
                DIRTY_WRITES_TOTAL.inc()
                span.set_attribute("post.dirty_write", True)
                logger.info("Rejected stale update of post %s at version %s", post_id, post.version)
                raise

    async def delete_post(self, actor: User, post_id: int) -> None:
        with tracer.start_as_current_span("posts.delete") as span:
            span.set_attribute("post.id", post_id)
            post = await self.posts.get_by_id(post_id)
            await check_post_mutation(self.roles, actor, post, self.settings.post_delete_role)
            await self.posts.delete(post_id)

    async def add_comment(self, author: User, post_id: int, content: str) -> Comment:
        await self.posts.get_by_id(post_id)
        comment = await self.comments.create(
            Comment(post_id=post_id, user_id=author.id, content=content)
        )
        comment.username = author.username
        return comment

    async def delete_comment(self, actor: User, comment_id: int) -> Comment:
        comment = await self.comments.get_by_id(comment_id)
        await check_comment_mutation(self.roles, actor, comment, self.settings.post_delete_role)
        return await self.comments.delete(comment_id)
