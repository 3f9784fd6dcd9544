"""
Post persistence.

Updates are compare-and-swap on the version counter: the write only matches
`id = X AND version = <version the caller read>`, and bumps the version by one.
Zero matched rows means someone else wrote first → DirtyRecordError.
"""
import logging
from collections import defaultdict
from typing import Any, Sequence

from sqlalchemy import DateTime, Integer, delete, select, update
from sqlalchemy.exc import IntegrityError

from socialfeed.errors import CouldNotCreateRecordError, DirtyRecordError, NotFoundError
from socialfeed.models import PostRow, PostTagRow, utcnow
from socialfeed.schemas import FeedFilter, Pageable, Post, PostWithMetadata
from socialfeed.store.base import (
    BaseStore,
    BatchResult,
    batch_operation,
    classify_integrity_error,
    content_key,
    index_by_key,
    run_batch,
    store_operation,
)
from socialfeed.store.feed import build_feed_query

logger = logging.getLogger(__name__)


def _unique_tags(tags: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.add(tag)
            out.append(tag)
    return out


def _to_post(row: PostRow) -> Post:
    return Post(
        id=row.id,
        title=row.title,
        content=row.content,
        tags=[t.tag for t in row.tags],
        user_id=row.user_id,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class PostStore(BaseStore):
    def _new_row(self, post: Post) -> PostRow:
        now = utcnow()
        tags = _unique_tags(post.tags)
        post.tags = tags
        return PostRow(
            title=post.title,
            content=post.content,
            user_id=post.user_id,
            version=0,
            created_at=post.created_at or now,
            updated_at=post.updated_at or now,
            tags=[PostTagRow(position=i, tag=tag) for i, tag in enumerate(tags)],
        )

    async def _insert(self, post: Post) -> dict[str, Any]:
        row = self._new_row(post)
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    generated = {
                        "id": row.id,
                        "version": row.version,
                        "created_at": row.created_at,
                        "updated_at": row.updated_at,
                    }
        except IntegrityError as exc:
            violation = classify_integrity_error(exc)
            if violation.kind == "foreign_key":
                raise NotFoundError(f"user {post.user_id} does not exist") from exc
            raise CouldNotCreateRecordError(f"could not create post: {violation.detail}") from exc
        return generated

    @store_operation
    async def create(self, post: Post) -> Post:
        for name, value in (await self._insert(post)).items():
            setattr(post, name, value)
        logger.info("Created post %s by user %s", post.id, post.user_id)
        return post

    @store_operation
    async def get_by_id(self, post_id: int) -> Post:
        async with self._sessions() as session:
            row = await session.get(PostRow, post_id)
            if row is None:
                raise NotFoundError(f"post {post_id} not found")
            return _to_post(row)

    @store_operation
    async def update(self, post: Post) -> Post:
        """Write title/content if `post.version` is still current; bumps `post.version`."""
        now = utcnow()
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(
                    update(PostRow)
                    .where(PostRow.id == post.id, PostRow.version == post.version)
                    .values(
                        title=post.title,
                        content=post.content,
                        version=PostRow.version + 1,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise DirtyRecordError(
                        f"post {post.id} was modified since version {post.version}"
                    )
        post.version += 1
        post.updated_at = now
        logger.info("Updated post %s (version=%d)", post.id, post.version)
        return post

    @store_operation
    async def delete(self, post_id: int) -> None:
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(
                    delete(PostRow)
                    .where(PostRow.id == post_id)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"post {post_id} not found")
        logger.info("Deleted post %s", post_id)

    @store_operation
    async def get_user_feed(
        self, user_id: int, pageable: Pageable, feed_filter: FeedFilter
    ) -> list[PostWithMetadata]:
        query = build_feed_query(user_id, pageable, feed_filter)
        stmt = query.statement(
            id=Integer,
            user_id=Integer,
            version=Integer,
            comments_count=Integer,
            created_at=DateTime,
            updated_at=DateTime,
        )

        async with self._sessions() as session:
            rows = (await session.execute(stmt)).mappings().all()
            post_ids = [row["id"] for row in rows]

            tags: dict[int, list[str]] = defaultdict(list)
            if post_ids:
                tag_rows = await session.execute(
                    select(PostTagRow.post_id, PostTagRow.tag)
                    .where(PostTagRow.post_id.in_(post_ids))
                    .order_by(PostTagRow.post_id, PostTagRow.position)
                )
                for post_id, tag in tag_rows.all():
                    tags[post_id].append(tag)

        return [
            PostWithMetadata(
                id=row["id"],
                user_id=row["user_id"],
                title=row["title"],
                content=row["content"],
                tags=tags.get(row["id"], []),
                version=row["version"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                username=row["username"],
                comments_count=row["comments_count"] or 0,
            )
            for row in rows
        ]

    @batch_operation
    async def create_batch(self, posts: list[Post]) -> BatchResult:
        """Seeding path: best-effort concurrent inserts, ids written back by key."""
        index, skipped = index_by_key(
            posts,
            lambda i, p: content_key(i, p.user_id, p.title, p.content, "-".join(p.tags)),
        )

        def apply(post: Post, generated: dict[str, Any]) -> None:
            for name, value in generated.items():
                setattr(post, name, value)

        result = await run_batch(
            "posts", index, self._insert, apply, self.settings.batch_concurrency,
            item_timeout=self.settings.query_timeout_seconds,
        )
        result.skipped.extend(skipped)
        return result
