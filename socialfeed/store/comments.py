"""Comment persistence. Reads attach the author's username."""
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from socialfeed.errors import CouldNotCreateRecordError, NotFoundError
from socialfeed.models import CommentRow, utcnow
from socialfeed.schemas import Comment
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

logger = logging.getLogger(__name__)


def _to_comment(row: CommentRow) -> Comment:
    return Comment(
        id=row.id,
        post_id=row.post_id,
        user_id=row.user_id,
        content=row.content,
        username=row.author.username if row.author else None,
        created_at=row.created_at,
    )


class CommentStore(BaseStore):
    async def _insert(self, comment: Comment) -> dict[str, Any]:
        row = CommentRow(
            post_id=comment.post_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at or utcnow(),
        )
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    generated = {"id": row.id, "created_at": row.created_at}
        except IntegrityError as exc:
            violation = classify_integrity_error(exc)
            if violation.kind == "foreign_key":
                raise NotFoundError(
                    f"post {comment.post_id} or user {comment.user_id} does not exist"
                ) from exc
            raise CouldNotCreateRecordError(
                f"could not create comment: {violation.detail}"
            ) from exc
        return generated

    @store_operation
    async def create(self, comment: Comment) -> Comment:
        for name, value in (await self._insert(comment)).items():
            setattr(comment, name, value)
        logger.info("Created comment %s on post %s", comment.id, comment.post_id)
        return comment

    @store_operation
    async def get_by_id(self, comment_id: int) -> Comment:
        async with self._sessions() as session:
            row = await session.get(CommentRow, comment_id)
            if row is None:
                raise NotFoundError(f"comment {comment_id} not found")
            return _to_comment(row)

    @store_operation
    async def get_by_post_id(self, post_id: int) -> list[Comment]:
        """Newest first; an empty list when the post has no comments."""
        async with self._sessions() as session:
            rows = await session.execute(
                select(CommentRow)
                .where(CommentRow.post_id == post_id)
                .order_by(CommentRow.created_at.desc(), CommentRow.id.desc())
            )
            return [_to_comment(row) for row in rows.scalars().all()]

    @store_operation
    async def delete(self, comment_id: int) -> Comment:
        """Remove a comment and return it (callers need its post id)."""
        async with self._sessions() as session:
            async with session.begin():
                row = await session.get(CommentRow, comment_id)
                if row is None:
                    raise NotFoundError(f"comment {comment_id} not found")
                comment = _to_comment(row)
                await session.delete(row)
        logger.info("Deleted comment %s from post %s", comment_id, comment.post_id)
        return comment

    @batch_operation
    async def create_batch(self, comments: list[Comment]) -> BatchResult:
        index, skipped = index_by_key(
            comments,
            lambda i, c: content_key(i, c.post_id, c.user_id, c.content),
        )

        def apply(comment: Comment, generated: dict[str, Any]) -> None:
            comment.id = generated["id"]
            comment.created_at = generated["created_at"]

        result = await run_batch(
            "comments", index, self._insert, apply, self.settings.batch_concurrency,
            item_timeout=self.settings.query_timeout_seconds,
        )
        result.skipped.extend(skipped)
        return result
