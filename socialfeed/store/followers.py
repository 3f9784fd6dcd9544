"""
Social graph edges: (user_id, follower_id) means follower_id follows user_id.

Edges are created and deleted, never updated. Concurrent duplicate follows
are settled by the primary key and surface as AlreadyExistsError.
"""
import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from socialfeed.errors import (
    AlreadyExistsError,
    ConflictError,
    CouldNotCreateRecordError,
    NotFoundError,
)
from socialfeed.models import FollowerRow, utcnow
from socialfeed.schemas import Follower
from socialfeed.store.base import (
    BaseStore,
    BatchResult,
    batch_operation,
    classify_integrity_error,
    index_by_key,
    run_batch,
    store_operation,
)

logger = logging.getLogger(__name__)


class FollowerStore(BaseStore):
    async def _insert(self, edge: Follower) -> dict[str, Any]:
        # TiDB accepts but does not enforce CHECK constraints.
        if edge.user_id == edge.follower_id:
            raise ConflictError("a user cannot follow themselves")

        row = FollowerRow(
            user_id=edge.user_id,
            follower_id=edge.follower_id,
            created_at=edge.created_at or utcnow(),
        )
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add(row)
        except IntegrityError as exc:
            violation = classify_integrity_error(exc)
            if violation.kind == "unique":
                raise AlreadyExistsError(
                    f"user {edge.follower_id} already follows user {edge.user_id}"
                ) from exc
            if violation.kind == "check":
                raise ConflictError("a user cannot follow themselves") from exc
            if violation.kind == "foreign_key":
                raise NotFoundError(
                    f"user {edge.user_id} or {edge.follower_id} does not exist"
                ) from exc
            raise CouldNotCreateRecordError(
                f"could not create follower edge: {violation.detail}"
            ) from exc
        return {"created_at": row.created_at}

    @store_operation
    async def follow(self, follower_id: int, user_id: int) -> Follower:
        edge = Follower(user_id=user_id, follower_id=follower_id)
        edge.created_at = (await self._insert(edge))["created_at"]
        logger.info("User %s followed user %s", follower_id, user_id)
        return edge

    @store_operation
    async def unfollow(self, follower_id: int, user_id: int) -> None:
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(
                    delete(FollowerRow).where(
                        FollowerRow.user_id == user_id,
                        FollowerRow.follower_id == follower_id,
                    )
                )
                if result.rowcount == 0:
                    raise NotFoundError(
                        f"user {follower_id} does not follow user {user_id}"
                    )
        logger.info("User %s unfollowed user %s", follower_id, user_id)

    @store_operation
    async def list_followers(self, user_id: int) -> list[Follower]:
        async with self._sessions() as session:
            rows = await session.execute(
                select(FollowerRow)
                .where(FollowerRow.user_id == user_id)
                .order_by(FollowerRow.created_at)
            )
            return [
                Follower(
                    user_id=row.user_id,
                    follower_id=row.follower_id,
                    created_at=row.created_at,
                )
                for row in rows.scalars().all()
            ]

    @batch_operation
    async def create_batch(self, followers: list[Follower]) -> BatchResult:
        # Keyed by the edge itself, so a repeated pair is skipped up front
        # instead of racing another task for the same row.
        index, skipped = index_by_key(followers, lambda _, f: (f.user_id, f.follower_id))

        def apply(edge: Follower, generated: dict[str, Any]) -> None:
            edge.created_at = generated["created_at"]

        result = await run_batch(
            "followers", index, self._insert, apply, self.settings.batch_concurrency,
            item_timeout=self.settings.query_timeout_seconds,
        )
        result.skipped.extend(skipped)
        return result
