"""
Mutation authorization: owners may always change their own content,
anyone else needs a role at least as high as the one the action requires.
"""
import logging

from socialfeed.errors import ForbiddenError, InternalError, StoreError
from socialfeed.schemas import Comment, Post, User
from socialfeed.store import RoleStore

logger = logging.getLogger(__name__)


def can_mutate(actor_id: int, owner_id: int, required_level: int, actor_level: int) -> bool:
    if actor_id == owner_id:
        return True
    return actor_level >= required_level


async def check_mutation(
    roles: RoleStore, actor: User, owner_id: int, required_role: str, subject: str
) -> None:
    if actor.id == owner_id:
        return

    # Role levels are read on every check so a changed hierarchy applies at once.
    try:
        required = await roles.get_by_name(required_role)
    except StoreError as exc:
        logger.error("Role lookup for '%s' failed: %s", required_role, exc)
        raise InternalError(f"could not resolve role '{required_role}'") from exc

    if not can_mutate(actor.id, owner_id, required.level, actor.role.level):
        logger.info(
            "User %s (role=%s) denied on %s; requires %s",
            actor.id, actor.role.name, subject, required.name,
        )
        raise ForbiddenError(f"requires role '{required.name}' or ownership")


async def check_post_mutation(
    roles: RoleStore, actor: User, post: Post, required_role: str
) -> None:
    """Raise ForbiddenError unless `actor` may mutate `post`."""
    await check_mutation(roles, actor, post.user_id, required_role, f"post {post.id}")


async def check_comment_mutation(
    roles: RoleStore, actor: User, comment: Comment, required_role: str
) -> None:
    await check_mutation(roles, actor, comment.user_id, required_role, f"comment {comment.id}")
