"""
Account lifecycle: invitation, activation, profile changes, the follow
graph and password checks.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from socialfeed.cache.aside import CachedUserStore
from socialfeed.config import Settings, settings as default_settings
from socialfeed.errors import ForbiddenError, NotFoundError
from socialfeed.schemas import Follower, User
from socialfeed.security import generate_token, hash_password, verify_password
from socialfeed.store import FollowerStore

logger = logging.getLogger(__name__)


class UserService:
    def __init__(
        self,
        users: CachedUserStore,
        followers: FollowerStore,
        cfg: Settings = default_settings,
    ) -> None:
        self.users = users
        self.followers = followers
        self.settings = cfg
        self._unknown_user_hash: Optional[str] = None

    async def invite(self, user: User, password: str) -> tuple[User, str]:
        """
        Register an inactive account. Returns the user and the plaintext
        invitation token; only its digest is stored, so this is the one
        chance to hand it to the invitee.
        """
        token = generate_token()
        expires_in = timedelta(hours=self.settings.invitation_expiry_hours)
        user = await self.users.create_and_invite(user, password, token, expires_in)
        return user, token

    async def activate(self, token: str) -> User:
        return await self.users.activate(token)

    async def get_user(self, user_id: int) -> User:
        return await self.users.get_by_id(user_id)

    async def update_user(self, user: User) -> User:
        return await self.users.update(user)

    async def delete_user(self, user_id: int) -> None:
        await self.users.delete(user_id)

    async def follow(self, follower: User, user_id: int) -> Follower:
        return await self.followers.follow(follower.id, user_id)

    async def unfollow(self, follower: User, user_id: int) -> None:
        await self.followers.unfollow(follower.id, user_id)

    async def list_followers(self, user_id: int) -> list[Follower]:
        return await self.followers.list_followers(user_id)

    def _reject_unknown(self, password: str) -> None:
        # Same bcrypt work as a known email with a wrong password.
        if self._unknown_user_hash is None:
            self._unknown_user_hash = hash_password(generate_token(), self.settings.bcrypt_rounds)
        verify_password(password, self._unknown_user_hash)

    async def authenticate(self, email: str, password: str) -> User:
        """Unknown, inactive and wrong-password logins all raise ForbiddenError."""
        try:
            user = await self.users.get_by_email(email)
        except NotFoundError:
            await asyncio.to_thread(self._reject_unknown, password)
            logger.info("Login rejected: no active account for the given email")
            raise ForbiddenError("invalid credentials") from None

        ok = await asyncio.to_thread(verify_password, password, user.password_hash or "")
        if not ok:
            logger.info("Login rejected for user %s: wrong password", user.id)
            raise ForbiddenError("invalid credentials")
        return user
