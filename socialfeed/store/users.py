"""
User persistence, invitations and activation.

  • Passwords are bcrypt-hashed before they reach the database.
  • create_and_invite, activate and delete each run in one transaction:
    either every step is visible or none is.
  • Invitations store only the SHA-256 digest of the token.
  • Point lookups only return active users.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from socialfeed.errors import (
    CouldNotCreateRecordError,
    DuplicateEmailError,
    DuplicateUsernameError,
    NotFoundError,
)
from socialfeed.models import RoleRow, UserInvitationRow, UserRow, utcnow
from socialfeed.schemas import Role, User
from socialfeed.security import hash_password, hash_token
from socialfeed.store.base import (
    BaseStore,
    BatchResult,
    batch_operation,
    classify_integrity_error,
    index_by_key,
    run_batch,
    store_operation,
)
from socialfeed.store.roles import normalise_role_name

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "user"


def normalise_email(email: str) -> str:
    return email.strip().lower()


def _to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        is_active=row.is_active,
        role_id=row.role_id,
        role=Role.model_validate(row.role),
        created_at=row.created_at,
        updated_at=row.updated_at,
        password_hash=row.password_hash,
    )


def _translate_write_error(exc: IntegrityError, action: str) -> Exception:
    violation = classify_integrity_error(exc)
    if violation.kind == "unique":
        if violation.involves("email"):
            return DuplicateEmailError("email already exists")
        if violation.involves("username"):
            return DuplicateUsernameError("username already exists")
    return CouldNotCreateRecordError(f"could not {action} user: {violation.detail}")


class UserStore(BaseStore):
    async def _role(self, session: AsyncSession, name: str) -> RoleRow:
        role_name = normalise_role_name(name) or DEFAULT_ROLE
        row = (
            await session.execute(select(RoleRow).where(RoleRow.name == role_name))
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"role '{role_name}' not found")
        return row

    async def _hash(self, password: str) -> str:
        # bcrypt is CPU-bound; keep it off the event loop.
        return await asyncio.to_thread(hash_password, password, self.settings.bcrypt_rounds)

    async def _add_user(
        self, session: AsyncSession, user: User, password_hash: str, role: RoleRow
    ) -> UserRow:
        now = utcnow()
        row = UserRow(
            username=user.username.strip(),
            email=normalise_email(user.email),
            password_hash=password_hash,
            is_active=user.is_active,
            role_id=role.id,
            created_at=user.created_at or now,
            updated_at=now,
        )
        session.add(row)
        await session.flush()
        return row

    @staticmethod
    def _apply(user: User, row: UserRow, role: RoleRow) -> None:
        user.id = row.id
        user.username = row.username
        user.email = row.email
        user.role_id = role.id
        user.role = Role.model_validate(role)
        user.created_at = row.created_at
        user.updated_at = row.updated_at
        user.password_hash = row.password_hash

    async def _create(
        self, user: User, password: str, invitation: Optional[tuple[str, timedelta]] = None
    ) -> User:
        password_hash = await self._hash(password)
        try:
            async with self._sessions() as session:
                async with session.begin():
                    role = await self._role(session, user.role.name)
                    row = await self._add_user(session, user, password_hash, role)
                    if invitation is not None:
                        token, expires_in = invitation
                        session.add(
                            UserInvitationRow(
                                token_hash=hash_token(token),
                                user_id=row.id,
                                expire_at=utcnow() + expires_in,
                            )
                        )
                        await session.flush()
        except IntegrityError as exc:
            raise _translate_write_error(exc, "create") from exc
        self._apply(user, row, role)
        return user

    @store_operation
    async def create(self, user: User, password: str) -> User:
        await self._create(user, password)
        logger.info("Created user %s (id=%s)", user.username, user.id)
        return user

    @store_operation
    async def create_and_invite(
        self, user: User, password: str, token: str, expires_in: timedelta
    ) -> User:
        """Create an inactive user and its invitation atomically."""
        user.is_active = False
        await self._create(user, password, (token, expires_in))
        logger.info("Invited user %s (id=%s)", user.username, user.id)
        return user

    async def _get_active(self, *criteria) -> User:
        async with self._sessions() as session:
            row = (
                await session.execute(
                    select(UserRow).where(UserRow.is_active.is_(True), *criteria)
                )
            ).scalar_one_or_none()
        if row is None:
            raise NotFoundError("user not found")
        return _to_user(row)

    @store_operation
    async def get_by_id(self, user_id: int) -> User:
        return await self._get_active(UserRow.id == user_id)

    @store_operation
    async def get_by_email(self, email: str) -> User:
        return await self._get_active(UserRow.email == normalise_email(email))

    @store_operation
    async def update(self, user: User) -> User:
        """Full replace of email, username, active flag and role."""
        now = utcnow()
        try:
            async with self._sessions() as session:
                async with session.begin():
                    role = await self._role(session, user.role.name)
                    result = await session.execute(
                        update(UserRow)
                        .where(UserRow.id == user.id)
                        .values(
                            email=normalise_email(user.email),
                            username=user.username.strip(),
                            is_active=user.is_active,
                            role_id=role.id,
                            updated_at=now,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        raise NotFoundError(f"user {user.id} not found")
        except IntegrityError as exc:
            raise _translate_write_error(exc, "update") from exc

        user.email = normalise_email(user.email)
        user.username = user.username.strip()
        user.role_id = role.id
        user.role = Role.model_validate(role)
        user.updated_at = now
        logger.info("Updated user %s", user.id)
        return user

    @store_operation
    async def delete(self, user_id: int) -> None:
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(
                    delete(UserInvitationRow).where(UserInvitationRow.user_id == user_id)
                )
                result = await session.execute(
                    delete(UserRow)
                    .where(UserRow.id == user_id)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"user {user_id} not found")
        logger.info("Deleted user %s", user_id)

    @store_operation
    async def activate(self, token: str) -> User:
        """
        Exchange an unexpired invitation token for an active account.

        Unknown, expired and already-used tokens all raise NotFoundError.
        """
        now = utcnow()
        async with self._sessions() as session:
            async with session.begin():
                row = (
                    await session.execute(
                        select(UserRow)
                        .join(UserInvitationRow, UserInvitationRow.user_id == UserRow.id)
                        .where(
                            UserInvitationRow.token_hash == hash_token(token),
                            UserInvitationRow.expire_at > now,
                        )
                    )
                ).scalar_one_or_none()
                if row is None:
                    raise NotFoundError("invitation not found or expired")

                row.is_active = True
                row.updated_at = now
                await session.execute(
                    delete(UserInvitationRow).where(UserInvitationRow.user_id == row.id)
                )
                await session.flush()
                user = _to_user(row)
        logger.info("Activated user %s", user.id)
        return user

    @batch_operation
    async def create_batch(self, users: list[tuple[User, str]]) -> BatchResult:
        """
        Seeding path. Takes (user, plaintext password) pairs; rows are keyed
        by normalised email, so a repeated email in the input is skipped.
        """
        index, skipped = index_by_key(users, lambda _, pair: normalise_email(pair[0].email))

        async def insert(pair: tuple[User, str]) -> None:
            user, password = pair
            await self._create(user, password)

        result = await run_batch(
            "users", index, insert, None, self.settings.batch_concurrency,
            item_timeout=self.settings.query_timeout_seconds,
        )
        result.skipped.extend(skipped)
        return result
