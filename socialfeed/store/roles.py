"""Role reference data, looked up by name."""
from sqlalchemy import select

from socialfeed.errors import NotFoundError
from socialfeed.models import RoleRow
from socialfeed.schemas import Role
from socialfeed.store.base import BaseStore, store_operation


def normalise_role_name(name: str) -> str:
    return (name or "").strip().lower()


class RoleStore(BaseStore):
    @store_operation
    async def get_by_name(self, name: str) -> Role:
        role_name = normalise_role_name(name)
        async with self._sessions() as session:
            row = (
                await session.execute(select(RoleRow).where(RoleRow.name == role_name))
            ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"role '{role_name}' not found")
        return Role.model_validate(row)
