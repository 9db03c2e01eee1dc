"""Role assignment rows (users_roles)."""

from sqlalchemy import delete, exists, select

from userdir.db.models import User, UserRole
from userdir.repositories.base import Repository


class UserRoleRepository(Repository):
    async def create_all(self, assignments: list[UserRole]) -> list[UserRole]:
        if not assignments:
            return []
        self.db.add_all(assignments)
        await self._commit("creating role assignments")
        return assignments

    async def find_by_user_id(self, user_id: int) -> list[UserRole]:
        result = await self._execute(
            select(UserRole).where(UserRole.user_id == user_id),
            f"reading role assignments of user {user_id}",
        )
        return list(result.scalars().all())

    async def delete_by_user_id(self, user_id: int) -> int:
        """Delete every assignment of a user. Returns how many rows went away."""
        result = await self._execute(
            delete(UserRole).where(UserRole.user_id == user_id),
            f"deleting roles of user with id {user_id}",
        )
        await self._commit(f"deleting roles of user with id {user_id}")
        return result.rowcount or 0

    async def find_orphan_user_ids(self) -> list[int]:
        """User ids that still have assignments but no user row."""
        result = await self._execute(
            select(UserRole.user_id)
            .where(~exists().where(User.id == UserRole.user_id))
            .distinct()
            .order_by(UserRole.user_id),
            "finding orphaned role assignments",
        )
        return list(result.scalars().all())
