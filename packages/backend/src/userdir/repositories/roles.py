"""Role rows. Written only by seeding; read everywhere else."""

from typing import Iterable

from sqlalchemy import func, select

from userdir.auth.roles import RoleName
from userdir.db.models import Role, UserRole
from userdir.errors import NotFoundError
from userdir.repositories.base import Repository


class RoleRepository(Repository):
    async def count(self) -> int:
        result = await self._execute(select(func.count(Role.id)), "counting roles")
        return int(result.scalar_one())

    async def find_all(self) -> list[Role]:
        result = await self._execute(select(Role).order_by(Role.id), "listing roles")
        return list(result.scalars().all())

    async def find_by_value(self, value: RoleName) -> Role:
        name = RoleName(value).value
        result = await self._execute(
            select(Role).where(Role.value == name), "reading role"
        )
        role = result.scalars().first()
        if role is None:
            raise NotFoundError(f"Role with value {name} not found")
        return role

    async def find_by_values(self, values: Iterable[RoleName]) -> list[Role]:
        """All roles with the given names. Raises NotFoundError if any is missing."""
        names = list(dict.fromkeys(RoleName(v).value for v in values))
        if not names:
            return []
        result = await self._execute(
            select(Role).where(Role.value.in_(names)).order_by(Role.id),
            "reading roles",
        )
        roles = list(result.scalars().all())
        missing = sorted(set(names) - {r.value for r in roles})
        if missing:
            raise NotFoundError(f"Roles not found: {', '.join(missing)}")
        return roles

    async def find_by_user_id(self, user_id: int) -> list[Role]:
        result = await self._execute(
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.id),
            f"reading roles of user {user_id}",
        )
        return list(result.scalars().all())

    async def create_all(self, roles: list[Role]) -> list[Role]:
        if not roles:
            return []
        self.db.add_all(roles)
        await self._commit("creating role entities")
        return roles
