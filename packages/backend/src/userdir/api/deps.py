"""Per-request wiring of repositories, aggregate and façade."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from userdir.auth.jwt import TokenIssuer, get_token_issuer
from userdir.db.engine import get_db
from userdir.repositories.roles import RoleRepository
from userdir.repositories.user_roles import UserRoleRepository
from userdir.repositories.users import UserRepository
from userdir.services.user_aggregate import UserAggregate
from userdir.services.user_directory import UserDirectoryService


def get_user_directory(
    db: AsyncSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> UserDirectoryService:
    users = UserRepository(db)
    aggregate = UserAggregate(
        users=users,
        roles=RoleRepository(db),
        user_roles=UserRoleRepository(db),
        token_issuer=issuer,
    )
    return UserDirectoryService(aggregate=aggregate, users=users)
