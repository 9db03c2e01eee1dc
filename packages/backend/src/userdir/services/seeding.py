"""Database seeding — roles and the first administrator.

Learn: Seeding is an explicit, idempotent step, gated by what is
already persisted rather than by process state:
- every RoleName member missing from the roles table is created;
- if there are no users at all, the administrator account from
  settings is created with the Administrator role.

Running it twice is a no-op the second time. It runs from the app
lifespan and from `userdir seed`.
"""

from dataclasses import dataclass, field

import structlog

from userdir.auth.password import hash_password_async
from userdir.auth.roles import RoleName
from userdir.config import Settings
from userdir.db.models import Role, User, UserRole
from userdir.repositories.roles import RoleRepository
from userdir.repositories.user_roles import UserRoleRepository
from userdir.repositories.users import UserRepository

logger = structlog.get_logger()


@dataclass
class SeedReport:
    roles_created: list[str] = field(default_factory=list)
    admin_created: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.roles_created) or self.admin_created


async def seed_database(
    roles: RoleRepository,
    users: UserRepository,
    user_roles: UserRoleRepository,
    settings: Settings,
) -> SeedReport:
    report = SeedReport()

    existing = {r.value for r in await roles.find_all()}
    missing = [Role(value=name.value) for name in RoleName if name.value not in existing]
    if missing:
        await roles.create_all(missing)
        report.roles_created = [r.value for r in missing]
        logger.info("seed.roles_created", roles=report.roles_created)

    if await users.count() == 0:
        admin_role = await roles.find_by_value(RoleName.ADMINISTRATOR)
        admin = User(
            surname="Root",
            lastname="the First",
            username=settings.seed_admin_username,
            password_hash=await hash_password_async(settings.seed_admin_password),
        )
        admin = await users.save(admin)
        await user_roles.create_all([UserRole(user_id=admin.id, role_id=admin_role.id)])
        report.admin_created = True
        logger.info("seed.admin_created", user_id=admin.id, username=admin.username)

    return report
