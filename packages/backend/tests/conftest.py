"""Test fixtures — in-memory repositories, a token issuer and HTTP clients.

Learn: The user aggregate only talks to three repositories, so tests
swap them for in-memory doubles with the same methods. That keeps most of
the suite independent of PostgreSQL while still running the real
aggregate, policy, token and HTTP code. The SQL repositories
themselves run against `db_session` (see test_repositories.py).

The doubles can be told to fail a given operation
(`store.fail("user_roles.create_all")`) to exercise partial failures,
and they log every write (`store.writes`) so tests can assert that a
denied or invalid call wrote nothing.
"""

import os

# Must run before userdir.config is imported anywhere.
os.environ.setdefault("USERDIR_BCRYPT_ROUNDS", "4")
os.environ.setdefault("USERDIR_SEED_ON_STARTUP", "false")

import itertools
from typing import Iterable

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from userdir.auth.jwt import TokenIssuer, get_token_issuer
from userdir.auth.roles import RoleName
from userdir.config import settings
from userdir.db.models import Base, Role, User, UserRole
from userdir.errors import DataError, DatabaseError, NotFoundError
from userdir.repositories.roles import RoleRepository
from userdir.repositories.user_roles import UserRoleRepository
from userdir.repositories.users import UserRepository
from userdir.schemas.user import LoginRequest, UserRequest
from userdir.services.seeding import seed_database
from userdir.services.user_aggregate import UserAggregate
from userdir.services.user_directory import UserDirectoryService

TEST_SECRET = "test-secret"

# SQL tests run on a throwaway in-memory SQLite database unless this points
# at a PostgreSQL test database (its tables are created and dropped per test).
TEST_DB_URL = os.environ.get("USERDIR_TEST_DATABASE_URL", "sqlite+aiosqlite://")


# ─── In-memory repositories ─────────────────────────────


def _copy_user(user: User) -> User:
    return User(
        id=user.id,
        surname=user.surname,
        lastname=user.lastname,
        username=user.username,
        password_hash=user.password_hash,
    )


class InMemoryStore:
    """Shared state behind the fake repositories."""

    def __init__(self):
        self.users: dict[int, User] = {}
        self.roles: dict[int, Role] = {}
        self.assignments: set[tuple[int, int]] = set()
        self.failures: set[str] = set()
        self.writes: list[str] = []
        self._user_ids = itertools.count(1)
        self._role_ids = itertools.count(1)

    def fail(self, operation: str) -> None:
        self.failures.add(operation)

    def check(self, operation: str, write: bool = False) -> None:
        if operation in self.failures:
            raise DatabaseError(f"Error in {operation}")
        if write:
            self.writes.append(operation)

    def role_names_of(self, user_id: int) -> set[str]:
        return {self.roles[rid].value for uid, rid in self.assignments if uid == user_id}


class FakeUserRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def count(self) -> int:
        return len(self.store.users)

    async def find_all(self) -> list[User]:
        return [_copy_user(u) for _, u in sorted(self.store.users.items())]

    async def find_by_id(self, user_id: int) -> User:
        self.store.check("users.find_by_id")
        if user_id not in self.store.users:
            raise NotFoundError(f"User with id {user_id} not found")
        return _copy_user(self.store.users[user_id])

    async def find_by_username(self, username: str) -> User:
        for user in self.store.users.values():
            if user.username == username:
                return _copy_user(user)
        raise NotFoundError(f"User with username {username} not found")

    async def exists_by_id(self, user_id: int) -> bool:
        return user_id in self.store.users

    async def exists_by_username(self, username: str) -> bool:
        return any(u.username == username for u in self.store.users.values())

    async def exists_by_username_excluding(self, user_id: int, username: str) -> bool:
        return any(
            u.username == username and uid != user_id
            for uid, u in self.store.users.items()
        )

    async def save(self, user: User) -> User:
        self.store.check("users.save", write=True)
        clash = any(
            u.username == user.username and uid != user.id
            for uid, u in self.store.users.items()
        )
        if clash:
            raise DataError("Username not available")
        if user.id is None:
            user.id = next(self.store._user_ids)
        elif user.id not in self.store.users:
            raise DatabaseError("Error updating user entity")
        self.store.users[user.id] = _copy_user(user)
        return user

    async def delete_by_id(self, user_id: int) -> None:
        self.store.check("users.delete_by_id", write=True)
        if self.store.users.pop(user_id, None) is None:
            raise DatabaseError(f"Error deleting user with id {user_id}")

    async def find_ids_without_roles(self) -> list[int]:
        assigned = {uid for uid, _ in self.store.assignments}
        return sorted(uid for uid in self.store.users if uid not in assigned)


class FakeRoleRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def count(self) -> int:
        return len(self.store.roles)

    async def find_all(self) -> list[Role]:
        return list(self.store.roles.values())

    async def find_by_value(self, value: RoleName) -> Role:
        name = RoleName(value).value
        for role in self.store.roles.values():
            if role.value == name:
                return role
        raise NotFoundError(f"Role with value {name} not found")

    async def find_by_values(self, values: Iterable[RoleName]) -> list[Role]:
        self.store.check("roles.find_by_values")
        names = list(dict.fromkeys(RoleName(v).value for v in values))
        roles = [r for r in self.store.roles.values() if r.value in names]
        missing = sorted(set(names) - {r.value for r in roles})
        if missing:
            raise NotFoundError(f"Roles not found: {', '.join(missing)}")
        return roles

    async def find_by_user_id(self, user_id: int) -> list[Role]:
        return [
            self.store.roles[rid]
            for uid, rid in sorted(self.store.assignments)
            if uid == user_id
        ]

    async def create_all(self, roles: list[Role]) -> list[Role]:
        self.store.check("roles.create_all", write=True)
        for role in roles:
            role.id = next(self.store._role_ids)
            self.store.roles[role.id] = role
        return roles


class FakeUserRoleRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create_all(self, assignments: list[UserRole]) -> list[UserRole]:
        self.store.check("user_roles.create_all", write=True)
        for a in assignments:
            self.store.assignments.add((a.user_id, a.role_id))
        return assignments

    async def find_by_user_id(self, user_id: int) -> list[UserRole]:
        return [
            UserRole(user_id=uid, role_id=rid)
            for uid, rid in sorted(self.store.assignments)
            if uid == user_id
        ]

    async def delete_by_user_id(self, user_id: int) -> int:
        self.store.check("user_roles.delete_by_user_id", write=True)
        doomed = {pair for pair in self.store.assignments if pair[0] == user_id}
        self.store.assignments -= doomed
        return len(doomed)

    async def find_orphan_user_ids(self) -> list[int]:
        return sorted(
            {uid for uid, _ in self.store.assignments if uid not in self.store.users}
        )


class Repos:
    """The three repositories the aggregate and seeding work with."""

    def __init__(self, users, roles, user_roles):
        self.users = users
        self.roles = roles
        self.user_roles = user_roles

    @classmethod
    def in_memory(cls, store: InMemoryStore) -> "Repos":
        return cls(
            FakeUserRepository(store),
            FakeRoleRepository(store),
            FakeUserRoleRepository(store),
        )


# ─── Fixtures ───────────────────────────────────────────


@pytest_asyncio.fixture()
async def store():
    """Empty store — no roles, no users."""
    return InMemoryStore()


@pytest_asyncio.fixture()
async def repos(store):
    return Repos.in_memory(store)


@pytest_asyncio.fixture()
async def seeded(store, repos):
    """Store after seeding: both roles plus root/123456 as Administrator."""
    await seed_database(repos.roles, repos.users, repos.user_roles, settings)
    store.writes.clear()
    return store


@pytest_asyncio.fixture()
async def issuer():
    return TokenIssuer(secret=TEST_SECRET, algorithm="HS256", ttl_seconds=3600)


@pytest_asyncio.fixture()
async def aggregate(repos, issuer):
    return UserAggregate(
        users=repos.users,
        roles=repos.roles,
        user_roles=repos.user_roles,
        token_issuer=issuer,
    )


@pytest_asyncio.fixture()
async def directory(aggregate, repos):
    return UserDirectoryService(aggregate=aggregate, users=repos.users)


@pytest_asyncio.fixture()
async def client(seeded, directory, issuer):
    """HTTP client over the real app, with repositories swapped for fakes.

    Learn: get_user_directory and get_token_issuer are overridden, so
    get_db is never called and no database connection is opened.
    """
    from userdir.api.deps import get_user_directory
    from userdir.main import app

    app.dependency_overrides[get_user_directory] = lambda: directory
    app.dependency_overrides[get_token_issuer] = lambda: issuer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def admin_token(seeded, aggregate):
    issued = await aggregate.login(LoginRequest(username="root", password="123456"))
    return issued.token


@pytest_asyncio.fixture()
async def make_user(seeded, aggregate):
    """Factory: create a user through the aggregate, return (id, token)."""

    async def _make(username: str, password: str = "p@ss", roles=None):
        user = await aggregate.create(
            UserRequest(
                username=username,
                password=password,
                surname=username.title(),
                roles=roles,
            )
        )
        issued = await aggregate.login(LoginRequest(username=username, password=password))
        return user.id, issued.token

    return _make


# ─── Real database ──────────────────────────────────────


@pytest_asyncio.fixture()
async def db_session():
    """Per-test session on a fresh schema, for the SQL repositories.

    Learn: The repositories commit after every write and roll back on
    failure, so each test gets its own engine with the schema created
    from Base.metadata and dropped afterwards. StaticPool keeps the
    in-memory SQLite database alive on one connection for the whole test.
    """
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest_asyncio.fixture()
async def sql_repos(db_session):
    return Repos(
        UserRepository(db_session),
        RoleRepository(db_session),
        UserRoleRepository(db_session),
    )
