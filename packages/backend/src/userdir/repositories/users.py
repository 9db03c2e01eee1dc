"""User rows."""

import structlog
from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from userdir.db.models import User, UserRole
from userdir.errors import DataError, DatabaseError, NotFoundError
from userdir.repositories.base import Repository

logger = structlog.get_logger()


class UserRepository(Repository):
    async def count(self) -> int:
        result = await self._execute(select(func.count(User.id)), "counting users")
        return int(result.scalar_one())

    async def find_all(self) -> list[User]:
        result = await self._execute(select(User).order_by(User.id), "listing users")
        return list(result.scalars().all())

    async def find_by_id(self, user_id: int) -> User:
        result = await self._execute(
            select(User).where(User.id == user_id), "reading user"
        )
        user = result.scalars().first()
        if user is None:
            raise NotFoundError(f"User with id {user_id} not found")
        return user

    async def find_by_username(self, username: str) -> User:
        result = await self._execute(
            select(User).where(User.username == username), "reading user"
        )
        user = result.scalars().first()
        if user is None:
            raise NotFoundError(f"User with username {username} not found")
        return user

    async def exists_by_id(self, user_id: int) -> bool:
        result = await self._execute(
            select(exists().where(User.id == user_id)), "checking user"
        )
        return bool(result.scalar())

    async def exists_by_username(self, username: str) -> bool:
        result = await self._execute(
            select(exists().where(User.username == username)), "checking username"
        )
        return bool(result.scalar())

    async def exists_by_username_excluding(self, user_id: int, username: str) -> bool:
        """True if a user other than `user_id` already holds `username`."""
        result = await self._execute(
            select(exists().where(User.username == username, User.id != user_id)),
            "checking username",
        )
        return bool(result.scalar())

    async def save(self, user: User) -> User:
        """Insert when the user has no id yet, otherwise update the row."""
        if user.id is None:
            return await self._insert(user)
        return await self._update(user)

    async def _insert(self, user: User) -> User:
        self.db.add(user)
        try:
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DataError("Username not available") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("repository.insert_failed", table="users", error=str(e))
            raise DatabaseError("Error creating user entity") from e
        return user

    async def _update(self, user: User) -> User:
        statement = (
            update(User)
            .where(User.id == user.id)
            .values(
                surname=user.surname,
                lastname=user.lastname,
                username=user.username,
                password_hash=user.password_hash,
            )
        )
        try:
            result = await self.db.execute(statement)
        except IntegrityError as e:
            await self.db.rollback()
            raise DataError("Username not available") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError("Error updating user entity") from e
        if result.rowcount != 1:
            await self.db.rollback()
            raise DatabaseError("Error updating user entity")
        await self._commit("updating user entity")
        return user

    async def delete_by_id(self, user_id: int) -> None:
        result = await self._execute(
            delete(User).where(User.id == user_id), f"deleting user with id {user_id}"
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise DatabaseError(f"Error deleting user with id {user_id}")
        await self._commit(f"deleting user with id {user_id}")

    async def find_ids_without_roles(self) -> list[int]:
        """Users that have no role assignment at all."""
        result = await self._execute(
            select(User.id)
            .where(~exists().where(UserRole.user_id == User.id))
            .order_by(User.id),
            "finding users without roles",
        )
        return list(result.scalars().all())
