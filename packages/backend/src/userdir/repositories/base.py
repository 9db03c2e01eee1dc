"""Shared plumbing for repositories.

Learn: A repository wraps one AsyncSession and turns SQLAlchemy
exceptions into the service's DatabaseError. Every write commits on
its own — there is no transaction spanning several repository calls,
so callers that need several writes sequence them explicitly (see
services/user_aggregate.py).
"""

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from userdir.errors import DatabaseError

logger = structlog.get_logger()


class Repository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute(self, statement: Any, what: str):
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("repository.query_failed", what=what, error=str(e))
            raise DatabaseError(f"Error {what}") from e

    async def _commit(self, what: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("repository.commit_failed", what=what, error=str(e))
            raise DatabaseError(f"Error {what}") from e
