"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic auto-generates migrations by comparing
these models to the actual DB.

users_roles deliberately has no foreign keys: user rows and their
assignments are written by separate statements, and a failure between
them can leave a user without roles or assignments without a user.
Those rows stay visible so `userdir reconcile` can find and repair them.
"""

from typing import Optional

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Role(Base):
    """A named permission class. Names come from auth.roles.RoleName."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    value: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


class User(Base):
    """A directory user.

    Learn: id is None until the row is inserted. The unique constraint
    on username is the authoritative guard; the service also checks
    beforehand so the common case gets a friendly error.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
    )

    id: Mapped[Optional[int]] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    surname: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    lastname: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(250), nullable=False)


class UserRole(Base):
    """Role assignment — one row per (user, role) pair."""

    __tablename__ = "users_roles"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(Integer, primary_key=True)
