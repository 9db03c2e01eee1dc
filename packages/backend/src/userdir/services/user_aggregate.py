"""User aggregate — every write that touches a user and its role assignments.

Learn: A user row and its users_roles rows are written by separate,
independently committed statements. There is no transaction around
them, so each operation runs as a small saga and records how far it
got:

  validating → writing_primary → writing_relations → done
       ↓               ↓                  ↓
     failed          failed        partial_failure

- failed: nothing was written, or the single primary statement failed.
- partial_failure: the user row changed but its assignments did not
  (create: user without roles; update: roles deleted but not
  re-inserted; delete: user gone, assignments orphaned).

Partial failures are not rolled back or retried. The error keeps its
original type, gets the trace attached as `error.trace`, and a
`user_aggregate.partial_failure` warning is logged. `reconcile()` is
the explicit repair path for the rows left behind.
"""

import asyncio
import enum
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional

import structlog

from userdir.auth.jwt import IssuedToken, TokenIssuer
from userdir.auth.password import hash_password_async, verify_password_async
from userdir.auth.roles import DEFAULT_ROLE, RoleName, parse_roles
from userdir.db.models import Role, User, UserRole
from userdir.errors import (
    BadCredentialsError,
    DataError,
    NotFoundError,
    UserDirectoryError,
)
from userdir.repositories.roles import RoleRepository
from userdir.repositories.user_roles import UserRoleRepository
from userdir.repositories.users import UserRepository
from userdir.schemas.user import LoginRequest, UserRequest, UserSummary

logger = structlog.get_logger()

Hasher = Callable[[str], Awaitable[str]]
Verifier = Callable[[str, str], Awaitable[bool]]


class SagaState(str, enum.Enum):
    VALIDATING = "validating"
    WRITING_PRIMARY = "writing_primary"
    WRITING_RELATIONS = "writing_relations"
    DONE = "done"
    FAILED = "failed"
    PARTIAL_FAILURE = "partial_failure"


_TRANSITIONS: dict[SagaState, set[SagaState]] = {
    SagaState.VALIDATING: {SagaState.WRITING_PRIMARY, SagaState.FAILED},
    SagaState.WRITING_PRIMARY: {
        SagaState.WRITING_RELATIONS,
        SagaState.DONE,
        SagaState.FAILED,
    },
    SagaState.WRITING_RELATIONS: {SagaState.DONE, SagaState.PARTIAL_FAILURE},
    SagaState.DONE: set(),
    SagaState.FAILED: set(),
    SagaState.PARTIAL_FAILURE: set(),
}


@dataclass
class OperationTrace:
    """Progress record of one orchestrated operation."""

    operation: str
    user_id: Optional[int] = None
    state: SagaState = SagaState.VALIDATING
    history: list[SagaState] = field(
        default_factory=lambda: [SagaState.VALIDATING]
    )
    error: Optional[str] = None

    def advance(self, state: SagaState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"{self.operation}: illegal transition {self.state.value} → {state.value}"
            )
        self.state = state
        self.history.append(state)

    @property
    def is_partial(self) -> bool:
        return self.state is SagaState.PARTIAL_FAILURE


class ReconcileAction(str, enum.Enum):
    CONSISTENT = "consistent"
    ASSIGNED_DEFAULT_ROLE = "assigned_default_role"
    REMOVED_ORPHAN_ASSIGNMENTS = "removed_orphan_assignments"


@dataclass(frozen=True)
class ReconcileResult:
    user_id: int
    action: ReconcileAction


@dataclass(frozen=True)
class Inconsistencies:
    users_without_roles: list[int]
    orphaned_assignments: list[int]

    @property
    def user_ids(self) -> list[int]:
        return sorted(set(self.users_without_roles) | set(self.orphaned_assignments))


class UserAggregate:
    """Creates, updates, deletes and authenticates users.

    The only component allowed to write users and users_roles.
    """

    def __init__(
        self,
        users: UserRepository,
        roles: RoleRepository,
        user_roles: UserRoleRepository,
        token_issuer: Optional[TokenIssuer] = None,
        hasher: Hasher = hash_password_async,
        verifier: Verifier = verify_password_async,
    ):
        self.users = users
        self.roles = roles
        self.user_roles = user_roles
        self.token_issuer = token_issuer
        self.hasher = hasher
        self.verifier = verifier
        self.last_trace: Optional[OperationTrace] = None

    # ─── Saga bookkeeping ───────────────────────────────

    @asynccontextmanager
    async def _saga(
        self, operation: str, user_id: Optional[int] = None
    ) -> AsyncIterator[OperationTrace]:
        trace = OperationTrace(operation=operation, user_id=user_id)
        self.last_trace = trace
        try:
            yield trace
        except Exception as e:
            self._record_failure(trace, e)
            raise

    def _record_failure(self, trace: OperationTrace, error: Exception) -> None:
        trace.error = str(error)
        if trace.state is SagaState.WRITING_RELATIONS:
            trace.advance(SagaState.PARTIAL_FAILURE)
            logger.warning(
                "user_aggregate.partial_failure",
                operation=trace.operation,
                user_id=trace.user_id,
                error=trace.error,
            )
        elif trace.state in (SagaState.VALIDATING, SagaState.WRITING_PRIMARY):
            trace.advance(SagaState.FAILED)
        if isinstance(error, UserDirectoryError):
            error.trace = trace

    # ─── Helpers ────────────────────────────────────────

    async def _resolve_roles(self, names: list[RoleName]) -> list[Role]:
        return await self.roles.find_by_values(names)

    @staticmethod
    def _assignments(user_id: int, roles: list[Role]) -> list[UserRole]:
        return [UserRole(user_id=user_id, role_id=role.id) for role in roles]

    # ─── Create ─────────────────────────────────────────

    async def create(self, request: UserRequest) -> User:
        """Create a user and its role assignments.

        Without a role list the user gets the default (Guest) role.
        Roles are resolved before anything is written, so an unknown
        role never leaves a half-created user behind.
        """
        async with self._saga("create") as trace:
            missing = [
                name
                for name in ("username", "password", "surname")
                if getattr(request, name) is None
            ]
            if missing:
                raise DataError(f"Missing required fields: {', '.join(missing)}")

            if await self.users.exists_by_username(request.username):
                raise DataError("Username not available")

            role_names = request.requested_roles or [DEFAULT_ROLE]
            roles, password_hash = await asyncio.gather(
                self._resolve_roles(role_names),
                self.hasher(request.password),
            )
            user = User(
                surname=request.surname,
                lastname=request.lastname or "",
                username=request.username,
                password_hash=password_hash,
            )

            trace.advance(SagaState.WRITING_PRIMARY)
            user = await self.users.save(user)
            trace.user_id = user.id

            trace.advance(SagaState.WRITING_RELATIONS)
            await self.user_roles.create_all(self._assignments(user.id, roles))
            trace.advance(SagaState.DONE)

        logger.info(
            "user_aggregate.created",
            user_id=user.id,
            roles=[r.value for r in roles],
        )
        return user

    # ─── Update ─────────────────────────────────────────

    async def update(self, user_id: int, request: UserRequest) -> User:
        """Patch a user. Absent fields keep their stored value.

        A non-empty role list replaces the whole assignment set
        (delete all, then insert); otherwise assignments are untouched.
        """
        async with self._saga("update", user_id) as trace:
            user = await self.users.find_by_id(user_id)

            if request.username is not None and await self.users.exists_by_username_excluding(
                user_id, request.username
            ):
                raise DataError("Username not available")

            roles: Optional[list[Role]] = None
            if request.requested_roles:
                roles = await self._resolve_roles(request.requested_roles)

            password_hash = None
            if request.password is not None:
                password_hash = await self.hasher(request.password)

            if request.surname is not None:
                user.surname = request.surname
            if request.lastname is not None:
                user.lastname = request.lastname
            if request.username is not None:
                user.username = request.username
            if password_hash is not None:
                user.password_hash = password_hash

            trace.advance(SagaState.WRITING_PRIMARY)
            user = await self.users.save(user)

            if roles is not None:
                trace.advance(SagaState.WRITING_RELATIONS)
                await self.user_roles.delete_by_user_id(user_id)
                await self.user_roles.create_all(self._assignments(user_id, roles))
            trace.advance(SagaState.DONE)

        logger.info(
            "user_aggregate.updated",
            user_id=user_id,
            roles_replaced=roles is not None,
        )
        return user

    # ─── Delete ─────────────────────────────────────────

    async def delete(self, user_id: int) -> None:
        """Delete the user row, then its assignments."""
        async with self._saga("delete", user_id) as trace:
            if not await self.users.exists_by_id(user_id):
                raise NotFoundError(f"User with id {user_id} not found")

            trace.advance(SagaState.WRITING_PRIMARY)
            await self.users.delete_by_id(user_id)

            trace.advance(SagaState.WRITING_RELATIONS)
            removed = await self.user_roles.delete_by_user_id(user_id)
            trace.advance(SagaState.DONE)

        logger.info("user_aggregate.deleted", user_id=user_id, assignments=removed)

    # ─── Login ──────────────────────────────────────────

    async def login(self, credentials: LoginRequest) -> IssuedToken:
        """Check credentials and issue a bearer token.

        Unknown user and wrong password fail identically.
        """
        if self.token_issuer is None:
            raise RuntimeError("UserAggregate.login needs a token issuer")

        try:
            user = await self.users.find_by_username(credentials.username)
        except NotFoundError:
            logger.info("auth.login_failed", reason="unknown_user")
            raise BadCredentialsError("Invalid credentials")

        roles = await self.roles.find_by_user_id(user.id)
        if not await self.verifier(credentials.password, user.password_hash):
            logger.info("auth.login_failed", reason="bad_password", user_id=user.id)
            raise BadCredentialsError("Invalid credentials")

        if not roles:
            logger.warning("auth.login_without_roles", user_id=user.id)

        issued = self.token_issuer.issue(
            subject=UserSummary.model_validate(user),
            roles=parse_roles(r.value for r in roles),
        )
        logger.info("auth.login", user_id=user.id)
        return issued

    # ─── Reconciliation ─────────────────────────────────

    async def find_inconsistencies(self) -> Inconsistencies:
        return Inconsistencies(
            users_without_roles=await self.users.find_ids_without_roles(),
            orphaned_assignments=await self.user_roles.find_orphan_user_ids(),
        )

    async def reconcile(self, user_id: int) -> ReconcileResult:
        """Repair what a partial failure left behind for one user id.

        - user exists without assignments → give it the default role
        - assignments exist without user → delete them
        """
        user_exists = await self.users.exists_by_id(user_id)
        assignments = await self.user_roles.find_by_user_id(user_id)

        if user_exists and not assignments:
            role = await self.roles.find_by_value(DEFAULT_ROLE)
            await self.user_roles.create_all(self._assignments(user_id, [role]))
            action = ReconcileAction.ASSIGNED_DEFAULT_ROLE
        elif not user_exists and assignments:
            await self.user_roles.delete_by_user_id(user_id)
            action = ReconcileAction.REMOVED_ORPHAN_ASSIGNMENTS
        elif not user_exists:
            raise NotFoundError(f"User with id {user_id} not found")
        else:
            action = ReconcileAction.CONSISTENT

        logger.info("user_aggregate.reconciled", user_id=user_id, action=action.value)
        return ReconcileResult(user_id=user_id, action=action)

