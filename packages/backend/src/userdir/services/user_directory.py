"""User directory service — the façade the API routes call.

Learn: Service layer separates business logic from HTTP routing.
create() and update() carry a request body that may ask for roles,
so they run the authorization engine themselves, before the user
aggregate is touched: a denied call never writes anything. Reads and
deletes have no body and are guarded at the route level instead
(auth/dependencies.py: require_access).

Errors from the aggregate and repositories pass through unchanged.
"""

from typing import Optional

import structlog

from userdir.auth.jwt import Principal
from userdir.auth.policy import AuthorizationRequest, PendingWrite, decide
from userdir.auth.roles import RoleName
from userdir.errors import ForbiddenError
from userdir.repositories.users import UserRepository
from userdir.schemas.user import LoginRequest, LoginResponse, UserRequest, UserSummary
from userdir.services.user_aggregate import UserAggregate

logger = structlog.get_logger()

ADMIN_ONLY = frozenset({RoleName.ADMINISTRATOR})


class UserDirectoryService:
    """Login plus CRUD on users, with authorization on writes."""

    def __init__(self, aggregate: UserAggregate, users: UserRepository):
        self.aggregate = aggregate
        self.users = users

    async def login(self, credentials: LoginRequest) -> LoginResponse:
        issued = await self.aggregate.login(credentials)
        return LoginResponse(
            type=issued.type,
            token=issued.token,
            expiration=issued.expires_at,
        )

    async def read_all(self) -> list[UserSummary]:
        users = await self.users.find_all()
        return [UserSummary.model_validate(u) for u in users]

    async def read_one(self, user_id: int) -> UserSummary:
        user = await self.users.find_by_id(user_id)
        return UserSummary.model_validate(user)

    async def create(
        self, principal: Optional[Principal], request: UserRequest
    ) -> UserSummary:
        self._authorize_write(principal, request, owner_id=None)
        user = await self.aggregate.create(request)
        return UserSummary.model_validate(user)

    async def update(
        self, principal: Optional[Principal], user_id: int, request: UserRequest
    ) -> UserSummary:
        self._authorize_write(principal, request, owner_id=user_id)
        user = await self.aggregate.update(user_id, request)
        return UserSummary.model_validate(user)

    async def delete(self, user_id: int) -> None:
        await self.aggregate.delete(user_id)

    def _authorize_write(
        self,
        principal: Optional[Principal],
        request: UserRequest,
        owner_id: Optional[int],
    ) -> None:
        decision = decide(
            AuthorizationRequest(
                principal=principal,
                allowed_roles=ADMIN_ONLY,
                resource_owner_id=owner_id,
                pending_write=PendingWrite.of(request.requested_roles),
            )
        )
        if not decision.allowed:
            logger.info(
                "authz.denied",
                subject_id=principal.subject_id if principal else None,
                target_id=owner_id,
                requested_roles=[r.value for r in request.requested_roles],
            )
            raise ForbiddenError("Forbidden")
