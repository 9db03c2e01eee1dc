"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract the
caller's Principal from the Authorization header and to run the
authorization engine as a request guard.

- get_principal_optional → Principal or None (soft; POST /users)
- get_principal → Principal, 401 if missing or invalid (hard)
- require_access(...) → guard that raises ForbiddenError on DENY
"""

from typing import Optional

import structlog
from fastapi import Depends, Header

from userdir.auth.jwt import Principal, TokenIssuer, get_token_issuer
from userdir.auth.policy import authorize
from userdir.auth.roles import RoleName
from userdir.errors import ForbiddenError, InvalidTokenError

logger = structlog.get_logger()

BEARER_PREFIX = "Bearer "


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):].strip() or None
    return None


async def get_principal_optional(
    authorization: Optional[str] = Header(None),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Optional[Principal]:
    """Principal if a valid bearer token was sent, otherwise None.

    An invalid token degrades to anonymous here: anonymous is the
    weakest identity the policy knows, so nothing is gained by it.
    """
    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        return issuer.verify(token)
    except InvalidTokenError as e:
        logger.info("auth.token_ignored", reason=e.message)
        return None


async def get_principal(
    authorization: Optional[str] = Header(None),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Principal:
    """Principal from a valid bearer token (401 if missing or invalid)."""
    token = _bearer_token(authorization)
    if token is None:
        raise InvalidTokenError("Authentication required")
    return issuer.verify(token)


def require_access(
    allowed_roles: tuple[RoleName, ...] = (RoleName.ADMINISTRATOR,),
    allow_owner: bool = False,
):
    """Build a route guard from the authorization engine.

    With allow_owner=True the guard reads the `user_id` path parameter
    and also lets the owner of that record through.
    """

    def _check(principal: Principal, owner_id: Optional[int]) -> Principal:
        decision = authorize(principal, allowed_roles, resource_owner_id=owner_id)
        if not decision.allowed:
            logger.info(
                "authz.denied", subject_id=principal.subject_id, target_id=owner_id
            )
            raise ForbiddenError("Forbidden")
        return principal

    async def role_guard(principal: Principal = Depends(get_principal)) -> Principal:
        return _check(principal, None)

    async def owner_guard(
        user_id: int, principal: Principal = Depends(get_principal)
    ) -> Principal:
        return _check(principal, user_id)

    return owner_guard if allow_owner else role_guard
