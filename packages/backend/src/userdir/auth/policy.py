"""Authorization engine — role membership plus record ownership.

Learn: One pure function decides every access question. Rules are
checked in order and the first match wins:

1. Anonymous caller → allow, unless the pending write asks for the
   Administrator role (public signup can't mint admins).
2. Caller holds one of the allowed roles → allow. Admins skip the
   ownership check entirely.
3. Caller owns the target record → allow, unless the pending write
   asks for the Administrator role (owners can't promote themselves).
4. Otherwise → deny.

Ownership is a weaker grant than role membership and must never be
usable to acquire a stronger one. decide() returns a Decision instead
of raising, so the same rule serves as a request guard (see
auth/dependencies.py) and as a predicate (see the user directory
service).
"""

import enum
from dataclasses import dataclass, field
from typing import Iterable, Optional

from userdir.auth.jwt import Principal
from userdir.auth.roles import RoleName


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOW


@dataclass(frozen=True)
class PendingWrite:
    """Roles a create/update request wants the target user to end up with."""

    requested_roles: frozenset[RoleName] = frozenset()

    @classmethod
    def of(cls, roles: Optional[Iterable[RoleName]]) -> "PendingWrite":
        return cls(requested_roles=frozenset(roles or ()))

    @property
    def escalates(self) -> bool:
        return RoleName.ADMINISTRATOR in self.requested_roles


@dataclass(frozen=True)
class AuthorizationRequest:
    principal: Optional[Principal]
    allowed_roles: frozenset[RoleName] = field(
        default_factory=lambda: frozenset({RoleName.ADMINISTRATOR})
    )
    resource_owner_id: Optional[int] = None
    pending_write: Optional[PendingWrite] = None


def decide(request: AuthorizationRequest) -> Decision:
    escalates = request.pending_write is not None and request.pending_write.escalates
    principal = request.principal

    if principal is None:
        return Decision.DENY if escalates else Decision.ALLOW

    if principal.roles & request.allowed_roles:
        return Decision.ALLOW

    if (
        request.resource_owner_id is not None
        and request.resource_owner_id == principal.subject_id
    ):
        return Decision.DENY if escalates else Decision.ALLOW

    return Decision.DENY


def authorize(
    principal: Optional[Principal],
    allowed_roles: Iterable[RoleName] = (RoleName.ADMINISTRATOR,),
    resource_owner_id: Optional[int] = None,
    requested_roles: Optional[Iterable[RoleName]] = None,
) -> Decision:
    """Convenience wrapper: build the AuthorizationRequest and decide it.

    requested_roles=None means there is no pending write at all.
    """
    pending = None if requested_roles is None else PendingWrite.of(requested_roles)
    return decide(
        AuthorizationRequest(
            principal=principal,
            allowed_roles=frozenset(allowed_roles),
            resource_owner_id=resource_owner_id,
            pending_write=pending,
        )
    )
