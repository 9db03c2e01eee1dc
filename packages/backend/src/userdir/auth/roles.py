"""Role names.

Learn: Roles are a closed enumeration instead of free-form strings so
a typo fails at import/validation time rather than silently granting
nothing. To add a role, add a member here: seeding creates any
member that is missing from the roles table on the next startup.
"""

import enum
from typing import Iterable


class RoleName(str, enum.Enum):
    ADMINISTRATOR = "Administrator"
    GUEST = "Guest"


# Role given to users created without an explicit role list.
DEFAULT_ROLE = RoleName.GUEST


def parse_roles(values: Iterable[str]) -> frozenset[RoleName]:
    """Parse role names, skipping values that are not known roles."""
    known = {r.value: r for r in RoleName}
    return frozenset(known[v] for v in values if v in known)


def join_roles(roles: Iterable[RoleName]) -> str:
    """Comma-join role names in a stable order (wire format of the roles claim)."""
    return ",".join(sorted(RoleName(r).value for r in roles))


def split_roles(claim: str) -> frozenset[RoleName]:
    """Inverse of join_roles. Empty claim → no roles."""
    if not claim:
        return frozenset()
    return parse_roles(part.strip() for part in claim.split(","))
