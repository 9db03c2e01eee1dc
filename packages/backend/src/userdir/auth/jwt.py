"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication. The
login response carries one access token; there is no refresh token.

Claim shape (kept byte-compatible with existing clients):
    sub   — JSON of the user summary {id, surname, lastname, username}
    iat   — issued-at, unix seconds
    exp   — expiration, unix seconds (iat + ttl)
    roles — comma-joined role names, e.g. "Administrator,Guest"

Signature and expiry checks are PyJWT's job; this module only shapes
claims on the way in and parses them on the way out.
"""

import time
from dataclasses import dataclass
from typing import Iterable, Optional

import jwt
from pydantic import ValidationError

from userdir.auth.roles import RoleName, join_roles, split_roles
from userdir.config import settings
from userdir.errors import InvalidTokenError
from userdir.schemas.user import UserSummary

TOKEN_TYPE = "Bearer"


@dataclass(frozen=True)
class Principal:
    """Verified identity and role claims of the caller. Lives for one request."""

    subject: UserSummary
    issued_at: int
    expires_at: int
    roles: frozenset[RoleName]

    @property
    def subject_id(self) -> int:
        return self.subject.id

    def has_role(self, role: RoleName) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class IssuedToken:
    token: str
    issued_at: int
    expires_at: int
    type: str = TOKEN_TYPE


class TokenIssuer:
    """Issues and verifies HS256 bearer tokens with a shared secret."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl_seconds: int = 3600,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds

    def issue(
        self,
        subject: UserSummary,
        roles: Iterable[RoleName],
        now: Optional[int] = None,
        ttl_seconds: Optional[int] = None,
    ) -> IssuedToken:
        issued_at = int(time.time()) if now is None else int(now)
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = issued_at + ttl
        payload = {
            "sub": subject.model_dump_json(),
            "iat": issued_at,
            "exp": expires_at,
            "roles": join_roles(roles),
        }
        token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
        return IssuedToken(token=token, issued_at=issued_at, expires_at=expires_at)

    def verify(self, token: str) -> Principal:
        """Verify and decode a token.

        Returns the Principal on success.
        Raises InvalidTokenError on failure.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

        try:
            subject = UserSummary.model_validate_json(payload["sub"])
        except ValidationError:
            raise InvalidTokenError("Invalid token: malformed subject")

        return Principal(
            subject=subject,
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
            roles=split_roles(payload.get("roles", "")),
        )


def get_token_issuer() -> TokenIssuer:
    """FastAPI dependency — token issuer configured from settings."""
    return TokenIssuer(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.token_ttl_seconds,
    )
