"""Pydantic schemas for users and login.

Learn: Pydantic v2 models validate request/response data. UserRequest
is shared by create and update: every field is optional, and the
service decides what is required (create) or what "absent" means
(update leaves the stored value unchanged).
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from userdir.auth.roles import RoleName


# ─── Users ──────────────────────────────────────────────

class UserRequest(BaseModel):
    surname: Optional[str] = Field(None, min_length=1, max_length=50)
    lastname: Optional[str] = Field(None, max_length=50)
    username: Optional[str] = Field(None, min_length=1, max_length=50)
    password: Optional[str] = Field(None, min_length=1, max_length=128)
    roles: Optional[list[RoleName]] = None

    @property
    def requested_roles(self) -> list[RoleName]:
        """Distinct requested roles, in request order. Empty when absent."""
        return list(dict.fromkeys(self.roles or []))


class UserSummary(BaseModel):
    """Public view of a user. Also the serialized `sub` claim of a token."""

    id: int
    surname: str = ""
    lastname: str = ""
    username: str = ""

    model_config = {"from_attributes": True}

    @field_validator("surname", "lastname", "username", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v


# ─── Login ──────────────────────────────────────────────

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)


class LoginResponse(BaseModel):
    type: str = "Bearer"
    token: str
    expiration: int = Field(..., description="Unix seconds")
