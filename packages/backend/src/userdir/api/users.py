"""User API routes.

Learn: Who may call what:
- GET /users            → administrators
- GET /users/{id}       → administrators or the user themself
- POST /users           → anyone; only administrators may hand out
                          the Administrator role
- PUT /users/{id}       → administrators or the user themself; owners
                          can't give themselves the Administrator role
- DELETE /users/{id}    → administrators or the user themself

GET and DELETE are guarded by require_access() before the handler
runs. POST and PUT need the request body to decide, so the service
runs the same policy itself.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response

from userdir.api.deps import get_user_directory
from userdir.auth.dependencies import (
    get_principal,
    get_principal_optional,
    require_access,
)
from userdir.auth.jwt import Principal
from userdir.schemas.user import UserRequest, UserSummary
from userdir.services.user_directory import UserDirectoryService

router = APIRouter(prefix="/users")

_admin = require_access()
_admin_or_owner = require_access(allow_owner=True)


@router.get("", response_model=list[UserSummary], dependencies=[Depends(_admin)])
async def list_users(svc: UserDirectoryService = Depends(get_user_directory)):
    return await svc.read_all()


@router.get(
    "/{user_id}",
    response_model=UserSummary,
    dependencies=[Depends(_admin_or_owner)],
)
async def get_user(
    user_id: int, svc: UserDirectoryService = Depends(get_user_directory)
):
    return await svc.read_one(user_id)


@router.post("", response_model=UserSummary, status_code=201)
async def create_user(
    body: UserRequest,
    principal: Optional[Principal] = Depends(get_principal_optional),
    svc: UserDirectoryService = Depends(get_user_directory),
):
    """Sign up (anonymous) or create a user (administrator)."""
    return await svc.create(principal, body)


@router.put("/{user_id}", response_model=UserSummary)
async def update_user(
    user_id: int,
    body: UserRequest,
    principal: Principal = Depends(get_principal),
    svc: UserDirectoryService = Depends(get_user_directory),
):
    """Partial update — fields left out keep their stored value."""
    return await svc.update(principal, user_id, body)


@router.delete("/{user_id}", dependencies=[Depends(_admin_or_owner)])
async def delete_user(
    user_id: int, svc: UserDirectoryService = Depends(get_user_directory)
):
    await svc.delete(user_id)
    return Response(status_code=200)
