"""Login route.

Learn: POST /login is open (no bearer token). Unknown username and
wrong password both come back as 401 with the same message.
"""

from fastapi import APIRouter, Depends

from userdir.api.deps import get_user_directory
from userdir.schemas.user import LoginRequest, LoginResponse
from userdir.services.user_directory import UserDirectoryService

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    svc: UserDirectoryService = Depends(get_user_directory),
):
    """Username + password → bearer token."""
    return await svc.login(body)
