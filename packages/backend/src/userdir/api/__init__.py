"""API route aggregation.

All routers registered here get mounted in main.py. Routes sit at the
root (no version prefix) to keep the paths existing clients use:
/login and /users.

Learn: Authentication is per route here, not per router — POST /users
accepts anonymous callers while the other /users routes need a token.
"""

from fastapi import APIRouter

from userdir.api.auth import router as auth_router
from userdir.api.health import router as health_router
from userdir.api.users import router as users_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(users_router, tags=["users"])
