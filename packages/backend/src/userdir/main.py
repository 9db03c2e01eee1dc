"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan seeds the database on startup and disposes the
engine on shutdown. Domain errors are turned into HTTP responses in
exactly one place: the exception handlers registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from userdir import __version__
from userdir.api import api_router
from userdir.config import settings
from userdir.errors import InvalidTokenError, UserDirectoryError

logger = structlog.get_logger()


async def run_seed() -> None:
    """Seed roles and the first administrator with a short-lived session."""
    from userdir.db.engine import async_session_factory
    from userdir.repositories.roles import RoleRepository
    from userdir.repositories.user_roles import UserRoleRepository
    from userdir.repositories.users import UserRepository
    from userdir.services.seeding import seed_database

    async with async_session_factory() as db:
        report = await seed_database(
            roles=RoleRepository(db),
            users=UserRepository(db),
            user_roles=UserRoleRepository(db),
            settings=settings,
        )
    logger.info(
        "userdir.seeded",
        roles_created=report.roles_created,
        admin_created=report.admin_created,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "userdir.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    if settings.seed_on_startup:
        await run_seed()

    yield

    logger.info("userdir.shutdown")
    from userdir.db.engine import engine
    await engine.dispose()


async def handle_domain_error(request: Request, exc: UserDirectoryError):
    if exc.status_code >= 500:
        logger.error("http.domain_error", error=exc.message, kind=type(exc).__name__)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, InvalidTokenError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


async def handle_validation_error(request: Request, exc: RequestValidationError):
    """Malformed bodies are client data errors: 400, like duplicates."""
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": errors},
    )


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="User Directory",
        description="User directory with token auth and role-based access control",
        version=__version__,
        lifespan=lifespan,
    )

    # Request flow: RequestId → CORS → handler
    from userdir.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(UserDirectoryError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: userdir.main:app)
app = create_app()
