"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and the database is reachable.
"""

from fastapi import APIRouter

from userdir import __version__
from userdir.db.engine import check_database

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and database connectivity."""
    checks = {"server": "ok", "version": __version__}
    checks["postgres"] = await check_database()
    status = "healthy" if checks["postgres"] == "ok" else "degraded"
    return {"status": status, **checks}
