"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and the
database is reachable. Never fails itself — a dead database shows up as
"degraded" so load balancers can tell the two apart.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from lonepengu import __version__
from lonepengu.auth.dependencies import get_database
from lonepengu.db.engine import Database
from lonepengu.errors import StorageError

router = APIRouter()


@router.get("/health")
async def health_check(database: Database = Depends(get_database)):
    """Check server health and database connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await database.ping()
        checks["database"] = "ok"
    except StorageError as e:
        checks["database"] = f"error: {e.message}"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {
        "status": status,
        **checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
