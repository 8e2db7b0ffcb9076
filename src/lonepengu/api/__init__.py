"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: The auth routes are open at the router level; each handler
declares the bearer dependency it needs (presence only for logout,
full verification for validate). Health lives outside the /api prefix.
"""

from fastapi import APIRouter

from lonepengu.api.auth import router as auth_router
from lonepengu.api.health import router as health_router

api_router = APIRouter(prefix="/api")
api_router.include_router(auth_router, tags=["auth"])

__all__ = ["api_router", "health_router"]
