"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan owns the database pool: it is created at startup,
hung on app.state together with the SessionManager built on top of it,
and disposed at shutdown. Routes reach both through dependencies, which
tests override.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from lonepengu import __version__
from lonepengu.api import api_router, health_router
from lonepengu.api.errors import register_exception_handlers
from lonepengu.config import Settings, settings as default_settings
from lonepengu.db.engine import Database
from lonepengu.logging import configure_logging
from lonepengu.middleware.request_id import RequestIdMiddleware
from lonepengu.services.session_manager import SessionManager

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. The pool is disposed even if the server exits on an error.
    """
    settings: Settings = app.state.settings
    logger.info(
        "lonepengu.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    database = Database.from_settings(settings)
    try:
        if settings.auto_create_schema:
            await database.create_schema()
            logger.info("lonepengu.schema_created")
        app.state.database = database
        app.state.session_manager = SessionManager.from_settings(database, settings)
        yield
    finally:
        logger.info("lonepengu.shutdown")
        await database.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or default_settings
    configure_logging(settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title="LonePengu Auth",
        description="Authentication and session lifecycle service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app, settings)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: lonepengu.main:app)
app = create_app()
