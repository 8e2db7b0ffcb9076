"""Exception handlers — one JSON error shape for every failure.

Every error response is ``{"success": false, "message": ..., "code": ...}``.
Service errors carry their own status and code; request-body validation
failures become 400 VALIDATION_ERROR naming only the offending fields;
anything uncaught becomes 500 INTERNAL_ERROR, logged in full, with the
exception text withheld from the client in production.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lonepengu.config import Settings
from lonepengu.errors import AuthServiceError

logger = structlog.get_logger()


def error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "code": code},
    )


def _is_body_field_error(err: dict) -> bool:
    """True for errors that name a body field, not a JSON decode position."""
    loc = err.get("loc") or ()
    return (
        err.get("type") != "json_invalid"
        and len(loc) > 1
        and loc[0] == "body"
        and isinstance(loc[-1], str)
    )


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Install handlers for service, validation, HTTP and unexpected errors."""

    @app.exception_handler(AuthServiceError)
    async def handle_service_error(request: Request, exc: AuthServiceError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "http.service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
        )
        return error_response(exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        fields = sorted(
            {err["loc"][-1] for err in exc.errors() if _is_body_field_error(err)}
        )
        message = (
            f"Invalid fields: {', '.join(fields)}" if fields else "Invalid request body"
        )
        return error_response(400, message, "VALIDATION_ERROR")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                404,
                f"Route {request.method} {request.url.path} not found",
                "NOT_FOUND",
            )
        return error_response(exc.status_code, str(exc.detail), "HTTP_ERROR")

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(
            "http.unhandled_error",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        message = (
            "An unexpected error occurred"
            if settings.is_production
            else str(exc) or "Internal Server Error"
        )
        response = error_response(500, message, "INTERNAL_ERROR")
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            response.headers["X-Request-ID"] = request_id
        return response
