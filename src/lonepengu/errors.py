"""Error taxonomy shared by the service layer and the HTTP interface.

Each exception carries the HTTP status and the stable error code the
API renders, so route handlers never translate errors by hand:

- InputValidationError   → 400 (bad or missing request fields)
- AuthFailureError       → 401 (missing/expired/invalid credentials)
- StorageError           → 500/409/400/503 (database failures)

Every authentication failure maps to 401, including malformed tokens.
"""

from typing import Optional


class AuthServiceError(Exception):
    """Base class for errors rendered as ``{success: false, message, code}``."""

    status_code: int = 400
    code: str = "BAD_REQUEST"
    default_message: str = "Bad request"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ─── Input validation (400) ───────────────────────────────


class InputValidationError(AuthServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class InvalidProviderError(InputValidationError):
    code = "INVALID_PROVIDER"
    default_message = "Invalid auth provider"


# ─── Authentication failures (401) ────────────────────────


class AuthFailureError(AuthServiceError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication failed"


class MissingTokenError(AuthFailureError):
    code = "NO_TOKEN"
    default_message = "Access token required"


class TokenExpiredError(AuthFailureError):
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class InvalidTokenError(AuthFailureError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class InvalidRefreshTokenError(AuthFailureError):
    code = "INVALID_REFRESH_TOKEN"
    default_message = "Invalid refresh token"


class WrongTokenPurposeError(AuthFailureError):
    code = "WRONG_TOKEN_PURPOSE"
    default_message = "Invalid token type"


class SessionNotFoundError(AuthFailureError):
    code = "SESSION_NOT_FOUND"
    default_message = "Session not found or expired"


# ─── Storage ──────────────────────────────────────────────


class StorageError(AuthServiceError):
    """A database operation failed. The client may retry later."""

    status_code = 500
    code = "STORAGE_ERROR"
    default_message = "Database operation failed"


class StorageConflictError(StorageError):
    status_code = 409
    code = "DUPLICATE_ENTRY"
    default_message = "Resource already exists"


class ForeignKeyViolationError(StorageError):
    status_code = 400
    code = "FOREIGN_KEY_VIOLATION"
    default_message = "Referenced resource not found"


class StorageUnavailableError(StorageError):
    status_code = 503
    code = "DB_CONNECTION_ERROR"
    default_message = "Database connection failed"
