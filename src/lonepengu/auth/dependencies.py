"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to pull the shared
SessionManager off the app and to extract the bearer token.

Two strengths of bearer extraction:
1. bearer_token          — header must be present (logout)
2. verified_access_token — header present AND the token verifies (validate)

Every failure is a 401 with a distinct code: NO_TOKEN, TOKEN_EXPIRED,
INVALID_TOKEN.
"""

from typing import Optional

from fastapi import Depends, Header, Request

from lonepengu.auth.tokens import TokenClaims, TokenFailure
from lonepengu.db.engine import Database
from lonepengu.errors import InvalidTokenError, MissingTokenError, TokenExpiredError
from lonepengu.services.session_manager import SessionManager


def get_session_manager(request: Request) -> SessionManager:
    """The SessionManager built in the app lifespan."""
    return request.app.state.session_manager


def get_database(request: Request) -> Database:
    return request.app.state.database


async def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    """Extract the raw token from ``Authorization: Bearer <token>``."""
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    raise MissingTokenError()


async def verified_access_token(
    token: str = Depends(bearer_token),
    manager: SessionManager = Depends(get_session_manager),
) -> str:
    """Bearer token that also passes signature and expiry checks."""
    result = manager.codec.verify(token)
    if isinstance(result, TokenClaims):
        return token
    if result.reason is TokenFailure.EXPIRED:
        raise TokenExpiredError()
    raise InvalidTokenError()
