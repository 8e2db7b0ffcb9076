"""Auth API — login, logout, session validation, token refresh.

Learn: Routes for the session lifecycle:
- POST /auth/login    → upstream identity assertion → access + refresh tokens
- POST /auth/logout   → invalidate the bearer token's session (always succeeds)
- GET  /auth/validate → is the bearer token's session still usable?
- POST /auth/refresh  → refresh token → new access token on the same session

Handlers stay thin: errors raised by the SessionManager carry their own
status and code and are rendered by the handlers in api/errors.py.
"""

from fastapi import APIRouter, Depends, Request

from lonepengu.auth.dependencies import (
    bearer_token,
    get_session_manager,
    verified_access_token,
)
from lonepengu.schemas.auth import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RefreshRequest,
    RefreshResponse,
    UserSnapshot,
    ValidateResponse,
)
from lonepengu.services.session_manager import SessionManager

router = APIRouter(prefix="/auth")

_errors = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=LoginResponse, responses=_errors)
async def login(
    body: LoginRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
):
    """Log in with an upstream identity assertion → tokens."""
    result = await manager.login(
        email=body.email,
        provider=body.auth_provider,
        provider_id=body.provider_id,
        name=body.name,
        avatar_url=body.avatar_url,
        device_info=body.device_info,
        ip_address=request.client.host if request.client else None,
    )
    return LoginResponse(
        user_id=result.subject_id,
        is_new_user=result.is_new,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_at=result.expires_at,
        user=UserSnapshot.model_validate(result.user),
    )


# ─── Logout ──────────────────────────────────────────────


@router.post("/logout", response_model=LogoutResponse, responses=_errors)
async def logout(
    token: str = Depends(bearer_token),
    manager: SessionManager = Depends(get_session_manager),
):
    """Invalidate the current session. Succeeds even for unknown tokens."""
    await manager.logout(token)
    return LogoutResponse()


# ─── Validate ────────────────────────────────────────────


@router.get("/validate", response_model=ValidateResponse, responses=_errors)
async def validate(
    token: str = Depends(verified_access_token),
    manager: SessionManager = Depends(get_session_manager),
):
    """Check whether the bearer token's session is still active."""
    result = await manager.validate(token)
    user = UserSnapshot.model_validate(result.user) if result.user else None
    return ValidateResponse(valid=result.valid, user=user)


# ─── Refresh ─────────────────────────────────────────────


@router.post("/refresh", response_model=RefreshResponse, responses=_errors)
async def refresh(
    body: RefreshRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    """Exchange a refresh token for a new access token."""
    result = await manager.refresh(body.refresh_token)
    return RefreshResponse(
        access_token=result.access_token,
        expires_at=result.expires_at,
    )
