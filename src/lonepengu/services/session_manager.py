"""Session manager — login, validate, logout and refresh.

Learn: Service layer separates business logic from HTTP routing.
Routes call the manager; the manager is the only code that talks to the
token codec, the identity resolver and the session store.

Session lifecycle (state derived on read, never written back):

    login ──▶ ACTIVE ──(expiry passes)──▶ EXPIRED
                │                            │
                └────────(logout)────────────┴──▶ INVALIDATED (terminal)

Refresh rewrites the access token and expiry of an ACTIVE or EXPIRED row
in place. The refresh token itself is reused until it expires or the
session is logged out.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import structlog

from lonepengu.auth.identity import IdentityResolver
from lonepengu.auth.store import SessionStore
from lonepengu.auth.tokens import TokenClaims, TokenCodec, TokenPurpose
from lonepengu.config import Settings
from lonepengu.db.engine import Database
from lonepengu.db.models import AuthProvider, SessionState
from lonepengu.errors import (
    InputValidationError,
    InvalidRefreshTokenError,
    SessionNotFoundError,
    StorageError,
    WrongTokenPurposeError,
)

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SubjectSnapshot:
    id: uuid.UUID
    email: str
    name: Optional[str]


@dataclass
class LoginResult:
    subject_id: uuid.UUID
    is_new: bool
    access_token: str
    refresh_token: str
    expires_at: datetime
    user: SubjectSnapshot


@dataclass
class ValidationResult:
    valid: bool
    user: Optional[SubjectSnapshot] = None


@dataclass
class RefreshResult:
    access_token: str
    expires_at: datetime


class SessionManager:
    """Orchestrates the session lifecycle over an injected Database."""

    def __init__(
        self,
        database: Database,
        codec: TokenCodec,
        *,
        resolver: Optional[IdentityResolver] = None,
        access_ttl: timedelta = timedelta(days=30),
        refresh_ttl: timedelta = timedelta(days=90),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.database = database
        self.codec = codec
        self.resolver = resolver or IdentityResolver()
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, database: Database, settings: Settings) -> "SessionManager":
        return cls(
            database,
            TokenCodec.from_settings(settings),
            access_ttl=settings.access_token_ttl,
            refresh_ttl=settings.refresh_token_ttl,
        )

    # ─── Login ──────────────────────────────────────────

    async def login(
        self,
        *,
        email: Optional[str],
        provider: Optional[str],
        provider_id: Optional[str] = None,
        name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        device_info: Optional[Any] = None,
        ip_address: Optional[str] = None,
    ) -> LoginResult:
        """Resolve the identity and open a new session, all or nothing.

        Learn: Identity resolution, both token mints and the session insert
        share one transaction. If anything after resolution fails, the
        freshly created (or just updated) user row is rolled back too.
        """
        if not email or not provider:
            raise InputValidationError("Email and auth_provider are required")
        auth_provider = AuthProvider.parse(provider)

        now = self._clock()
        expires_at = now + self.access_ttl

        async with self.database.transaction() as tx:
            identity = await self.resolver.resolve(
                tx,
                email=email,
                provider=auth_provider,
                provider_id=provider_id,
                name=name,
                avatar_url=avatar_url,
                now=now,
            )
            subject = str(identity.subject_id)
            access_token = self.codec.issue(
                subject, identity.email, TokenPurpose.ACCESS, self.access_ttl, now=now
            )
            refresh_token = self.codec.issue(
                subject, identity.email, TokenPurpose.REFRESH, self.refresh_ttl, now=now
            )
            await SessionStore(tx).create(
                user_id=identity.subject_id,
                access_token=access_token,
                refresh_token=refresh_token,
                device_info=device_info,
                ip_address=ip_address,
                expires_at=expires_at,
                created_at=now,
            )

        logger.info(
            "auth.login",
            user_id=subject,
            provider=auth_provider.value,
            is_new_user=identity.is_new,
        )
        return LoginResult(
            subject_id=identity.subject_id,
            is_new=identity.is_new,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            user=SubjectSnapshot(identity.subject_id, identity.email, identity.name),
        )

    # ─── Logout ─────────────────────────────────────────

    async def logout(self, access_token: str) -> bool:
        """Invalidate the session for this token. Unknown tokens are a no-op."""
        async with self.database.transaction() as tx:
            invalidated = await SessionStore(tx).invalidate(access_token)
        logger.info("auth.logout", invalidated=invalidated)
        return invalidated > 0

    # ─── Validate ───────────────────────────────────────

    async def validate(self, access_token: str) -> ValidationResult:
        """Check a token against its session row, failing closed."""
        if not isinstance(self.codec.verify(access_token), TokenClaims):
            return ValidationResult(valid=False)

        now = self._clock()
        async with self.database.transaction() as tx:
            found = await SessionStore(tx).get_by_access_token(access_token)
        if found is None:
            return ValidationResult(valid=False)

        session, user = found
        if session.state(now) is not SessionState.ACTIVE:
            return ValidationResult(valid=False)

        await self._touch(session.id, now)
        return ValidationResult(
            valid=True, user=SubjectSnapshot(user.id, user.email, user.name)
        )

    async def _touch(self, session_id: int, now: datetime) -> None:
        """Best-effort last_used_at update; failure never fails validation."""
        try:
            async with self.database.transaction() as tx:
                await SessionStore(tx).touch(session_id, now)
        except StorageError as e:
            logger.warning("auth.touch_failed", session_id=session_id, error=str(e))

    # ─── Refresh ────────────────────────────────────────

    async def refresh(self, refresh_token: str) -> RefreshResult:
        """Exchange a refresh token for a new access token on the same session."""
        if not refresh_token:
            raise InputValidationError("Refresh token is required")

        claims = self.codec.verify(refresh_token)
        if not isinstance(claims, TokenClaims):
            raise InvalidRefreshTokenError(f"Invalid refresh token ({claims.reason.value})")
        if claims.purpose != TokenPurpose.REFRESH:
            raise WrongTokenPurposeError()

        now = self._clock()
        expires_at = now + self.access_ttl

        async with self.database.transaction() as tx:
            store = SessionStore(tx)
            found = await store.get_active_by_refresh_token(refresh_token)
            if found is None:
                raise SessionNotFoundError()
            session, user = found

            access_token = self.codec.issue(
                str(user.id), user.email, TokenPurpose.ACCESS, self.access_ttl, now=now
            )
            if not await store.rotate(
                session.id, access_token=access_token, expires_at=expires_at, now=now
            ):
                raise SessionNotFoundError()

        logger.info("auth.refresh", user_id=str(user.id), session_id=session.id)
        return RefreshResult(access_token=access_token, expires_at=expires_at)
