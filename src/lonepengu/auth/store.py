"""Session store — persistence for issued credential pairs.

Pattern: repository over the sessions table, bound to one transaction.
Construct it with the transaction's session, call methods, and let the
owner commit. Only SessionManager constructs it.

Lookups join the owning user so a validation needs a single round trip.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lonepengu.db.models import AuthSession, User


class SessionStore:
    """Reads and writes session rows within the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        *,
        user_id: uuid.UUID,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        created_at: datetime,
        device_info: Optional[Any] = None,
        ip_address: Optional[str] = None,
    ) -> AuthSession:
        session = AuthSession(
            user_id=user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            device_info=device_info,
            ip_address=ip_address,
            expires_at=expires_at,
            is_valid=True,
            created_at=created_at,
        )
        self.db.add(session)
        await self.db.flush()
        return session

    async def get_by_access_token(
        self, access_token: str
    ) -> Optional[tuple[AuthSession, User]]:
        """Session + owner for an access token, whatever its state."""
        result = await self.db.execute(
            select(AuthSession, User)
            .join(User, AuthSession.user_id == User.id)
            .where(AuthSession.access_token == access_token)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def get_active_by_refresh_token(
        self, refresh_token: str
    ) -> Optional[tuple[AuthSession, User]]:
        """Still-valid session for a refresh token, locked for rotation."""
        result = await self.db.execute(
            select(AuthSession, User)
            .join(User, AuthSession.user_id == User.id)
            .where(
                AuthSession.refresh_token == refresh_token,
                AuthSession.is_valid.is_(True),
            )
            .with_for_update(of=AuthSession)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def invalidate(self, access_token: str) -> int:
        """Mark the session for this access token invalid. Returns rows hit."""
        result = await self.db.execute(
            update(AuthSession)
            .where(
                AuthSession.access_token == access_token,
                AuthSession.is_valid.is_(True),
            )
            .values(is_valid=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def touch(self, session_id: int, now: datetime) -> None:
        await self.db.execute(
            update(AuthSession)
            .where(AuthSession.id == session_id)
            .values(last_used_at=now)
            .execution_options(synchronize_session=False)
        )

    async def rotate(
        self,
        session_id: int,
        *,
        access_token: str,
        expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Swap in a new access token and expiry. False if the row was invalidated."""
        result = await self.db.execute(
            update(AuthSession)
            .where(AuthSession.id == session_id, AuthSession.is_valid.is_(True))
            .values(access_token=access_token, expires_at=expires_at, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
