"""Identity resolution — upstream assertion → stable internal user.

Learn: The first login for an email creates the user and its default
preferences row; every later login updates last_login and, when the
client sends them, name/avatar (never overwriting a stored value with
null).

Two simultaneous first logins for the same email both see "no user".
The insert runs inside a SAVEPOINT; the loser hits the unique constraint
on users.email, rolls back just the savepoint, re-reads the winner's row
and carries on as a returning user. The caller never sees the conflict.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lonepengu.db.models import AuthProvider, User, UserPreferences
from lonepengu.errors import StorageConflictError

logger = structlog.get_logger()


@dataclass
class ResolvedIdentity:
    subject_id: uuid.UUID
    is_new: bool
    email: str
    name: Optional[str]


class IdentityResolver:
    """Find-or-create users by email inside a caller-owned transaction."""

    async def resolve(
        self,
        tx: AsyncSession,
        *,
        email: str,
        provider: AuthProvider,
        now: datetime,
        provider_id: Optional[str] = None,
        name: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> ResolvedIdentity:
        user = await self._find(tx, email)
        if user is None:
            user = await self._try_create(
                tx,
                email=email,
                provider=provider,
                provider_id=provider_id,
                name=name,
                avatar_url=avatar_url,
                now=now,
            )
            if user is not None:
                return ResolvedIdentity(user.id, True, user.email, user.name)

            # Lost the signup race; the row exists now.
            logger.info("auth.signup_conflict", provider=provider.value)
            user = await self._find(tx, email)
            if user is None:
                raise StorageConflictError("User could not be created or found")

        user.last_login = now
        if name is not None:
            user.name = name
        if avatar_url is not None:
            user.avatar_url = avatar_url
        await tx.flush()
        return ResolvedIdentity(user.id, False, user.email, user.name)

    async def _find(self, tx: AsyncSession, email: str) -> Optional[User]:
        result = await tx.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def _try_create(
        self,
        tx: AsyncSession,
        *,
        email: str,
        provider: AuthProvider,
        provider_id: Optional[str],
        name: Optional[str],
        avatar_url: Optional[str],
        now: datetime,
    ) -> Optional[User]:
        """Insert user + preferences. Returns None on a unique-email conflict."""
        user = User(
            id=uuid.uuid4(),
            email=email,
            name=name,
            auth_provider=provider.value,
            provider_id=provider_id,
            avatar_url=avatar_url,
            created_at=now,
            last_login=now,
            meta={},
        )
        try:
            async with tx.begin_nested():
                tx.add(user)
                await tx.flush()
                tx.add(UserPreferences(user_id=user.id))
                await tx.flush()
        except IntegrityError:
            return None
        return user
