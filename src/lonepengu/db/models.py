"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Constraints and indexes are defined here.

Key concepts:
- UUID primary keys for users (opaque, stable subject ids)
- Generic Uuid / JSON types so the same models run on PostgreSQL
  (native UUID + JSONB) and on the SQLite file used by the test suite
- The unique constraint on users.email is what makes concurrent
  first-time logins race-free (see auth/identity.py)
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    Uuid,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from lonepengu.errors import InvalidProviderError

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite drops tzinfo on storage; this puts it back on the way out so
    expiry comparisons never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class AuthProvider(str, enum.Enum):
    """Upstream identity providers whose assertions we accept."""

    GOOGLE = "google"
    EMAIL = "email"
    APPLE = "apple"

    @classmethod
    def parse(cls, value: Any) -> "AuthProvider":
        try:
            return cls(value)
        except ValueError:
            raise InvalidProviderError() from None


class SessionState(str, enum.Enum):
    """Derived lifecycle state of a session row. Never stored."""

    ACTIVE = "active"
    EXPIRED = "expired"
    INVALIDATED = "invalidated"


# ══════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════


class User(Base):
    """An authenticated subject, keyed by the email the provider asserted.

    Learn: Created on first login, updated (last_login, and name/avatar
    when supplied) on every later login. Never deleted by the auth core.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "auth_provider IN ('google', 'email', 'apple')",
            name="ck_users_auth_provider",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    auth_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now()
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    meta: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)


class UserPreferences(Base):
    """Per-user preferences. Exactly one row per user, seeded at signup."""

    __tablename__ = "user_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    theme_mode: Mapped[str] = mapped_column(String(20), default="system")
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True)
    last_active_route: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    app_state: Mapped[dict] = mapped_column(JSONType, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), onupdate=utcnow
    )


# ══════════════════════════════════════════════════════════════
# Sessions
# ══════════════════════════════════════════════════════════════


class AuthSession(Base):
    """One issued credential pair, usually one per device login.

    Learn: Looked up by access token on every validation. Refresh rewrites
    access_token/expires_at in place, so a superseded access token no
    longer matches any row. is_valid only ever goes true → false.
    """

    __tablename__ = "sessions"
    __table_args__ = (
        Index("idx_sessions_user", "user_id"),
        Index("idx_sessions_access_token", "access_token", unique=True),
        Index("idx_sessions_refresh_token", "refresh_token", unique=True),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    device_info: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_valid: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    last_used_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now()
    )

    def state(self, now: datetime) -> SessionState:
        if not self.is_valid:
            return SessionState.INVALIDATED
        if self.expires_at <= now:
            return SessionState.EXPIRED
        return SessionState.ACTIVE
