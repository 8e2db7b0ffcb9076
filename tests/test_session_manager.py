"""Session manager tests — login, validate, logout, refresh.

Learn: These exercise the service directly (no HTTP), against a real
database, with a shared fake clock driving both token expiry and
session expiry.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from lonepengu.auth.store import SessionStore
from lonepengu.auth.tokens import TokenClaims, TokenPurpose
from lonepengu.db.models import AuthSession, SessionState, User, UserPreferences
from lonepengu.errors import (
    InputValidationError,
    InvalidProviderError,
    InvalidRefreshTokenError,
    SessionNotFoundError,
    StorageUnavailableError,
    WrongTokenPurposeError,
)


async def _session_row(database, access_token):
    async with database.transaction() as tx:
        result = await tx.execute(
            select(AuthSession).where(AuthSession.access_token == access_token)
        )
        return result.scalars().first()


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_first_login_then_returning_login(manager, database, count_rows):
    first = await manager.login(email="a@x.com", provider="email")
    second = await manager.login(email="a@x.com", provider="email")

    assert first.is_new is True
    assert second.is_new is False
    assert second.subject_id == first.subject_id
    assert await count_rows(database, User) == 1
    assert await count_rows(database, UserPreferences) == 1
    # One session per login, no dedup by device
    assert await count_rows(database, AuthSession) == 2


@pytest.mark.asyncio
async def test_login_persists_session_with_access_ttl_expiry(manager, database, clock):
    result = await manager.login(
        email="a@x.com",
        provider="google",
        name="Ann",
        device_info={"platform": "ios", "app_version": "1.2.0"},
        ip_address="203.0.113.7",
    )

    assert result.expires_at == clock.now + timedelta(days=30)
    assert result.user.email == "a@x.com"
    assert result.user.name == "Ann"

    row = await _session_row(database, result.access_token)
    assert row.user_id == result.subject_id
    assert row.refresh_token == result.refresh_token
    assert row.expires_at == result.expires_at
    assert row.device_info == {"platform": "ios", "app_version": "1.2.0"}
    assert row.ip_address == "203.0.113.7"
    assert row.is_valid is True
    assert row.last_used_at is None
    assert row.state(clock.now) is SessionState.ACTIVE


@pytest.mark.asyncio
async def test_login_tokens_carry_identity_and_purpose(manager, codec):
    result = await manager.login(email="a@x.com", provider="apple")

    access = codec.verify(result.access_token)
    refresh = codec.verify(result.refresh_token)
    assert isinstance(access, TokenClaims) and isinstance(refresh, TokenClaims)
    assert access.subject_id == refresh.subject_id == str(result.subject_id)
    assert access.purpose == TokenPurpose.ACCESS
    assert refresh.purpose == TokenPurpose.REFRESH
    assert refresh.expires_at > access.expires_at


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email, provider",
    [(None, "email"), ("", "email"), ("a@x.com", None), ("a@x.com", "")],
)
async def test_login_requires_email_and_provider(manager, database, email, provider, count_rows):
    with pytest.raises(InputValidationError):
        await manager.login(email=email, provider=provider)
    assert await count_rows(database, User) == 0


@pytest.mark.asyncio
async def test_login_rejects_unknown_provider(manager, database, count_rows):
    with pytest.raises(InvalidProviderError):
        await manager.login(email="a@x.com", provider="github")
    assert await count_rows(database, User) == 0


@pytest.mark.asyncio
async def test_failed_session_insert_rolls_back_new_user(
    manager, database, monkeypatch, count_rows
):
    async def broken_create(self, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(SessionStore, "create", broken_create)

    with pytest.raises(RuntimeError):
        await manager.login(email="a@x.com", provider="email")

    assert await count_rows(database, User) == 0
    assert await count_rows(database, UserPreferences) == 0
    assert await count_rows(database, AuthSession) == 0


@pytest.mark.asyncio
async def test_concurrent_first_logins_create_one_user(manager, database, count_rows):
    results = await asyncio.gather(
        *(manager.login(email="race@x.com", provider="email") for _ in range(5))
    )

    assert len({r.subject_id for r in results}) == 1
    assert sum(r.is_new for r in results) == 1
    assert await count_rows(database, User, User.email == "race@x.com") == 1
    assert await count_rows(database, UserPreferences) == 1
    assert await count_rows(database, AuthSession) == 5


# ═══════════════════════════════════════════════════════════
# Validate
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_validate_active_session_touches_last_used(manager, database, clock):
    login = await manager.login(email="a@x.com", provider="email", name="Ann")
    clock.advance(minutes=5)

    result = await manager.validate(login.access_token)

    assert result.valid is True
    assert result.user.id == login.subject_id
    assert result.user.email == "a@x.com"
    assert result.user.name == "Ann"
    row = await _session_row(database, login.access_token)
    assert row.last_used_at == clock.now


@pytest.mark.asyncio
async def test_validate_unknown_token_fails_closed(manager, codec):
    stray = codec.issue("00000000-0000-0000-0000-000000000001", "x@x.com",
                        TokenPurpose.ACCESS, timedelta(days=1))
    result = await manager.validate(stray)
    assert result.valid is False
    assert result.user is None


@pytest.mark.asyncio
async def test_validate_garbage_token_fails_closed(manager):
    result = await manager.validate("definitely.not.ajwt")
    assert result.valid is False
    assert result.user is None


@pytest.mark.asyncio
async def test_validate_after_expiry_fails_closed(manager, database, clock):
    login = await manager.login(email="a@x.com", provider="email")
    clock.advance(days=30, seconds=1)

    result = await manager.validate(login.access_token)

    assert result.valid is False
    row = await _session_row(database, login.access_token)
    # Expiry is detected lazily, never written back
    assert row.is_valid is True
    assert row.state(clock.now) is SessionState.EXPIRED


@pytest.mark.asyncio
async def test_validate_survives_failed_last_used_touch(manager, database, monkeypatch):
    login = await manager.login(email="a@x.com", provider="email")

    async def broken_touch(self, session_id, now):
        raise StorageUnavailableError()

    monkeypatch.setattr(SessionStore, "touch", broken_touch)

    result = await manager.validate(login.access_token)

    assert result.valid is True
    row = await _session_row(database, login.access_token)
    assert row.last_used_at is None


# ═══════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_invalidates_session(manager, database, clock):
    login = await manager.login(email="a@x.com", provider="email")

    assert await manager.logout(login.access_token) is True

    result = await manager.validate(login.access_token)
    assert result.valid is False
    row = await _session_row(database, login.access_token)
    assert row.state(clock.now) is SessionState.INVALIDATED


@pytest.mark.asyncio
async def test_logout_is_idempotent(manager):
    login = await manager.login(email="a@x.com", provider="email")

    assert await manager.logout(login.access_token) is True
    assert await manager.logout(login.access_token) is False
    assert await manager.logout("never-issued") is False


@pytest.mark.asyncio
async def test_logout_works_on_expired_session(manager, database, clock):
    login = await manager.login(email="a@x.com", provider="email")
    clock.advance(days=31)

    assert await manager.logout(login.access_token) is True
    row = await _session_row(database, login.access_token)
    assert row.is_valid is False


@pytest.mark.asyncio
async def test_logout_leaves_other_devices_signed_in(manager):
    phone = await manager.login(email="a@x.com", provider="email")
    laptop = await manager.login(email="a@x.com", provider="email")

    await manager.logout(phone.access_token)

    assert (await manager.validate(phone.access_token)).valid is False
    assert (await manager.validate(laptop.access_token)).valid is True


# ═══════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_rotates_access_token_in_place(manager, database, clock, count_rows):
    login = await manager.login(email="a@x.com", provider="email")
    clock.advance(days=1)

    refreshed = await manager.refresh(login.refresh_token)

    assert refreshed.access_token != login.access_token
    assert refreshed.expires_at == clock.now + timedelta(days=30)
    assert (await manager.validate(login.access_token)).valid is False
    assert (await manager.validate(refreshed.access_token)).valid is True

    # Same row, new access token, same refresh token
    assert await count_rows(database, AuthSession) == 1
    row = await _session_row(database, refreshed.access_token)
    assert row.refresh_token == login.refresh_token
    assert row.expires_at == refreshed.expires_at


@pytest.mark.asyncio
async def test_refresh_revives_expired_access_token(manager, clock):
    login = await manager.login(email="a@x.com", provider="email")
    clock.advance(days=45)

    refreshed = await manager.refresh(login.refresh_token)

    assert (await manager.validate(refreshed.access_token)).valid is True


@pytest.mark.asyncio
async def test_refresh_token_can_be_reused(manager):
    """Refresh tokens are not rotated on use."""
    login = await manager.login(email="a@x.com", provider="email")

    first = await manager.refresh(login.refresh_token)
    second = await manager.refresh(login.refresh_token)

    assert (await manager.validate(first.access_token)).valid is False
    assert (await manager.validate(second.access_token)).valid is True


@pytest.mark.asyncio
async def test_refresh_after_logout_is_session_not_found(manager, codec):
    login = await manager.login(email="a@x.com", provider="email")
    await manager.logout(login.access_token)

    assert isinstance(codec.verify(login.refresh_token), TokenClaims)
    with pytest.raises(SessionNotFoundError):
        await manager.refresh(login.refresh_token)


@pytest.mark.asyncio
async def test_refresh_with_access_token_is_wrong_purpose(manager):
    login = await manager.login(email="a@x.com", provider="email")
    with pytest.raises(WrongTokenPurposeError):
        await manager.refresh(login.access_token)


@pytest.mark.asyncio
async def test_refresh_with_garbage_is_invalid(manager):
    with pytest.raises(InvalidRefreshTokenError):
        await manager.refresh("garbage")


@pytest.mark.asyncio
async def test_refresh_after_refresh_token_expiry_is_invalid(manager, clock):
    login = await manager.login(email="a@x.com", provider="email")
    clock.advance(days=90, seconds=1)
    with pytest.raises(InvalidRefreshTokenError):
        await manager.refresh(login.refresh_token)


@pytest.mark.asyncio
async def test_refresh_requires_a_token(manager):
    with pytest.raises(InputValidationError):
        await manager.refresh("")
