"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides tamper-evident bearer credentials.
- Access token: long-lived (30 days), presented on every request
- Refresh token: longer-lived (90 days), exchanged for a new access token

Both carry the subject id and email; the ``type`` claim tags the purpose.
A random ``jti`` makes every token unique even when two are minted for
the same subject within the same second.

verify() never raises. It returns either TokenClaims or TokenRejected,
and the caller branches on the result type.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

import jwt

from lonepengu.config import Settings


class TokenPurpose(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenFailure(str, enum.Enum):
    EXPIRED = "expired"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class TokenClaims:
    subject_id: str
    email: Optional[str]
    purpose: str
    expires_at: datetime
    issued_at: Optional[datetime] = None
    token_id: Optional[str] = None


@dataclass(frozen=True)
class TokenRejected:
    reason: TokenFailure


VerifyResult = Union[TokenClaims, TokenRejected]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Signs and verifies bearer tokens with a process-wide key."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, clock: Callable[[], datetime] = _utcnow
    ) -> "TokenCodec":
        return cls(settings.jwt_secret, settings.jwt_algorithm, clock=clock)

    def issue(
        self,
        subject_id: str,
        email: Optional[str],
        purpose: str,
        ttl: timedelta,
        *,
        now: Optional[datetime] = None,
    ) -> str:
        """Create a signed token expiring at ``now + ttl``."""
        issued = now or self._clock()
        payload = {
            "sub": str(subject_id),
            "email": email,
            "type": str(getattr(purpose, "value", purpose)),
            "jti": uuid.uuid4().hex,
            "iat": int(issued.timestamp()),
            "exp": int((issued + ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token) -> VerifyResult:
        """Verify the signature and expiry of a token.

        Expiry is checked here against the codec's clock rather than by
        PyJWT, so the boundary is exact and testable.
        """
        if not isinstance(token, str) or not token:
            return TokenRejected(TokenFailure.MALFORMED)
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["sub", "exp"],
                },
            )
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
            issued_at = None
            if payload.get("iat") is not None:
                issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
        except (jwt.InvalidTokenError, ValueError, TypeError, OverflowError):
            return TokenRejected(TokenFailure.MALFORMED)

        if self._clock() >= expires_at:
            return TokenRejected(TokenFailure.EXPIRED)

        return TokenClaims(
            subject_id=str(payload["sub"]),
            email=payload.get("email"),
            purpose=payload.get("type") or TokenPurpose.ACCESS.value,
            expires_at=expires_at,
            issued_at=issued_at,
            token_id=payload.get("jti"),
        )
