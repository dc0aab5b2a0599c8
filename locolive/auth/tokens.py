"""Signed, time-boxed credentials.

The token manager is pure: it holds the signing secret and lifetimes and never
touches storage. Refresh tokens are only meaningful together with their stored
hash, which the auth service owns.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from locolive.core.exceptions import InvalidTokenError, TokenExpiredError
from locolive.core.timeutils import as_utc, utc_now


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    kind: TokenKind
    token_id: str
    issued_at: datetime
    expires_at: datetime
    session_id: uuid.UUID | None = None
    email: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


class TokenManager:
    def __init__(
        self,
        secret_key: str,
        *,
        access_lifetime: timedelta,
        refresh_lifetime: timedelta,
        algorithm: str = "HS256",
        issuer: str = "locolive",
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._issuer = issuer
        self.access_lifetime = access_lifetime
        self.refresh_lifetime = refresh_lifetime

    def _encode(self, kind: TokenKind, user_id: uuid.UUID, lifetime: timedelta, extra: dict[str, Any]) -> tuple[str, datetime]:
        now = utc_now()
        expires_at = now + lifetime
        claims: dict[str, Any] = {
            "sub": str(user_id),
            "type": kind.value,
            "jti": uuid.uuid4().hex,
            "iss": self._issuer,
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            **extra,
        }
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm), expires_at

    def issue_access_token(self, user_id: uuid.UUID, session_id: uuid.UUID, email: str | None) -> tuple[str, datetime]:
        extra: dict[str, Any] = {"sid": str(session_id)}
        if email:
            extra["email"] = email
        return self._encode(TokenKind.ACCESS, user_id, self.access_lifetime, extra)

    def issue_refresh_token(self, user_id: uuid.UUID) -> tuple[str, datetime]:
        return self._encode(TokenKind.REFRESH, user_id, self.refresh_lifetime, {})

    def issue_pair(self, user_id: uuid.UUID, session_id: uuid.UUID, email: str | None) -> TokenPair:
        access_token, access_expires_at = self.issue_access_token(user_id, session_id, email)
        refresh_token, refresh_expires_at = self.issue_refresh_token(user_id)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=access_expires_at,
            refresh_expires_at=refresh_expires_at,
        )

    def verify(self, token: str, expected_kind: TokenKind) -> TokenClaims:
        """Check signature, lifetime and token kind.

        Raises ``TokenExpiredError`` for a well-signed but expired token and
        ``InvalidTokenError`` for everything else, including a token of the
        wrong kind.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
            )
        except ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except JWTError as exc:
            raise InvalidTokenError() from exc

        if payload.get("type") != expected_kind.value:
            raise InvalidTokenError()
        try:
            user_id = uuid.UUID(str(payload["sub"]))
            session_id = uuid.UUID(str(payload["sid"])) if payload.get("sid") else None
            return TokenClaims(
                user_id=user_id,
                kind=expected_kind,
                token_id=str(payload["jti"]),
                issued_at=as_utc(payload["iat"]),
                expires_at=as_utc(payload["exp"]),
                session_id=session_id,
                email=payload.get("email"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError() from exc
