"""Register, login, refresh, logout and password management.

Refresh tokens form a rotation chain inside a session: every successful
refresh revokes the presented token and issues a new one. Presenting a token
that was already rotated is treated as theft and signs the user out
everywhere.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from locolive.auth.google import ExternalIdentity
from locolive.auth.security import (
    generate_reset_token,
    get_password_hash,
    hash_token,
    password_policy_violations,
    verify_password,
)
from locolive.auth.tokens import TokenKind, TokenManager, TokenPair
from locolive.core.exceptions import (
    AlreadyExistsError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    TokenExpiredError,
    TokenRevokedError,
    ValidationError,
)
from locolive.core.timeutils import as_utc, utc_now
from locolive.models.user import User
from locolive.repositories.auth import AuthRepository

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100


@dataclass(frozen=True)
class ClientInfo:
    device_info: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AuthResult:
    user: User
    tokens: TokenPair
    session_id: uuid.UUID
    is_new_user: bool = False


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(
        self,
        repo: AuthRepository,
        tokens: TokenManager,
        *,
        session_lifetime: timedelta = timedelta(days=30),
        reset_token_lifetime: timedelta = timedelta(hours=1),
    ) -> None:
        self.repo = repo
        self.tokens = tokens
        self.session_lifetime = session_lifetime
        self.reset_token_lifetime = reset_token_lifetime

    # Issuance

    async def _issue_pair(self, user: User, session_id: uuid.UUID) -> TokenPair:
        pair = self.tokens.issue_pair(user.id, session_id, user.email)
        await self.repo.create_refresh_token(
            user_id=user.id,
            session_id=session_id,
            token_hash=hash_token(pair.refresh_token),
            expires_at=pair.refresh_expires_at,
        )
        return pair

    async def _start_session(self, user: User, client: ClientInfo | None, *, is_new_user: bool = False) -> AuthResult:
        client = client or ClientInfo()
        session = await self.repo.create_session(
            user_id=user.id,
            expires_at=utc_now() + self.session_lifetime,
            device_info=client.device_info,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        pair = await self._issue_pair(user, session.id)
        return AuthResult(user=user, tokens=pair, session_id=session.id, is_new_user=is_new_user)

    async def _revoke_everything(self, user_id: uuid.UUID) -> None:
        # sessions first: a rotation racing with this sees the dead session
        await self.repo.deactivate_user_sessions(user_id)
        await self.repo.revoke_user_refresh_tokens(user_id)

    # Public operations

    async def register(self, email: str, password: str, name: str, *, client: ClientInfo | None = None) -> AuthResult:
        email = normalize_email(email)
        name = name.strip()
        violations = password_policy_violations(password)
        if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
            violations.append(f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters.")
        if violations:
            raise ValidationError(errors=violations)

        if await self.repo.user_exists_by_email(email):
            raise AlreadyExistsError("User with this email already exists")

        user = await self.repo.create_user(name=name, email=email, password_hash=get_password_hash(password))
        logger.info("Registered user %s", user.id)
        return await self._start_session(user, client, is_new_user=True)

    async def login(self, email: str, password: str, *, client: ClientInfo | None = None) -> AuthResult:
        try:
            user: User | None = await self.repo.get_user_by_email(normalize_email(email))
        except NotFoundError:
            user = None

        # always runs a bcrypt comparison so unknown emails cost the same as wrong passwords
        password_ok = verify_password(password, user.password_hash if user is not None else None)
        if user is None or not password_ok or not user.is_active:
            raise InvalidCredentialsError()
        return await self._start_session(user, client)

    async def google_login(self, identity: ExternalIdentity, *, client: ClientInfo | None = None) -> AuthResult:
        is_new_user = False
        try:
            user = await self.repo.get_user_by_google_id(identity.subject)
        except NotFoundError:
            try:
                existing = await self.repo.get_user_by_email(identity.email)
            except NotFoundError:
                name = (identity.name or identity.email.split("@")[0])[:NAME_MAX_LENGTH]
                if len(name) < NAME_MIN_LENGTH:
                    name = identity.email[:NAME_MAX_LENGTH]
                user = await self.repo.create_user(
                    name=name,
                    email=identity.email,
                    google_id=identity.subject,
                    email_verified=identity.email_verified,
                    avatar_url=identity.picture,
                )
                is_new_user = True
            else:
                user = await self.repo.link_google_account(existing.id, identity.subject)

        if not user.is_active:
            raise InvalidCredentialsError()
        return await self._start_session(user, client, is_new_user=is_new_user)

    async def refresh(self, presented_token: str) -> TokenPair:
        claims = self.tokens.verify(presented_token, TokenKind.REFRESH)

        try:
            record = await self.repo.get_refresh_token_by_hash(hash_token(presented_token))
        except NotFoundError:
            raise TokenRevokedError() from None
        if record.user_id != claims.user_id:
            raise TokenRevokedError()

        # the revoke is the compare-and-swap: exactly one concurrent caller wins
        if record.revoked or not await self.repo.revoke_refresh_token(record.id):
            logger.warning("Refresh token reuse detected for user %s; revoking all sessions", record.user_id)
            await self._revoke_everything(record.user_id)
            raise TokenRevokedError()

        try:
            user = await self.repo.get_user_by_id(record.user_id)
        except NotFoundError:
            raise TokenRevokedError() from None
        if not user.is_active:
            raise TokenRevokedError()

        session_id = record.session_id
        if session_id is None:
            session = await self.repo.create_session(user_id=user.id, expires_at=utc_now() + self.session_lifetime)
            session_id = session.id
        else:
            try:
                session = await self.repo.get_session(session_id)
            except NotFoundError:
                raise TokenRevokedError() from None
            if not session.is_active:
                raise TokenRevokedError()
            if as_utc(session.expires_at) <= utc_now():
                await self.repo.deactivate_session(session_id)
                raise TokenExpiredError("Session has expired")
            await self.repo.touch_session(session_id)

        pair = await self._issue_pair(user, session_id)

        # a concurrent reuse detection may have killed the session meanwhile
        session = await self.repo.get_session(session_id)
        if not session.is_active:
            await self.repo.revoke_refresh_token_by_hash(hash_token(pair.refresh_token))
            raise TokenRevokedError()
        return pair

    async def logout(self, presented_token: str) -> None:
        token_hash = hash_token(presented_token)
        try:
            record = await self.repo.get_refresh_token_by_hash(token_hash)
        except NotFoundError:
            return
        await self.repo.revoke_refresh_token_by_hash(token_hash)
        if record.session_id is not None:
            await self.repo.deactivate_session(record.session_id)

    async def logout_all(self, user_id: uuid.UUID) -> None:
        await self._revoke_everything(user_id)
        logger.info("Signed out all sessions for user %s", user_id)

    # Password management

    async def initiate_password_reset(self, email: str) -> str | None:
        """Mint a reset token for a known email. Unknown emails return ``None``."""
        try:
            user = await self.repo.get_user_by_email(normalize_email(email))
        except NotFoundError:
            return None
        if not user.is_active:
            return None

        token = generate_reset_token()
        await self.repo.create_password_reset_token(
            user_id=user.id,
            token_hash=hash_token(token),
            expires_at=utc_now() + self.reset_token_lifetime,
        )
        return token

    async def reset_password(self, token: str, new_password: str) -> None:
        violations = password_policy_violations(new_password)
        if violations:
            raise ValidationError(errors=violations)

        try:
            record = await self.repo.get_password_reset_token(hash_token(token))
        except NotFoundError:
            raise InvalidTokenError("Invalid or expired reset token") from None
        if record.used:
            raise InvalidTokenError("Invalid or expired reset token")
        if as_utc(record.expires_at) <= utc_now():
            raise TokenExpiredError("Reset token has expired")
        if not await self.repo.mark_password_reset_token_used(record.id):
            raise InvalidTokenError("Invalid or expired reset token")

        await self.repo.update_user_password(record.user_id, get_password_hash(new_password))
        await self._revoke_everything(record.user_id)
        logger.info("Password reset completed for user %s", record.user_id)

    async def update_password(self, user_id: uuid.UUID, current_password: str, new_password: str) -> None:
        violations = password_policy_violations(new_password)
        if violations:
            raise ValidationError(errors=violations)

        user = await self.repo.get_user_by_id(user_id)
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Incorrect current password")
        await self.repo.update_user_password(user_id, get_password_hash(new_password))

    async def update_email(self, user_id: uuid.UUID, new_email: str, password: str) -> User:
        new_email = normalize_email(new_email)
        user = await self.repo.get_user_by_id(user_id)
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Incorrect password")
        if new_email == user.email:
            return user
        if await self.repo.user_exists_by_email(new_email):
            raise AlreadyExistsError("Email already in use")
        await self.repo.update_user_email(user_id, new_email)
        return await self.repo.get_user_by_id(user_id)

    # Profile

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.repo.get_user_by_id(user_id)
        if not user.is_active:
            raise NotFoundError("User not found")
        return user

    async def update_profile(self, user_id: uuid.UUID, fields: dict[str, Any]) -> User:
        if "name" in fields:
            name = (fields["name"] or "").strip()
            if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
                raise ValidationError(f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters.")
            fields["name"] = name
        user = await self.get_user(user_id)
        return await self.repo.update_user(user, fields)

    async def register_push_token(self, session_id: uuid.UUID, push_token: str | None) -> None:
        await self.repo.update_session_push_token(session_id, push_token)
