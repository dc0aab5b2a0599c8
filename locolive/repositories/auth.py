import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from locolive.core.exceptions import AlreadyExistsError, NotFoundError
from locolive.core.timeutils import utc_now
from locolive.models.auth import AuthSession, PasswordResetToken, RefreshToken
from locolive.models.user import User


class AuthRepository:
    """Credential store: users, sessions, refresh and password-reset tokens.

    Every public method is its own transaction. Methods that flip a flag return
    whether this call was the one that flipped it, so callers can build
    single-use semantics on top of them.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # Users

    async def create_user(
        self,
        *,
        name: str,
        email: str | None = None,
        phone: str | None = None,
        password_hash: str | None = None,
        google_id: str | None = None,
        email_verified: bool = False,
        avatar_url: str | None = None,
    ) -> User:
        user = User(
            name=name,
            email=email,
            phone=phone,
            password_hash=password_hash,
            google_id=google_id,
            email_verified=email_verified,
            avatar_url=avatar_url,
            is_active=True,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise AlreadyExistsError("User already exists") from exc
        return user

    async def _get_user_where(self, *criteria) -> User:
        result = await self.db.execute(
            select(User).where(*criteria).execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_user_by_id(self, user_id: uuid.UUID) -> User:
        return await self._get_user_where(User.id == user_id)

    async def get_user_by_email(self, email: str) -> User:
        return await self._get_user_where(User.email == email)

    async def get_user_by_phone(self, phone: str) -> User:
        return await self._get_user_where(User.phone == phone)

    async def get_user_by_google_id(self, google_id: str) -> User:
        return await self._get_user_where(User.google_id == google_id)

    async def user_exists_by_email(self, email: str) -> bool:
        result = await self.db.execute(select(User.id).where(User.email == email))
        return result.first() is not None

    async def user_exists_by_phone(self, phone: str) -> bool:
        result = await self.db.execute(select(User.id).where(User.phone == phone))
        return result.first() is not None

    async def update_user(self, user: User, fields: dict[str, Any]) -> User:
        for field, value in fields.items():
            setattr(user, field, value)
        user.updated_at = utc_now()
        self.db.add(user)
        await self.db.commit()
        return user

    async def update_user_password(self, user_id: uuid.UUID, password_hash: str) -> None:
        await self.db.execute(
            update(User).where(User.id == user_id).values(password_hash=password_hash, updated_at=utc_now())
        )
        await self.db.commit()

    async def update_user_email(self, user_id: uuid.UUID, email: str) -> None:
        try:
            await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(email=email, email_verified=False, updated_at=utc_now())
            )
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise AlreadyExistsError("Email already in use") from exc

    async def link_google_account(self, user_id: uuid.UUID, google_id: str) -> User:
        user = await self.get_user_by_id(user_id)
        user.google_id = google_id
        user.email_verified = True
        user.updated_at = utc_now()
        await self.db.commit()
        return user

    # Sessions

    async def create_session(
        self,
        *,
        user_id: uuid.UUID,
        expires_at: datetime,
        device_info: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthSession:
        session = AuthSession(
            user_id=user_id,
            expires_at=expires_at,
            device_info=device_info,
            ip_address=ip_address,
            user_agent=user_agent,
            is_active=True,
        )
        self.db.add(session)
        await self.db.commit()
        return session

    async def get_session(self, session_id: uuid.UUID) -> AuthSession:
        result = await self.db.execute(
            select(AuthSession)
            .where(AuthSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if session is None:
            raise NotFoundError("Session not found")
        return session

    async def touch_session(self, session_id: uuid.UUID) -> None:
        await self.db.execute(
            update(AuthSession).where(AuthSession.id == session_id).values(last_activity_at=utc_now())
        )
        await self.db.commit()

    async def deactivate_session(self, session_id: uuid.UUID) -> None:
        await self.db.execute(
            update(AuthSession).where(AuthSession.id == session_id).values(is_active=False)
        )
        await self.db.commit()

    async def deactivate_user_sessions(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(AuthSession)
            .where(AuthSession.user_id == user_id, AuthSession.is_active.is_(True))
            .values(is_active=False)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def update_session_push_token(self, session_id: uuid.UUID, push_token: str | None) -> None:
        result = await self.db.execute(
            update(AuthSession)
            .where(AuthSession.id == session_id, AuthSession.is_active.is_(True))
            .values(push_token=push_token, last_activity_at=utc_now())
        )
        await self.db.commit()
        if not result.rowcount:
            raise NotFoundError("Session not found")

    # Refresh tokens

    async def create_refresh_token(
        self,
        *,
        user_id: uuid.UUID,
        session_id: uuid.UUID | None,
        token_hash: str,
        expires_at: datetime,
    ) -> RefreshToken:
        record = RefreshToken(
            user_id=user_id,
            session_id=session_id,
            token_hash=token_hash,
            expires_at=expires_at,
            revoked=False,
        )
        self.db.add(record)
        await self.db.commit()
        return record

    async def get_refresh_token_by_hash(self, token_hash: str) -> RefreshToken:
        result = await self.db.execute(
            select(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("Refresh token not found")
        return record

    async def revoke_refresh_token(self, token_id: uuid.UUID) -> bool:
        """Compare-and-swap the revoked flag. Only one concurrent caller wins."""
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token_id, RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=utc_now())
        )
        await self.db.commit()
        return result.rowcount == 1

    async def revoke_refresh_token_by_hash(self, token_hash: str) -> bool:
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_hash, RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=utc_now())
        )
        await self.db.commit()
        return result.rowcount == 1

    async def revoke_user_refresh_tokens(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=utc_now())
        )
        await self.db.commit()
        return result.rowcount or 0

    # Password reset tokens

    async def create_password_reset_token(
        self, *, user_id: uuid.UUID, token_hash: str, expires_at: datetime
    ) -> PasswordResetToken:
        record = PasswordResetToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at, used=False)
        self.db.add(record)
        await self.db.commit()
        return record

    async def get_password_reset_token(self, token_hash: str) -> PasswordResetToken:
        result = await self.db.execute(
            select(PasswordResetToken)
            .where(PasswordResetToken.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("Password reset token not found")
        return record

    async def mark_password_reset_token_used(self, token_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.id == token_id, PasswordResetToken.used.is_(False))
            .values(used=True)
        )
        await self.db.commit()
        return result.rowcount == 1

    # Maintenance

    async def cleanup_expired_credentials(self, now: datetime) -> dict[str, int]:
        refresh = await self.db.execute(
            delete(RefreshToken).where(RefreshToken.expires_at < now)
        )
        resets = await self.db.execute(
            delete(PasswordResetToken).where(
                or_(PasswordResetToken.expires_at < now, PasswordResetToken.used.is_(True))
            )
        )
        sessions = await self.db.execute(
            update(AuthSession)
            .where(AuthSession.expires_at < now, AuthSession.is_active.is_(True))
            .values(is_active=False)
        )
        await self.db.commit()
        return {
            "refresh_tokens_deleted": refresh.rowcount or 0,
            "reset_tokens_deleted": resets.rowcount or 0,
            "sessions_deactivated": sessions.rowcount or 0,
        }
