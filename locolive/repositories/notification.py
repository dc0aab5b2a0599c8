import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from locolive.core.exceptions import NotFoundError
from locolive.core.timeutils import utc_now
from locolive.models.auth import AuthSession
from locolive.models.notification import Notification


class NotificationRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(
        self,
        *,
        user_id: uuid.UUID,
        type: str,
        title: str,
        body: str | None,
        data: dict[str, Any] | None,
    ) -> Notification:
        notification = Notification(user_id=user_id, type=type, title=title, body=body, data=data)
        self.db.add(notification)
        await self.db.commit()
        return notification

    async def get(self, notification_id: uuid.UUID) -> Notification:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.id == notification_id)
            .execution_options(populate_existing=True)
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    async def list_for_user(self, user_id: uuid.UUID, *, limit: int = 20, offset: int = 0) -> list[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def count_unread(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id, Notification.is_read.is_(False)
            )
        )
        return int(result.scalar_one())

    async def mark_read(self, notification: Notification) -> Notification:
        notification.is_read = True
        await self.db.commit()
        return notification

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def get_push_tokens(self, user_id: uuid.UUID) -> list[str]:
        result = await self.db.execute(
            select(AuthSession.push_token)
            .where(
                AuthSession.user_id == user_id,
                AuthSession.is_active.is_(True),
                AuthSession.expires_at > utc_now(),
                AuthSession.push_token.is_not(None),
            )
            .distinct()
        )
        return [token for token in result.scalars().all() if token]
