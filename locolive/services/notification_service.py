import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from locolive.core.exceptions import UnauthorizedError
from locolive.core.tasks import TaskSupervisor
from locolive.models.notification import Notification
from locolive.repositories.notification import NotificationRepository
from locolive.services.push import PushProvider

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, repo: NotificationRepository, push_provider: PushProvider) -> None:
        self.repo = repo
        self.push_provider = push_provider

    async def send_notification(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        body: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> Notification:
        """Persist the notification, then push it to the user's devices.

        Push delivery is best effort: provider failures are logged and never
        surface to the caller.
        """
        notification = await self.repo.create(user_id=user_id, type=type, title=title, body=body, data=data)

        tokens = await self.repo.get_push_tokens(user_id)
        for token in tokens:
            push_data = {**(data or {}), "type": type, "notification_id": str(notification.id)}
            try:
                result = await self.push_provider.send(token, title, body, push_data)
            except Exception:
                logger.exception("Push provider raised for user %s", user_id)
                continue
            if result.status == "FAILED":
                logger.warning("Push to user %s failed: %s", user_id, result.error_message)
        return notification

    async def list_notifications(
        self, user_id: uuid.UUID, *, limit: int = 20, offset: int = 0
    ) -> tuple[list[Notification], int]:
        notifications = await self.repo.list_for_user(user_id, limit=limit, offset=offset)
        unread = await self.repo.count_unread(user_id)
        return notifications, unread

    async def mark_as_read(self, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
        notification = await self.repo.get(notification_id)
        if notification.user_id != user_id:
            raise UnauthorizedError("Not your notification")
        return await self.repo.mark_read(notification)

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int:
        return await self.repo.mark_all_read(user_id)


class Notifier:
    """Schedules notification delivery outside the request that triggered it.

    Each delivery runs as a supervised task with its own database session,
    so it neither shares the request's session nor dies with the response.
    """

    def __init__(
        self,
        supervisor: TaskSupervisor,
        session_factory: async_sessionmaker[AsyncSession],
        push_provider: PushProvider,
    ) -> None:
        self.supervisor = supervisor
        self.session_factory = session_factory
        self.push_provider = push_provider

    def notify(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        body: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.supervisor.spawn(
            self._deliver(user_id, type, title, body, data),
            name=f"notify:{type}:{user_id}",
        )

    async def _deliver(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        body: str | None,
        data: dict[str, Any] | None,
    ) -> None:
        async with self.session_factory() as db:
            service = NotificationService(NotificationRepository(db), self.push_provider)
            await service.send_notification(user_id, type, title, body, data)
