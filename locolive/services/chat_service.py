import logging
import uuid
from dataclasses import dataclass
from typing import Any

from locolive.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from locolive.models.chat import Chat, Message
from locolive.models.enums import NotificationType
from locolive.realtime.dispatcher import FanoutDispatcher
from locolive.repositories.auth import AuthRepository
from locolive.repositories.chat import ChatRepository
from locolive.services.notification_service import Notifier

logger = logging.getLogger(__name__)

MESSAGE_MAX_LENGTH = 4000
PREVIEW_LENGTH = 100


@dataclass
class ChatSummary:
    chat: Chat
    last_message: Message | None
    unread_count: int


def message_payload(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "chat_id": message.chat_id,
        "sender_id": message.sender_id,
        "content": message.content,
        "read_at": message.read_at,
        "created_at": message.created_at,
    }


class ChatService:
    def __init__(
        self,
        repo: ChatRepository,
        users: AuthRepository,
        dispatcher: FanoutDispatcher,
        notifier: Notifier,
    ) -> None:
        self.repo = repo
        self.users = users
        self.dispatcher = dispatcher
        self.notifier = notifier

    async def _get_participating_chat(self, chat_id: uuid.UUID, user_id: uuid.UUID) -> Chat:
        chat = await self.repo.get_chat(chat_id)
        if not any(participant.user_id == user_id for participant in chat.participants):
            raise UnauthorizedError("You are not a participant of this chat")
        return chat

    async def create_chat(self, user_id: uuid.UUID, other_user_id: uuid.UUID) -> Chat:
        if user_id == other_user_id:
            raise ValidationError("Cannot start a chat with yourself")
        other = await self.users.get_user_by_id(other_user_id)
        if not other.is_active:
            raise NotFoundError("User not found")

        existing = await self.repo.find_direct_chat(user_id, other_user_id)
        if existing is not None:
            return existing
        return await self.repo.create_chat([user_id, other_user_id])

    async def list_chats(self, user_id: uuid.UUID, *, limit: int = 50, offset: int = 0) -> list[ChatSummary]:
        chats = await self.repo.list_user_chats(user_id, limit=limit, offset=offset)
        summaries = []
        for chat in chats:
            summaries.append(
                ChatSummary(
                    chat=chat,
                    last_message=await self.repo.get_last_message(chat.id),
                    unread_count=await self.repo.count_unread(chat.id, user_id),
                )
            )
        return summaries

    async def get_chat(self, chat_id: uuid.UUID, user_id: uuid.UUID) -> Chat:
        return await self._get_participating_chat(chat_id, user_id)

    async def get_messages(
        self, chat_id: uuid.UUID, user_id: uuid.UUID, *, limit: int = 50, offset: int = 0
    ) -> list[Message]:
        await self._get_participating_chat(chat_id, user_id)
        return await self.repo.list_messages(chat_id, limit=limit, offset=offset)

    async def send_message(self, chat_id: uuid.UUID, sender_id: uuid.UUID, content: str) -> Message:
        content = content.strip()
        if not content:
            raise ValidationError("Message content cannot be empty")
        if len(content) > MESSAGE_MAX_LENGTH:
            raise ValidationError(f"Message content cannot exceed {MESSAGE_MAX_LENGTH} characters")

        chat = await self._get_participating_chat(chat_id, sender_id)
        message = await self.repo.create_message(chat.id, sender_id, content)

        participant_ids = [participant.user_id for participant in chat.participants]
        self.dispatcher.send_to_users(participant_ids, "new_message", message_payload(message))

        sender_name = next(
            (participant.user.name for participant in chat.participants if participant.user_id == sender_id),
            "New message",
        )
        preview = content if len(content) <= PREVIEW_LENGTH else content[: PREVIEW_LENGTH - 3] + "..."
        for participant_id in participant_ids:
            if participant_id == sender_id:
                continue
            self.notifier.notify(
                participant_id,
                NotificationType.MESSAGE.value,
                sender_name,
                preview,
                {"chat_id": str(chat.id), "message_id": str(message.id)},
            )
        return message

    async def mark_read(self, chat_id: uuid.UUID, user_id: uuid.UUID) -> int:
        chat = await self._get_participating_chat(chat_id, user_id)
        updated = await self.repo.mark_messages_read(chat.id, user_id)
        if updated:
            others = [participant.user_id for participant in chat.participants if participant.user_id != user_id]
            self.dispatcher.send_to_users(others, "messages_read", {"chat_id": chat.id, "reader_id": user_id})
        return updated
