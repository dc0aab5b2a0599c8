import uuid

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from locolive.core.exceptions import NotFoundError
from locolive.core.timeutils import utc_now
from locolive.models.chat import Chat, ChatParticipant, Message


class ChatRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_direct_chat(self, user_a: uuid.UUID, user_b: uuid.UUID) -> Chat | None:
        first = aliased(ChatParticipant)
        second = aliased(ChatParticipant)
        stmt = (
            select(Chat)
            .join(first, first.chat_id == Chat.id)
            .join(second, second.chat_id == Chat.id)
            .where(first.user_id == user_a, second.user_id == user_b)
            .options(selectinload(Chat.participants).selectinload(ChatParticipant.user))
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_chat(self, participant_ids: list[uuid.UUID]) -> Chat:
        chat = Chat()
        self.db.add(chat)
        await self.db.flush()
        self.db.add_all([ChatParticipant(chat_id=chat.id, user_id=user_id) for user_id in participant_ids])
        await self.db.commit()
        return await self.get_chat(chat.id)

    async def get_chat(self, chat_id: uuid.UUID) -> Chat:
        stmt = (
            select(Chat)
            .where(Chat.id == chat_id)
            .options(selectinload(Chat.participants).selectinload(ChatParticipant.user))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        chat = result.scalar_one_or_none()
        if chat is None:
            raise NotFoundError("Chat not found")
        return chat

    async def list_user_chats(self, user_id: uuid.UUID, *, limit: int = 50, offset: int = 0) -> list[Chat]:
        stmt = (
            select(Chat)
            .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
            .where(ChatParticipant.user_id == user_id)
            .options(selectinload(Chat.participants).selectinload(ChatParticipant.user))
            .order_by(Chat.updated_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all())

    async def is_participant(self, chat_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(ChatParticipant.user_id).where(
                ChatParticipant.chat_id == chat_id, ChatParticipant.user_id == user_id
            )
        )
        return result.first() is not None

    async def create_message(self, chat_id: uuid.UUID, sender_id: uuid.UUID, content: str) -> Message:
        now = utc_now()
        message = Message(chat_id=chat_id, sender_id=sender_id, content=content, created_at=now)
        self.db.add(message)
        await self.db.execute(update(Chat).where(Chat.id == chat_id).values(updated_at=now))
        await self.db.commit()
        return message

    async def get_last_message(self, chat_id: uuid.UUID) -> Message | None:
        result = await self.db.execute(
            select(Message).where(Message.chat_id == chat_id).order_by(Message.created_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def count_unread(self, chat_id: uuid.UUID, reader_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Message.id)).where(
                Message.chat_id == chat_id,
                Message.sender_id != reader_id,
                Message.read_at.is_(None),
            )
        )
        return int(result.scalar_one())

    async def list_messages(self, chat_id: uuid.UUID, *, limit: int = 50, offset: int = 0) -> list[Message]:
        result = await self.db.execute(
            select(Message)
            .where(Message.chat_id == chat_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def mark_messages_read(self, chat_id: uuid.UUID, reader_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Message)
            .where(
                Message.chat_id == chat_id,
                Message.sender_id != reader_id,
                Message.read_at.is_(None),
            )
            .values(read_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0
