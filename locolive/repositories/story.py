import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from locolive.core.exceptions import NotFoundError
from locolive.models.enums import MediaType
from locolive.models.story import Story


class StoryRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(
        self,
        *,
        user_id: uuid.UUID,
        media_url: str,
        media_type: MediaType,
        expires_at: datetime,
        caption: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> Story:
        story = Story(
            user_id=user_id,
            media_url=media_url,
            media_type=media_type,
            caption=caption,
            latitude=latitude,
            longitude=longitude,
            expires_at=expires_at,
        )
        self.db.add(story)
        await self.db.commit()
        return await self.get(story.id)

    async def get(self, story_id: uuid.UUID) -> Story:
        result = await self.db.execute(
            select(Story)
            .where(Story.id == story_id)
            .options(selectinload(Story.user))
            .execution_options(populate_existing=True)
        )
        story = result.scalar_one_or_none()
        if story is None:
            raise NotFoundError("Story not found")
        return story

    async def list_active(self, now: datetime, *, limit: int = 20, offset: int = 0) -> list[Story]:
        result = await self.db.execute(
            select(Story)
            .where(Story.expires_at > now)
            .options(selectinload(Story.user))
            .order_by(Story.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def list_user_active(self, user_id: uuid.UUID, now: datetime) -> list[Story]:
        result = await self.db.execute(
            select(Story)
            .where(Story.user_id == user_id, Story.expires_at > now)
            .options(selectinload(Story.user))
            .order_by(Story.created_at.desc())
        )
        return list(result.scalars().all())

    async def delete(self, story: Story) -> None:
        await self.db.delete(story)
        await self.db.commit()

    async def delete_expired(self, now: datetime) -> int:
        result = await self.db.execute(delete(Story).where(Story.expires_at <= now))
        await self.db.commit()
        return result.rowcount or 0
