import uuid
from datetime import timedelta

from locolive.core.exceptions import UnauthorizedError, ValidationError
from locolive.core.timeutils import utc_now
from locolive.models.enums import MediaType
from locolive.models.story import Story
from locolive.repositories.story import StoryRepository


class StoryService:
    def __init__(self, repo: StoryRepository, *, lifetime: timedelta = timedelta(hours=24)) -> None:
        self.repo = repo
        self.lifetime = lifetime

    async def create_story(
        self,
        user_id: uuid.UUID,
        *,
        media_url: str,
        media_type: MediaType,
        caption: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> Story:
        if not media_url.strip():
            raise ValidationError("media_url is required")
        if (latitude is None) != (longitude is None):
            raise ValidationError("latitude and longitude must be provided together")
        if latitude is not None and not -90 <= latitude <= 90:
            raise ValidationError("latitude must be between -90 and 90")
        if longitude is not None and not -180 <= longitude <= 180:
            raise ValidationError("longitude must be between -180 and 180")

        return await self.repo.create(
            user_id=user_id,
            media_url=media_url.strip(),
            media_type=media_type,
            caption=caption,
            latitude=latitude,
            longitude=longitude,
            expires_at=utc_now() + self.lifetime,
        )

    async def get_feed(self, *, limit: int = 20, offset: int = 0) -> list[Story]:
        return await self.repo.list_active(utc_now(), limit=limit, offset=offset)

    async def get_user_stories(self, user_id: uuid.UUID) -> list[Story]:
        return await self.repo.list_user_active(user_id, utc_now())

    async def delete_story(self, user_id: uuid.UUID, story_id: uuid.UUID) -> None:
        story = await self.repo.get(story_id)
        if story.user_id != user_id:
            raise UnauthorizedError("You can only delete your own stories")
        await self.repo.delete(story)

    async def cleanup_expired(self) -> int:
        return await self.repo.delete_expired(utc_now())
