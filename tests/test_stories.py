import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from locolive.config import settings
from locolive.models.enums import MediaType
from locolive.repositories.auth import AuthRepository
from locolive.repositories.story import StoryRepository
from locolive.services.story_service import StoryService

STORIES = f"{settings.API_V1_STR}/stories"


@pytest.mark.asyncio
async def test_story_lifecycle(client: AsyncClient, register):
    alice = await register("sa@test.com", name="Alice")
    bob = await register("sb@test.com", name="Bob")

    created = await client.post(
        STORIES,
        json={"media_url": "https://cdn.test.com/a.jpg", "caption": "sunset", "latitude": 48.85, "longitude": 2.35},
        headers=alice["headers"],
    )
    assert created.status_code == 201
    story = created.json()["data"]
    assert story["media_type"] == "image"
    assert story["user"]["id"] == alice["user"]["id"]
    expires_at = datetime.fromisoformat(story["expires_at"].replace("Z", "+00:00"))
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    remaining = expires_at - datetime.now(timezone.utc)
    assert timedelta(hours=settings.STORY_LIFETIME_HOURS - 1) < remaining <= timedelta(hours=settings.STORY_LIFETIME_HOURS)

    feed = await client.get(STORIES, headers=bob["headers"])
    assert [item["id"] for item in feed.json()["data"]["items"]] == [story["id"]]

    mine = await client.get(f"{STORIES}/me", headers=alice["headers"])
    theirs = await client.get(f"{STORIES}/users/{alice['user']['id']}", headers=bob["headers"])
    assert [item["id"] for item in mine.json()["data"]] == [item["id"] for item in theirs.json()["data"]] == [story["id"]]

    not_owner = await client.delete(f"{STORIES}/{story['id']}", headers=bob["headers"])
    assert not_owner.status_code == 403

    deleted = await client.delete(f"{STORIES}/{story['id']}", headers=alice["headers"])
    assert deleted.status_code == 200
    assert (await client.get(STORIES, headers=bob["headers"])).json()["data"]["items"] == []

    missing = await client.delete(f"{STORIES}/{uuid.uuid4()}", headers=alice["headers"])
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_story_coordinates_are_validated(client: AsyncClient, register):
    user = await register("geo@test.com", name="Geo")

    half = await client.post(STORIES, json={"media_url": "https://cdn.test.com/b.jpg", "latitude": 10}, headers=user["headers"])
    assert half.status_code == 400

    out_of_range = await client.post(
        STORIES,
        json={"media_url": "https://cdn.test.com/b.jpg", "latitude": 91, "longitude": 0},
        headers=user["headers"],
    )
    assert out_of_range.status_code == 400

    bad_type = await client.post(
        STORIES, json={"media_url": "https://cdn.test.com/b.gif", "media_type": "gif"}, headers=user["headers"]
    )
    assert bad_type.status_code == 422


@pytest.mark.asyncio
async def test_expired_stories_leave_the_feed_and_are_cleaned_up(db_session):
    user = await AuthRepository(db_session).create_user(name="Fleeting", email="fleeting@test.com")
    expired = StoryService(StoryRepository(db_session), lifetime=timedelta(seconds=-1))
    current = StoryService(StoryRepository(db_session))

    await expired.create_story(user.id, media_url="https://cdn.test.com/old.mp4", media_type=MediaType.VIDEO)
    fresh = await current.create_story(user.id, media_url="https://cdn.test.com/new.jpg", media_type=MediaType.IMAGE)

    assert [story.id for story in await current.get_feed()] == [fresh.id]
    assert [story.id for story in await current.get_user_stories(user.id)] == [fresh.id]
    assert await current.cleanup_expired() == 1
    assert await current.cleanup_expired() == 0
