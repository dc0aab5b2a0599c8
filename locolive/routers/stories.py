import uuid
from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from locolive.auth.dependencies import CurrentUser
from locolive.auth.schemas import PublicUserResponse
from locolive.core.responses import Page, StandardResponse
from locolive.dependencies import get_story_service
from locolive.models.enums import MediaType
from locolive.services.story_service import StoryService

router = APIRouter()

StoryServiceDep = Annotated[StoryService, Depends(get_story_service)]


class StoryCreate(BaseModel):
    media_url: str = Field(min_length=1, max_length=2048)
    media_type: MediaType = MediaType.IMAGE
    caption: Optional[str] = Field(default=None, max_length=500)
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class StoryResponse(BaseModel):
    id: uuid.UUID
    user: PublicUserResponse
    media_url: str
    media_type: MediaType
    caption: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    expires_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


@router.post("", response_model=StandardResponse[StoryResponse], status_code=status.HTTP_201_CREATED)
async def create_story(payload: StoryCreate, current_user: CurrentUser, service: StoryServiceDep):
    story = await service.create_story(current_user.id, **payload.model_dump())
    return StandardResponse(data=StoryResponse.model_validate(story), message="Story created")


@router.get("", response_model=StandardResponse[Page[StoryResponse]])
async def get_feed(
    current_user: CurrentUser,
    service: StoryServiceDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    stories = await service.get_feed(limit=limit, offset=offset)
    return StandardResponse(
        data=Page(items=[StoryResponse.model_validate(story) for story in stories], limit=limit, offset=offset)
    )


@router.get("/me", response_model=StandardResponse[List[StoryResponse]])
async def get_my_stories(current_user: CurrentUser, service: StoryServiceDep):
    stories = await service.get_user_stories(current_user.id)
    return StandardResponse(data=[StoryResponse.model_validate(story) for story in stories])


@router.delete("/{story_id}", response_model=StandardResponse)
async def delete_story(story_id: uuid.UUID, current_user: CurrentUser, service: StoryServiceDep):
    await service.delete_story(current_user.id, story_id)
    return StandardResponse(message="Story deleted")


@router.get("/users/{user_id}", response_model=StandardResponse[List[StoryResponse]])
async def get_user_stories(user_id: uuid.UUID, current_user: CurrentUser, service: StoryServiceDep):
    stories = await service.get_user_stories(user_id)
    return StandardResponse(data=[StoryResponse.model_validate(story) for story in stories])
