import uuid
from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from locolive.auth.dependencies import CurrentUser
from locolive.auth.schemas import PublicUserResponse
from locolive.core.responses import StandardResponse
from locolive.dependencies import get_chat_service
from locolive.models.chat import Chat, Message
from locolive.services.chat_service import ChatService

router = APIRouter()

ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


class ChatCreateRequest(BaseModel):
    user_id: uuid.UUID


class MessageCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4000)


class MessageResponse(BaseModel):
    id: uuid.UUID
    chat_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ChatResponse(BaseModel):
    id: uuid.UUID
    participants: List[PublicUserResponse]
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0
    created_at: datetime
    updated_at: datetime


class ReadReceiptResponse(BaseModel):
    chat_id: uuid.UUID
    updated: int


def _serialize_chat(chat: Chat, last_message: Message | None = None, unread_count: int = 0) -> ChatResponse:
    return ChatResponse(
        id=chat.id,
        participants=[PublicUserResponse.model_validate(participant.user) for participant in chat.participants],
        last_message=MessageResponse.model_validate(last_message) if last_message else None,
        unread_count=unread_count,
        created_at=chat.created_at,
        updated_at=chat.updated_at,
    )


@router.post("", response_model=StandardResponse[ChatResponse], status_code=status.HTTP_201_CREATED)
async def create_chat(payload: ChatCreateRequest, current_user: CurrentUser, service: ChatServiceDep):
    chat = await service.create_chat(current_user.id, payload.user_id)
    return StandardResponse(data=_serialize_chat(chat))


@router.get("", response_model=StandardResponse[List[ChatResponse]])
async def list_chats(
    current_user: CurrentUser,
    service: ChatServiceDep,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    summaries = await service.list_chats(current_user.id, limit=limit, offset=offset)
    return StandardResponse(
        data=[_serialize_chat(item.chat, item.last_message, item.unread_count) for item in summaries]
    )


@router.get("/{chat_id}", response_model=StandardResponse[ChatResponse])
async def get_chat(chat_id: uuid.UUID, current_user: CurrentUser, service: ChatServiceDep):
    chat = await service.get_chat(chat_id, current_user.id)
    return StandardResponse(data=_serialize_chat(chat))


@router.get("/{chat_id}/messages", response_model=StandardResponse[List[MessageResponse]])
async def list_messages(
    chat_id: uuid.UUID,
    current_user: CurrentUser,
    service: ChatServiceDep,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    messages = await service.get_messages(chat_id, current_user.id, limit=limit, offset=offset)
    return StandardResponse(data=[MessageResponse.model_validate(message) for message in messages])


@router.post(
    "/{chat_id}/messages",
    response_model=StandardResponse[MessageResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    chat_id: uuid.UUID,
    payload: MessageCreateRequest,
    current_user: CurrentUser,
    service: ChatServiceDep,
):
    message = await service.send_message(chat_id, current_user.id, payload.content)
    return StandardResponse(data=MessageResponse.model_validate(message), message="Message sent")


@router.post("/{chat_id}/read", response_model=StandardResponse[ReadReceiptResponse])
async def mark_chat_read(chat_id: uuid.UUID, current_user: CurrentUser, service: ChatServiceDep):
    updated = await service.mark_read(chat_id, current_user.id)
    return StandardResponse(data=ReadReceiptResponse(chat_id=chat_id, updated=updated))
