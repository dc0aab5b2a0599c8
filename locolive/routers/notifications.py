import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from locolive.auth.dependencies import CurrentUser
from locolive.core.responses import StandardResponse
from locolive.dependencies import get_notification_service
from locolive.services.notification_service import NotificationService

router = APIRouter()

NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]


class NotificationResponse(BaseModel):
    id: uuid.UUID
    type: str
    title: str
    body: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


@router.get("", response_model=StandardResponse[NotificationListResponse])
async def list_notifications(
    current_user: CurrentUser,
    service: NotificationServiceDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    notifications, unread = await service.list_notifications(current_user.id, limit=limit, offset=offset)
    return StandardResponse(
        data=NotificationListResponse(
            notifications=[NotificationResponse.model_validate(item) for item in notifications],
            unread_count=unread,
        )
    )


@router.post("/read-all", response_model=StandardResponse)
async def mark_all_notifications_read(current_user: CurrentUser, service: NotificationServiceDep):
    updated = await service.mark_all_as_read(current_user.id)
    return StandardResponse(message=f"{updated} notification(s) marked as read")


@router.post("/{notification_id}/read", response_model=StandardResponse[NotificationResponse])
async def mark_notification_read(
    notification_id: uuid.UUID,
    current_user: CurrentUser,
    service: NotificationServiceDep,
):
    notification = await service.mark_as_read(current_user.id, notification_id)
    return StandardResponse(data=NotificationResponse.model_validate(notification))
