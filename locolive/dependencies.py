"""Request-scoped wiring of services onto their repositories."""
from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from locolive.auth.dependencies import get_token_manager
from locolive.auth.tokens import TokenManager
from locolive.config import settings
from locolive.database import get_db
from locolive.realtime.hub import RealtimeHub
from locolive.repositories import (
    AuthRepository,
    ChatRepository,
    ConnectionRepository,
    NotificationRepository,
    StoryRepository,
)
from locolive.services.auth_service import AuthService
from locolive.services.chat_service import ChatService
from locolive.services.connection_service import ConnectionService
from locolive.services.notification_service import NotificationService, Notifier
from locolive.services.push import get_push_provider
from locolive.services.story_service import StoryService


def get_realtime_hub(request: Request) -> RealtimeHub:
    return request.app.state.realtime


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_auth_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    tokens: Annotated[TokenManager, Depends(get_token_manager)],
) -> AuthService:
    return AuthService(
        AuthRepository(db),
        tokens,
        session_lifetime=timedelta(days=settings.SESSION_EXPIRE_DAYS),
        reset_token_lifetime=timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
    )


def get_chat_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    hub: Annotated[RealtimeHub, Depends(get_realtime_hub)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> ChatService:
    return ChatService(ChatRepository(db), AuthRepository(db), hub.dispatcher, notifier)


def get_connection_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> ConnectionService:
    return ConnectionService(
        ConnectionRepository(db),
        AuthRepository(db),
        notifier,
        auto_accept_reverse=settings.CONNECTIONS_AUTO_ACCEPT_REVERSE,
    )


def get_notification_service(db: Annotated[AsyncSession, Depends(get_db)]) -> NotificationService:
    return NotificationService(NotificationRepository(db), get_push_provider())


def get_story_service(db: Annotated[AsyncSession, Depends(get_db)]) -> StoryService:
    return StoryService(StoryRepository(db), lifetime=timedelta(hours=settings.STORY_LIFETIME_HOURS))
