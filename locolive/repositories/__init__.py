from locolive.repositories.auth import AuthRepository
from locolive.repositories.chat import ChatRepository
from locolive.repositories.connection import ConnectionRepository
from locolive.repositories.notification import NotificationRepository
from locolive.repositories.story import StoryRepository

__all__ = [
    "AuthRepository",
    "ChatRepository",
    "ConnectionRepository",
    "NotificationRepository",
    "StoryRepository",
]
