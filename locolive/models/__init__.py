from locolive.models.user import User
from locolive.models.auth import AuthSession, PasswordResetToken, RefreshToken
from locolive.models.chat import Chat, ChatParticipant, Message
from locolive.models.connection import UserConnection
from locolive.models.notification import Notification
from locolive.models.story import Story


__all__ = [
    "User",
    "AuthSession",
    "RefreshToken",
    "PasswordResetToken",
    "Chat",
    "ChatParticipant",
    "Message",
    "UserConnection",
    "Notification",
    "Story",
]
