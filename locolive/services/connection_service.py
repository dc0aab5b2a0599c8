import logging
import uuid

from locolive.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from locolive.models.connection import UserConnection
from locolive.models.enums import ConnectionStatus, NotificationType
from locolive.repositories.auth import AuthRepository
from locolive.repositories.connection import ConnectionRepository
from locolive.services.notification_service import Notifier

logger = logging.getLogger(__name__)


class ConnectionService:
    def __init__(
        self,
        repo: ConnectionRepository,
        users: AuthRepository,
        notifier: Notifier,
        *,
        auto_accept_reverse: bool = True,
    ) -> None:
        self.repo = repo
        self.users = users
        self.notifier = notifier
        self.auto_accept_reverse = auto_accept_reverse

    async def send_request(self, requester_id: uuid.UUID, receiver_id: uuid.UUID) -> UserConnection:
        if requester_id == receiver_id:
            raise ValidationError("Cannot send a connection request to yourself")

        receiver = await self.users.get_user_by_id(receiver_id)
        if not receiver.is_active:
            raise NotFoundError("User not found")
        requester = await self.users.get_user_by_id(requester_id)

        reverse = await self.repo.get_between(receiver_id, requester_id)
        if reverse is not None:
            if reverse.status == ConnectionStatus.ACCEPTED:
                return reverse
            if reverse.status == ConnectionStatus.PENDING and self.auto_accept_reverse:
                accepted = await self.repo.set_status(reverse, ConnectionStatus.ACCEPTED)
                logger.info("Auto-accepted reverse connection request %s", accepted.id)
                self._notify_accepted(accepted, accepted_by_name=requester.name)
                return accepted

        existing = await self.repo.get_between(requester_id, receiver_id)
        if existing is not None:
            return await self.repo.touch(existing)

        connection = await self.repo.create(requester_id, receiver_id)
        self.notifier.notify(
            receiver_id,
            NotificationType.CONNECTION_REQUEST.value,
            "New connection request",
            f"{requester.name} wants to connect with you",
            {"connection_id": str(connection.id), "user_id": str(requester_id)},
        )
        return connection

    async def respond(self, user_id: uuid.UUID, connection_id: uuid.UUID, accept: bool) -> UserConnection:
        connection = await self.repo.get(connection_id)
        if connection.receiver_id != user_id:
            raise UnauthorizedError("Only the receiver can respond to a connection request")
        if connection.status != ConnectionStatus.PENDING:
            raise ValidationError("Connection request is not pending")

        status = ConnectionStatus.ACCEPTED if accept else ConnectionStatus.REJECTED
        connection = await self.repo.set_status(connection, status)
        if accept:
            self._notify_accepted(connection, accepted_by_name=connection.receiver.name)
        return connection

    def _notify_accepted(self, connection: UserConnection, *, accepted_by_name: str) -> None:
        self.notifier.notify(
            connection.requester_id,
            NotificationType.CONNECTION_ACCEPTED.value,
            "Connection accepted",
            f"{accepted_by_name} accepted your connection request",
            {"connection_id": str(connection.id), "user_id": str(connection.receiver_id)},
        )

    async def list_connections(self, user_id: uuid.UUID, *, limit: int = 50, offset: int = 0) -> list[UserConnection]:
        return await self.repo.list_accepted(user_id, limit=limit, offset=offset)

    async def list_pending(self, user_id: uuid.UUID, *, limit: int = 50, offset: int = 0) -> list[UserConnection]:
        return await self.repo.list_pending_received(user_id, limit=limit, offset=offset)

    async def remove(self, user_id: uuid.UUID, connection_id: uuid.UUID) -> None:
        connection = await self.repo.get(connection_id)
        if user_id not in (connection.requester_id, connection.receiver_id):
            raise UnauthorizedError("Not your connection")
        await self.repo.delete(connection)
