import uuid

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from locolive.core.exceptions import AlreadyExistsError, NotFoundError
from locolive.core.timeutils import utc_now
from locolive.models.connection import UserConnection
from locolive.models.enums import ConnectionStatus


class ConnectionRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _with_users(self):
        return (
            selectinload(UserConnection.requester),
            selectinload(UserConnection.receiver),
        )

    async def get(self, connection_id: uuid.UUID) -> UserConnection:
        result = await self.db.execute(
            select(UserConnection)
            .where(UserConnection.id == connection_id)
            .options(*self._with_users())
            .execution_options(populate_existing=True)
        )
        connection = result.scalar_one_or_none()
        if connection is None:
            raise NotFoundError("Connection not found")
        return connection

    async def get_between(self, requester_id: uuid.UUID, receiver_id: uuid.UUID) -> UserConnection | None:
        result = await self.db.execute(
            select(UserConnection)
            .where(UserConnection.requester_id == requester_id, UserConnection.receiver_id == receiver_id)
            .options(*self._with_users())
        )
        return result.scalar_one_or_none()

    async def create(self, requester_id: uuid.UUID, receiver_id: uuid.UUID) -> UserConnection:
        connection = UserConnection(
            requester_id=requester_id,
            receiver_id=receiver_id,
            status=ConnectionStatus.PENDING,
        )
        self.db.add(connection)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise AlreadyExistsError("Connection request already exists") from exc
        return await self.get(connection.id)

    async def set_status(self, connection: UserConnection, status: ConnectionStatus) -> UserConnection:
        connection.status = status
        connection.updated_at = utc_now()
        await self.db.commit()
        return connection

    async def touch(self, connection: UserConnection) -> UserConnection:
        connection.updated_at = utc_now()
        await self.db.commit()
        return connection

    async def delete(self, connection: UserConnection) -> None:
        await self.db.delete(connection)
        await self.db.commit()

    async def list_accepted(self, user_id: uuid.UUID, *, limit: int = 50, offset: int = 0) -> list[UserConnection]:
        result = await self.db.execute(
            select(UserConnection)
            .where(
                UserConnection.status == ConnectionStatus.ACCEPTED,
                or_(UserConnection.requester_id == user_id, UserConnection.receiver_id == user_id),
            )
            .options(*self._with_users())
            .order_by(UserConnection.updated_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def list_pending_received(self, user_id: uuid.UUID, *, limit: int = 50, offset: int = 0) -> list[UserConnection]:
        result = await self.db.execute(
            select(UserConnection)
            .where(and_(UserConnection.receiver_id == user_id, UserConnection.status == ConnectionStatus.PENDING))
            .options(*self._with_users())
            .order_by(UserConnection.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())
