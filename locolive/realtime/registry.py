"""In-memory registry of live connections, run as a single-writer actor.

All mutations and user-scoped sends are events on one queue consumed by
``run``. Readers that need a snapshot send a request event and await the
reply, so nothing outside the loop ever touches the maps.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field

from locolive.realtime.connection import LiveConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisterEvent:
    connection: LiveConnection


@dataclass(frozen=True)
class UnregisterEvent:
    connection: LiveConnection


@dataclass(frozen=True)
class SendEvent:
    user_id: uuid.UUID
    payload: str


@dataclass(frozen=True)
class SnapshotRequest:
    reply: asyncio.Future
    user_id: uuid.UUID | None = None


@dataclass
class RegistrySnapshot:
    total_connections: int
    users_online: int
    connection_ids: list[uuid.UUID] = field(default_factory=list)


_STOP = object()


class ConnectionRegistry:
    def __init__(self) -> None:
        self._connections: dict[uuid.UUID, LiveConnection] = {}
        self._by_user: dict[uuid.UUID, dict[uuid.UUID, LiveConnection]] = {}
        self._events: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name="connection-registry")
        logger.info("Connection registry started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._events.put_nowait(_STOP)
        try:
            await self._task
        finally:
            self._task = None
        logger.info("Connection registry stopped")

    # Event submission. None of these block.

    def register(self, connection: LiveConnection) -> None:
        self._events.put_nowait(RegisterEvent(connection))

    def unregister(self, connection: LiveConnection) -> None:
        self._events.put_nowait(UnregisterEvent(connection))

    def send_to_user(self, user_id: uuid.UUID, payload: str) -> None:
        self._events.put_nowait(SendEvent(user_id, payload))

    async def snapshot(self, user_id: uuid.UUID | None = None) -> RegistrySnapshot:
        """Point-in-time view, answered by the loop after all earlier events."""
        reply: asyncio.Future = asyncio.get_running_loop().create_future()
        self._events.put_nowait(SnapshotRequest(reply=reply, user_id=user_id))
        return await reply

    # Loop

    async def run(self) -> None:
        while True:
            event = await self._events.get()
            if event is _STOP:
                self._close_all()
                return
            try:
                self._handle(event)
            except Exception:
                logger.exception("Connection registry failed to handle %s", type(event).__name__)

    def _handle(self, event) -> None:
        if isinstance(event, SendEvent):
            self._handle_send(event)
        elif isinstance(event, RegisterEvent):
            self._handle_register(event.connection)
        elif isinstance(event, UnregisterEvent):
            self._handle_unregister(event.connection)
        elif isinstance(event, SnapshotRequest):
            self._handle_snapshot(event)
        else:
            logger.warning("Connection registry ignoring unknown event %r", event)

    def _handle_register(self, connection: LiveConnection) -> None:
        self._connections[connection.id] = connection
        self._by_user.setdefault(connection.user_id, {})[connection.id] = connection
        logger.debug("Registered %s (%d total)", connection, len(self._connections))

    def _handle_unregister(self, connection: LiveConnection) -> None:
        if self._connections.pop(connection.id, None) is None:
            return
        group = self._by_user.get(connection.user_id)
        if group is not None:
            group.pop(connection.id, None)
            if not group:
                del self._by_user[connection.user_id]
        connection.close()
        logger.debug("Unregistered %s (%d total)", connection, len(self._connections))

    def _handle_send(self, event: SendEvent) -> None:
        for connection in self._by_user.get(event.user_id, {}).values():
            connection.offer(event.payload)

    def _handle_snapshot(self, request: SnapshotRequest) -> None:
        if request.reply.done():
            return
        if request.user_id is None:
            ids = list(self._connections)
        else:
            ids = list(self._by_user.get(request.user_id, {}))
        request.reply.set_result(
            RegistrySnapshot(
                total_connections=len(self._connections),
                users_online=len(self._by_user),
                connection_ids=ids,
            )
        )

    def _close_all(self) -> None:
        for connection in self._connections.values():
            connection.close()
        self._connections.clear()
        self._by_user.clear()
