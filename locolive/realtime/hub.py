import asyncio
import json
import logging
import uuid
from typing import Any

from locolive.realtime.connection import LiveConnection, OutboundSocket
from locolive.realtime.dispatcher import FanoutDispatcher, encode_event
from locolive.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class RealtimeHub:
    """What the transport layer sees: accept, disconnect, dispatch."""

    def __init__(self, *, queue_size: int = 256) -> None:
        self.registry = ConnectionRegistry()
        self.dispatcher = FanoutDispatcher(self.registry)
        self.queue_size = queue_size

    async def start(self) -> None:
        await self.registry.start()

    async def stop(self) -> None:
        await self.registry.stop()

    def accept_connection(self, websocket: OutboundSocket, user_id: uuid.UUID) -> LiveConnection:
        connection = LiveConnection(websocket, user_id, queue_size=self.queue_size)
        self.registry.register(connection)
        return connection

    def on_disconnect(self, connection: LiveConnection) -> None:
        self.registry.unregister(connection)

    def dispatch(self, user_id: uuid.UUID, event_type: str, payload: Any) -> None:
        self.dispatcher.send_to_user(user_id, event_type, payload)

    async def serve(self, connection: LiveConnection) -> None:
        """Run both I/O loops until either side gives up, then unregister."""
        writer = asyncio.create_task(connection.write_loop(), name=f"ws-writer-{connection.id}")
        reader = asyncio.create_task(connection.read_loop(self._handle_frame), name=f"ws-reader-{connection.id}")
        try:
            await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self.on_disconnect(connection)
            connection.close()
            reader.cancel()
            results = await asyncio.gather(writer, reader, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.debug("Connection %s closed: %r", connection.id, result)

    @staticmethod
    def _handle_frame(connection: LiveConnection, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return
        if isinstance(data, dict) and data.get("action") == "ping":
            connection.offer(encode_event("pong", {}))
