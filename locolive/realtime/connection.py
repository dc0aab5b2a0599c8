"""One live duplex channel for one user."""
import asyncio
import logging
import uuid
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_CLOSE = object()


class OutboundSocket(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def receive_text(self) -> str: ...


class LiveConnection:
    """Owns the outbound queue of one socket.

    Producers only ever call ``offer``; ``write_loop`` is the single writer to
    the socket, so frame order on the wire is the enqueue order.
    """

    def __init__(self, websocket: OutboundSocket, user_id: uuid.UUID, *, queue_size: int = 256) -> None:
        self.id = uuid.uuid4()
        self.user_id = user_id
        self.websocket = websocket
        self.outbound: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self.closed = False
        self.dropped = 0

    def __repr__(self) -> str:
        return f"LiveConnection(id={self.id}, user_id={self.user_id})"

    def offer(self, payload: str) -> bool:
        """Enqueue without waiting. A full or closed queue drops the payload."""
        if self.closed:
            return False
        try:
            self.outbound.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Outbound queue full for connection %s (user %s); dropping message", self.id, self.user_id)
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.outbound.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            # the writer has work queued and will see ``closed`` once it drains
            pass

    async def write_loop(self) -> None:
        """Drain the queue, coalescing whatever piled up during the last write."""
        while True:
            if self.closed and self.outbound.empty():
                return
            item = await self.outbound.get()
            if item is _CLOSE:
                return
            batch = [item]
            stop = False
            while not self.outbound.empty():
                queued = self.outbound.get_nowait()
                if queued is _CLOSE:
                    stop = True
                    break
                batch.append(queued)
            await self.websocket.send_text("\n".join(batch))
            if stop:
                return

    async def read_loop(self, on_frame=None) -> None:
        """Read until the peer goes away. Ends by raising whatever the socket raised on disconnect."""
        while True:
            raw = await self.websocket.receive_text()
            if on_frame is not None:
                on_frame(self, raw)
