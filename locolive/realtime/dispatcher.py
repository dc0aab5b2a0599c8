import json
import logging
import uuid
from collections.abc import Iterable
from typing import Any

from fastapi.encoders import jsonable_encoder

from locolive.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


def encode_event(event_type: str, payload: Any) -> str:
    return json.dumps({"type": event_type, "payload": jsonable_encoder(payload)}, separators=(",", ":"))


class FanoutDispatcher:
    """Best-effort delivery of user-scoped events to live connections.

    Durability comes from the database write that precedes a dispatch; a
    message that cannot be enqueued is simply not delivered live.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    def send_to_user(self, user_id: uuid.UUID, event_type: str, payload: Any) -> None:
        self.send_to_users([user_id], event_type, payload)

    def send_to_users(self, user_ids: Iterable[uuid.UUID], event_type: str, payload: Any) -> None:
        encoded = encode_event(event_type, payload)
        for user_id in dict.fromkeys(user_ids):
            self.registry.send_to_user(user_id, encoded)
