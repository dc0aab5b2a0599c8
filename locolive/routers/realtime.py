import logging

from fastapi import APIRouter, WebSocket, status

from locolive.auth.dependencies import get_token_manager
from locolive.auth.tokens import TokenKind
from locolive.core.exceptions import DomainError, NotFoundError
from locolive.database import AsyncSessionLocal
from locolive.models.user import User
from locolive.realtime.dispatcher import encode_event
from locolive.realtime.hub import RealtimeHub
from locolive.repositories.auth import AuthRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def _extract_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    authorization = websocket.headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def _get_ws_user(token: str) -> User | None:
    try:
        claims = get_token_manager().verify(token, TokenKind.ACCESS)
    except DomainError:
        return None
    async with AsyncSessionLocal() as db:
        try:
            user = await AuthRepository(db).get_user_by_id(claims.user_id)
        except NotFoundError:
            return None
    return user if user.is_active else None


@router.websocket("/ws")
async def realtime_websocket(websocket: WebSocket):
    token = _extract_token(websocket)
    user = await _get_ws_user(token) if token else None
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub: RealtimeHub = websocket.app.state.realtime
    await websocket.accept()
    connection = hub.accept_connection(websocket, user.id)
    connection.offer(encode_event("connected", {"connection_id": connection.id, "user_id": user.id}))
    logger.info("Live connection %s opened for user %s", connection.id, user.id)
    try:
        await hub.serve(connection)
    finally:
        logger.info("Live connection %s closed for user %s", connection.id, user.id)
