import uuid
from datetime import datetime
from typing import Annotated, List

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from locolive.auth.dependencies import CurrentUser
from locolive.auth.schemas import PublicUserResponse
from locolive.core.responses import StandardResponse
from locolive.dependencies import get_connection_service
from locolive.models.connection import UserConnection
from locolive.models.enums import ConnectionStatus
from locolive.services.connection_service import ConnectionService

router = APIRouter()

ConnectionServiceDep = Annotated[ConnectionService, Depends(get_connection_service)]


class ConnectionRequestCreate(BaseModel):
    user_id: uuid.UUID


class ConnectionRespondRequest(BaseModel):
    connection_id: uuid.UUID
    accept: bool


class ConnectionResponse(BaseModel):
    id: uuid.UUID
    requester_id: uuid.UUID
    receiver_id: uuid.UUID
    status: ConnectionStatus
    user: PublicUserResponse
    created_at: datetime
    updated_at: datetime


def _serialize(connection: UserConnection, viewer_id: uuid.UUID) -> ConnectionResponse:
    other = connection.receiver if connection.requester_id == viewer_id else connection.requester
    return ConnectionResponse(
        id=connection.id,
        requester_id=connection.requester_id,
        receiver_id=connection.receiver_id,
        status=connection.status,
        user=PublicUserResponse.model_validate(other),
        created_at=connection.created_at,
        updated_at=connection.updated_at,
    )


@router.post("/request", response_model=StandardResponse[ConnectionResponse], status_code=status.HTTP_201_CREATED)
async def send_connection_request(
    payload: ConnectionRequestCreate,
    current_user: CurrentUser,
    service: ConnectionServiceDep,
):
    connection = await service.send_request(current_user.id, payload.user_id)
    return StandardResponse(data=_serialize(connection, current_user.id), message="Connection request sent")


@router.post("/respond", response_model=StandardResponse[ConnectionResponse])
async def respond_to_connection_request(
    payload: ConnectionRespondRequest,
    current_user: CurrentUser,
    service: ConnectionServiceDep,
):
    connection = await service.respond(current_user.id, payload.connection_id, payload.accept)
    message = "Connection accepted" if payload.accept else "Connection rejected"
    return StandardResponse(data=_serialize(connection, current_user.id), message=message)


@router.get("", response_model=StandardResponse[List[ConnectionResponse]])
async def list_connections(
    current_user: CurrentUser,
    service: ConnectionServiceDep,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    connections = await service.list_connections(current_user.id, limit=limit, offset=offset)
    return StandardResponse(data=[_serialize(connection, current_user.id) for connection in connections])


@router.get("/requests", response_model=StandardResponse[List[ConnectionResponse]])
async def list_pending_requests(
    current_user: CurrentUser,
    service: ConnectionServiceDep,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    connections = await service.list_pending(current_user.id, limit=limit, offset=offset)
    return StandardResponse(data=[_serialize(connection, current_user.id) for connection in connections])


@router.delete("/{connection_id}", response_model=StandardResponse)
async def remove_connection(connection_id: uuid.UUID, current_user: CurrentUser, service: ConnectionServiceDep):
    await service.remove(current_user.id, connection_id)
    return StandardResponse(message="Connection removed")
