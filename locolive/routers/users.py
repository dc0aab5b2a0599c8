import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from locolive.auth.dependencies import CurrentUser
from locolive.auth.schemas import PublicUserResponse
from locolive.core.responses import StandardResponse
from locolive.dependencies import get_auth_service
from locolive.services.auth_service import AuthService

router = APIRouter()


@router.get("/{user_id}", response_model=StandardResponse[PublicUserResponse])
async def get_user_profile(
    user_id: uuid.UUID,
    current_user: CurrentUser,
    service: Annotated[AuthService, Depends(get_auth_service)],
):
    user = await service.get_user(user_id)
    return StandardResponse(data=PublicUserResponse.model_validate(user))
