import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from locolive.auth import schemas
from locolive.auth.dependencies import AccessClaims, CurrentUser, get_google_verifier
from locolive.auth.google import GoogleIdentityVerifier
from locolive.config import settings
from locolive.core.exceptions import ValidationError
from locolive.core.rate_limit import client_address, rate_limit
from locolive.core.responses import StandardResponse
from locolive.dependencies import get_auth_service
from locolive.services.auth_service import AuthResult, AuthService, ClientInfo

logger = logging.getLogger(__name__)

router = APIRouter()

AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


def _client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        device_info=request.headers.get("X-Device-Info"),
        ip_address=client_address(request),
        user_agent=request.headers.get("User-Agent"),
    )


def _token(access_token: str, refresh_token: str) -> dict:
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


def _auth_response(result: AuthResult) -> schemas.AuthResponse:
    return schemas.AuthResponse(
        user=schemas.UserResponse.model_validate(result.user),
        is_new_user=result.is_new_user,
        **_token(result.tokens.access_token, result.tokens.refresh_token),
    )


@router.post(
    "/register",
    response_model=StandardResponse[schemas.AuthResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[rate_limit("register")],
)
async def register(user_in: schemas.RegisterRequest, request: Request, service: AuthServiceDep):
    result = await service.register(user_in.email, user_in.password, user_in.name, client=_client_info(request))
    return StandardResponse(data=_auth_response(result), message="User registered successfully")

@router.post(
    "/login",
    response_model=StandardResponse[schemas.AuthResponse],
    dependencies=[rate_limit("login")],
)
async def login(login_data: schemas.LoginRequest, request: Request, service: AuthServiceDep):
    result = await service.login(login_data.email, login_data.password, client=_client_info(request))
    return StandardResponse(data=_auth_response(result), message="Login Successful")

@router.post(
    "/google",
    response_model=StandardResponse[schemas.AuthResponse],
    dependencies=[rate_limit("google")],
)
async def google_login(
    payload: schemas.GoogleLoginRequest,
    request: Request,
    service: AuthServiceDep,
    verifier: Annotated[GoogleIdentityVerifier, Depends(get_google_verifier)],
):
    identity = await verifier.verify(payload.id_token)
    result = await service.google_login(identity, client=_client_info(request))
    return StandardResponse(data=_auth_response(result), message="Login Successful")

@router.post(
    "/refresh",
    response_model=StandardResponse[schemas.Token],
    dependencies=[rate_limit("refresh")],
)
async def refresh_token(payload: schemas.RefreshRequest, service: AuthServiceDep):
    pair = await service.refresh(payload.refresh_token)
    return StandardResponse(
        data=schemas.Token(**_token(pair.access_token, pair.refresh_token)),
        message="Token Refreshed"
    )

@router.post("/logout", response_model=StandardResponse)
async def logout(payload: schemas.LogoutRequest, service: AuthServiceDep):
    await service.logout(payload.refresh_token)
    return StandardResponse(message="Logged out successfully")

@router.post("/logout-all", response_model=StandardResponse)
async def logout_all(current_user: CurrentUser, service: AuthServiceDep):
    await service.logout_all(current_user.id)
    return StandardResponse(message="Logged out from all devices")

@router.post(
    "/forgot-password",
    response_model=StandardResponse,
    dependencies=[rate_limit("forgot-password")],
)
async def forgot_password(payload: schemas.ForgotPasswordRequest, service: AuthServiceDep):
    token = await service.initiate_password_reset(payload.email)
    if token is not None:
        # handed to the mail channel; never part of the response
        logger.debug("Password reset token issued for %s", payload.email)
    return StandardResponse(message="If the email exists, a reset link has been sent")

@router.post("/reset-password", response_model=StandardResponse)
async def reset_password(payload: schemas.ResetPasswordRequest, service: AuthServiceDep):
    await service.reset_password(payload.token, payload.new_password)
    return StandardResponse(message="Password reset successfully")

@router.get("/me", response_model=StandardResponse[schemas.UserResponse])
async def read_users_me(current_user: CurrentUser):
    return StandardResponse(data=schemas.UserResponse.model_validate(current_user))

@router.put("/me", response_model=StandardResponse[schemas.UserResponse])
async def update_user_me(user_update: schemas.UserUpdate, current_user: CurrentUser, service: AuthServiceDep):
    """Update current user profile."""
    update_data = user_update.model_dump(exclude_unset=True)
    if "name" in update_data and update_data["name"] is None:
        raise ValidationError("Name cannot be empty")
    user = await service.update_profile(current_user.id, update_data)
    return StandardResponse(data=schemas.UserResponse.model_validate(user), message="Profile updated successfully")

@router.put("/me/password", response_model=StandardResponse)
async def change_password(password_data: schemas.PasswordChange, current_user: CurrentUser, service: AuthServiceDep):
    """Change current user password."""
    await service.update_password(current_user.id, password_data.current_password, password_data.new_password)
    return StandardResponse(message="Password changed successfully")

@router.put("/me/email", response_model=StandardResponse[schemas.UserResponse])
async def change_email(email_data: schemas.EmailChange, current_user: CurrentUser, service: AuthServiceDep):
    user = await service.update_email(current_user.id, email_data.new_email, email_data.password)
    return StandardResponse(data=schemas.UserResponse.model_validate(user), message="Email updated successfully")

@router.put("/me/push-token", response_model=StandardResponse)
async def update_push_token(
    payload: schemas.PushTokenUpdate,
    current_user: CurrentUser,
    claims: AccessClaims,
    service: AuthServiceDep,
):
    if claims.session_id is None:
        raise ValidationError("Access token is not bound to a session")
    await service.register_push_token(claims.session_id, payload.push_token)
    return StandardResponse(message="Push token updated")
