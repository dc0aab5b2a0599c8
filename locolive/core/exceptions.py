import logging

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base for errors that carry their own client-facing status and message."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class AlreadyExistsError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class InvalidCredentialsError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class InvalidTokenError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid token"


class TokenExpiredError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Token has expired"


class TokenRevokedError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid refresh token"


class UnauthorizedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Operation not permitted"


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"

    def __init__(self, message: str | None = None, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message or "; ".join(self.errors) or None)


async def domain_exception_handler(request: Request, exc: DomainError):
    request_id = getattr(request.state, "request_id", None)
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    content = {"detail": exc.message, "request_id": request_id}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors()), "message": "Validation Error", "request_id": request_id},
    )

async def integrity_exception_handler(request: Request, exc: IntegrityError):
    request_id = getattr(request.state, "request_id", None)
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Database conflict. A record with this identifier likely already exists.", "request_id": request_id},
    )
