from datetime import timedelta
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from locolive.auth.google import GoogleIdentityVerifier
from locolive.auth.tokens import TokenClaims, TokenKind, TokenManager
from locolive.config import settings
from locolive.core.exceptions import NotFoundError
from locolive.database import get_db
from locolive.models.user import User
from locolive.repositories.auth import AuthRepository

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")


@lru_cache(maxsize=1)
def get_token_manager() -> TokenManager:
    return TokenManager(
        settings.SECRET_KEY,
        access_lifetime=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_lifetime=timedelta(hours=settings.REFRESH_TOKEN_EXPIRE_HOURS),
        algorithm=settings.ALGORITHM,
        issuer=settings.TOKEN_ISSUER,
    )


@lru_cache(maxsize=1)
def get_google_verifier() -> GoogleIdentityVerifier:
    return GoogleIdentityVerifier(
        settings.GOOGLE_CLIENT_IDS,
        tokeninfo_url=settings.GOOGLE_TOKENINFO_URL,
        timeout_seconds=settings.GOOGLE_TIMEOUT_SECONDS,
    )


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_access_claims(
    token: Annotated[str, Depends(oauth2_scheme)],
    tokens: Annotated[TokenManager, Depends(get_token_manager)],
) -> TokenClaims:
    return tokens.verify(token, TokenKind.ACCESS)

async def get_current_user(
    claims: Annotated[TokenClaims, Depends(get_access_claims)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    try:
        return await AuthRepository(db).get_user_by_id(claims.user_id)
    except NotFoundError:
        raise _credentials_exception() from None

async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


CurrentUser = Annotated[User, Depends(get_current_active_user)]
AccessClaims = Annotated[TokenClaims, Depends(get_access_claims)]
