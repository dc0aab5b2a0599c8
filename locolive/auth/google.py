import logging
from dataclasses import dataclass

import httpx

from locolive.core.exceptions import InvalidTokenError, ValidationError

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class ExternalIdentity:
    provider: str
    subject: str
    email: str
    email_verified: bool = False
    name: str | None = None
    picture: str | None = None


class GoogleIdentityVerifier:
    """Verifies Google ID tokens through Google's tokeninfo endpoint."""

    def __init__(
        self,
        client_ids: list[str],
        *,
        tokeninfo_url: str,
        timeout_seconds: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_ids = [client_id for client_id in client_ids if client_id]
        self.tokeninfo_url = tokeninfo_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.client_ids)

    async def verify(self, id_token: str) -> ExternalIdentity:
        if not self.configured:
            raise ValidationError("Google sign-in is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(self.tokeninfo_url, params={"id_token": id_token})
        except httpx.HTTPError as exc:
            logger.warning("Google token verification request failed: %s", exc)
            raise InvalidTokenError("Invalid Google ID token") from exc

        if response.status_code != 200:
            raise InvalidTokenError("Invalid Google ID token")

        payload = response.json()
        if payload.get("aud") not in self.client_ids or payload.get("iss") not in GOOGLE_ISSUERS:
            raise InvalidTokenError("Invalid Google ID token")

        subject = payload.get("sub")
        email = payload.get("email")
        if not subject:
            raise InvalidTokenError("Invalid Google ID token")
        if not email:
            raise InvalidTokenError("Email not found in Google token")

        return ExternalIdentity(
            provider="google",
            subject=str(subject),
            email=str(email).strip().lower(),
            email_verified=str(payload.get("email_verified", "false")).lower() == "true",
            name=payload.get("name"),
            picture=payload.get("picture"),
        )
