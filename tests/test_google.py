import httpx
import pytest
from httpx import AsyncClient

from locolive.auth.dependencies import get_google_verifier
from locolive.auth.google import GoogleIdentityVerifier
from locolive.config import settings
from locolive.core.exceptions import InvalidTokenError, ValidationError
from locolive.main import app

CLIENT_ID = "locolive-test.apps.googleusercontent.com"
TOKENINFO_URL = "https://oauth2.test.com/tokeninfo"

ID_TOKENS = {
    "new-user": {"sub": "g-100", "email": "new.google@test.com", "name": "Google Person"},
    "existing": {"sub": "g-200", "email": "linked@test.com", "name": "Linked"},
    "wrong-audience": {"sub": "g-300", "email": "aud@test.com", "aud": "someone-else"},
    "no-email": {"sub": "g-400"},
}


def _tokeninfo(request: httpx.Request) -> httpx.Response:
    claims = ID_TOKENS.get(request.url.params.get("id_token"))
    if claims is None:
        return httpx.Response(400, json={"error": "invalid_token"})
    payload = {"aud": CLIENT_ID, "iss": "https://accounts.google.com", "email_verified": "true", **claims}
    return httpx.Response(200, json=payload)


def _verifier(client_ids=(CLIENT_ID,)) -> GoogleIdentityVerifier:
    return GoogleIdentityVerifier(
        list(client_ids),
        tokeninfo_url=TOKENINFO_URL,
        transport=httpx.MockTransport(_tokeninfo),
    )


@pytest.fixture
def google_client(client):
    app.dependency_overrides[get_google_verifier] = lambda: _verifier()
    yield client
    app.dependency_overrides.pop(get_google_verifier, None)


@pytest.mark.asyncio
async def test_verifier_accepts_valid_token():
    identity = await _verifier().verify("new-user")

    assert identity.provider == "google"
    assert identity.subject == "g-100"
    assert identity.email == "new.google@test.com"
    assert identity.email_verified is True


@pytest.mark.asyncio
@pytest.mark.parametrize("id_token", ["wrong-audience", "no-email", "unknown-token"])
async def test_verifier_rejects_bad_tokens(id_token):
    with pytest.raises(InvalidTokenError):
        await _verifier().verify(id_token)


@pytest.mark.asyncio
async def test_verifier_requires_configuration():
    with pytest.raises(ValidationError):
        await _verifier(client_ids=()).verify("new-user")


@pytest.mark.asyncio
async def test_google_login_creates_then_reuses_account(google_client: AsyncClient):
    url = f"{settings.API_V1_STR}/auth/google"

    first = await google_client.post(url, json={"id_token": "new-user"})
    assert first.status_code == 200
    assert first.json()["data"]["is_new_user"] is True
    assert first.json()["data"]["user"]["email_verified"] is True

    second = await google_client.post(url, json={"id_token": "new-user"})
    assert second.json()["data"]["is_new_user"] is False
    assert second.json()["data"]["user"]["id"] == first.json()["data"]["user"]["id"]

    refreshed = await google_client.post(
        f"{settings.API_V1_STR}/auth/refresh", json={"refresh_token": second.json()["data"]["refresh_token"]}
    )
    assert refreshed.status_code == 200


@pytest.mark.asyncio
async def test_google_login_links_existing_email_account(google_client: AsyncClient, register):
    existing = await register("linked@test.com", name="Linked")

    response = await google_client.post(f"{settings.API_V1_STR}/auth/google", json={"id_token": "existing"})

    assert response.status_code == 200
    assert response.json()["data"]["is_new_user"] is False
    assert response.json()["data"]["user"]["id"] == existing["user"]["id"]


@pytest.mark.asyncio
async def test_google_login_rejects_invalid_token(google_client: AsyncClient):
    response = await google_client.post(f"{settings.API_V1_STR}/auth/google", json={"id_token": "forged"})
    assert response.status_code == 401
