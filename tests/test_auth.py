import uuid

import pytest
from httpx import AsyncClient

from locolive.auth.dependencies import get_token_manager
from locolive.config import settings

TEST_PASSWORD = "Abcd1234"
AUTH = f"{settings.API_V1_STR}/auth"


@pytest.mark.asyncio
async def test_register_returns_tokens_and_profile(client: AsyncClient):
    response = await client.post(
        f"{AUTH}/register",
        json={"email": "u1@test.com", "password": "Abcd1234", "name": "Test"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert data["data"]["token_type"] == "bearer"
    assert data["data"]["access_token"]
    assert data["data"]["refresh_token"]
    assert data["data"]["expires_in"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    assert data["data"]["is_new_user"] is True
    assert data["data"]["user"]["email"] == "u1@test.com"
    assert data["data"]["user"]["name"] == "Test"
    assert "password_hash" not in data["data"]["user"]


@pytest.mark.asyncio
async def test_register_normalizes_email_and_rejects_duplicates(client: AsyncClient, register):
    await register("Mixed.Case@Test.com")

    response = await client.post(
        f"{AUTH}/register",
        json={"email": "mixed.case@test.com", "password": TEST_PASSWORD, "name": "Other"},
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_register_enforces_password_policy(client: AsyncClient):
    response = await client.post(
        f"{AUTH}/register",
        json={"email": "weak@test.com", "password": "abcdefgh", "name": "Weak"},
    )

    assert response.status_code == 400
    body = response.json()
    assert any("uppercase" in error for error in body["errors"])
    assert any("digit" in error for error in body["errors"])


@pytest.mark.asyncio
async def test_register_rejects_malformed_email(client: AsyncClient):
    response = await client.post(
        f"{AUTH}/register",
        json={"email": "not-an-email", "password": TEST_PASSWORD, "name": "Nobody"},
    )
    assert response.status_code == 422
    assert response.json()["message"] == "Validation Error"


@pytest.mark.asyncio
async def test_login_success_and_uniform_failures(client: AsyncClient, register):
    await register("login@test.com")

    ok = await client.post(f"{AUTH}/login", json={"email": "LOGIN@test.com", "password": TEST_PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["data"]["is_new_user"] is False

    wrong_password = await client.post(f"{AUTH}/login", json={"email": "login@test.com", "password": "Wrong1234"})
    unknown_email = await client.post(f"{AUTH}/login", json={"email": "ghost@test.com", "password": TEST_PASSWORD})
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json()["detail"] == unknown_email.json()["detail"] == "Invalid email or password"
    assert wrong_password.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_me_requires_an_access_token(client: AsyncClient, register):
    user = await register("me@test.com", name="Me Myself")

    response = await client.get(f"{AUTH}/me", headers=user["headers"])
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Me Myself"

    missing = await client.get(f"{AUTH}/me")
    assert missing.status_code == 401

    with_refresh = await client.get(
        f"{AUTH}/me", headers={"Authorization": f"Bearer {user['refresh_token']}"}
    )
    assert with_refresh.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_and_reuse_revokes_the_chain(client: AsyncClient, register):
    user = await register("rotate@test.com")
    original = user["refresh_token"]

    first = await client.post(f"{AUTH}/refresh", json={"refresh_token": original})
    assert first.status_code == 200
    rotated = first.json()["data"]["refresh_token"]
    assert rotated != original

    reuse = await client.post(f"{AUTH}/refresh", json={"refresh_token": original})
    assert reuse.status_code == 401

    # reuse of the old token also kills the token that replaced it
    after_reuse = await client.post(f"{AUTH}/refresh", json={"refresh_token": rotated})
    assert after_reuse.status_code == 401


@pytest.mark.asyncio
async def test_reuse_and_unknown_token_failures_look_identical(client: AsyncClient, register):
    user = await register("identical@test.com")
    await client.post(f"{AUTH}/refresh", json={"refresh_token": user["refresh_token"]})
    never_stored, _ = get_token_manager().issue_refresh_token(uuid.UUID(user["user"]["id"]))
    headers = {"X-Request-ID": "fixed-request-id"}

    reuse = await client.post(f"{AUTH}/refresh", json={"refresh_token": user["refresh_token"]}, headers=headers)
    unknown = await client.post(f"{AUTH}/refresh", json={"refresh_token": never_stored}, headers=headers)

    assert reuse.status_code == unknown.status_code == 401
    assert reuse.content == unknown.content


@pytest.mark.asyncio
async def test_refresh_rejects_access_tokens(client: AsyncClient, register):
    user = await register("kind@test.com")

    response = await client.post(f"{AUTH}/refresh", json={"refresh_token": user["access_token"]})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_is_idempotent_and_kills_the_session(client: AsyncClient, register):
    user = await register("logout@test.com")

    first = await client.post(f"{AUTH}/logout", json={"refresh_token": user["refresh_token"]})
    second = await client.post(f"{AUTH}/logout", json={"refresh_token": user["refresh_token"]})
    garbage = await client.post(f"{AUTH}/logout", json={"refresh_token": "garbage"})
    assert first.status_code == second.status_code == garbage.status_code == 200

    refresh = await client.post(f"{AUTH}/refresh", json={"refresh_token": user["refresh_token"]})
    assert refresh.status_code == 401


@pytest.mark.asyncio
async def test_logout_all_revokes_every_session(client: AsyncClient, register):
    user = await register("everywhere@test.com")
    second_device = await client.post(
        f"{AUTH}/login", json={"email": "everywhere@test.com", "password": TEST_PASSWORD}
    )
    second_refresh = second_device.json()["data"]["refresh_token"]

    response = await client.post(f"{AUTH}/logout-all", headers=user["headers"])
    assert response.status_code == 200

    for token in (user["refresh_token"], second_refresh):
        refresh = await client.post(f"{AUTH}/refresh", json={"refresh_token": token})
        assert refresh.status_code == 401


@pytest.mark.asyncio
async def test_forgot_password_does_not_reveal_registration(client: AsyncClient, register):
    await register("known@test.com")

    known = await client.post(f"{AUTH}/forgot-password", json={"email": "known@test.com"})
    unknown = await client.post(f"{AUTH}/forgot-password", json={"email": "unknown@test.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json()["message"] == unknown.json()["message"]
    assert "token" not in known.text


@pytest.mark.asyncio
async def test_reset_password_rejects_unknown_token(client: AsyncClient):
    response = await client.post(
        f"{AUTH}/reset-password", json={"token": "does-not-exist", "new_password": "NewPass123"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_profile_password_and_email_updates(client: AsyncClient, register):
    user = await register("profile@test.com", name="Before")
    headers = user["headers"]

    profile = await client.put(f"{AUTH}/me", json={"name": "After", "bio": "hello"}, headers=headers)
    assert profile.status_code == 200
    assert profile.json()["data"]["name"] == "After"
    assert profile.json()["data"]["bio"] == "hello"

    short_name = await client.put(f"{AUTH}/me", json={"name": "A"}, headers=headers)
    assert short_name.status_code == 400

    bad_current = await client.put(
        f"{AUTH}/me/password",
        json={"current_password": "Wrong1234", "new_password": "NewPass123"},
        headers=headers,
    )
    assert bad_current.status_code == 401

    changed = await client.put(
        f"{AUTH}/me/password",
        json={"current_password": TEST_PASSWORD, "new_password": "NewPass123"},
        headers=headers,
    )
    assert changed.status_code == 200

    login = await client.post(f"{AUTH}/login", json={"email": "profile@test.com", "password": "NewPass123"})
    assert login.status_code == 200

    email = await client.put(
        f"{AUTH}/me/email",
        json={"new_email": "Renamed@Test.com", "password": "NewPass123"},
        headers=headers,
    )
    assert email.status_code == 200
    assert email.json()["data"]["email"] == "renamed@test.com"


@pytest.mark.asyncio
async def test_email_change_conflict(client: AsyncClient, register):
    await register("taken@test.com")
    user = await register("mover@test.com")

    response = await client.put(
        f"{AUTH}/me/email",
        json={"new_email": "taken@test.com", "password": TEST_PASSWORD},
        headers=user["headers"],
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_push_token_is_stored_on_the_session(client: AsyncClient, register):
    user = await register("device@test.com")

    response = await client.put(
        f"{AUTH}/me/push-token", json={"push_token": "device-token-1"}, headers=user["headers"]
    )
    assert response.status_code == 200

    await client.post(f"{AUTH}/logout", json={"refresh_token": user["refresh_token"]})
    after_logout = await client.put(
        f"{AUTH}/me/push-token", json={"push_token": "device-token-2"}, headers=user["headers"]
    )
    assert after_logout.status_code == 404


@pytest.mark.asyncio
async def test_public_profile_hides_private_fields(client: AsyncClient, register):
    viewer = await register("viewer@test.com")
    target = await register("target@test.com", name="Target")

    response = await client.get(
        f"{settings.API_V1_STR}/users/{target['user']['id']}", headers=viewer["headers"]
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Target"
    assert "email" not in data

    missing = await client.get(f"{settings.API_V1_STR}/users/{uuid.uuid4()}", headers=viewer["headers"])
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_login_rate_limit(client: AsyncClient):
    payload = {"email": "brute@test.com", "password": "Wrong1234"}
    for _ in range(5):
        response = await client.post(f"{AUTH}/login", json=payload)
        assert response.status_code == 401

    limited = await client.post(f"{AUTH}/login", json=payload)
    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) >= 1

    # the bucket is per email, so another account is unaffected
    other = await client.post(f"{AUTH}/login", json={"email": "other@test.com", "password": "Wrong1234"})
    assert other.status_code == 401


@pytest.mark.asyncio
async def test_health_endpoints(client: AsyncClient):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json() == {"status": "ok", "live_connections": 0}

    healthz = await client.get("/healthz")
    assert healthz.status_code == 200
    assert healthz.json()["database"] == "ok"

    echoed = await client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert echoed.headers["X-Request-ID"] == "abc-123"
