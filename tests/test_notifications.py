import uuid

import pytest
from httpx import AsyncClient

from locolive.config import settings
from locolive.core.exceptions import UnauthorizedError
from locolive.core.tasks import TaskSupervisor
from locolive.database import AsyncSessionLocal
from locolive.repositories.auth import AuthRepository
from locolive.repositories.notification import NotificationRepository
from locolive.services.notification_service import NotificationService, Notifier
from locolive.services.push import HttpPushProvider, MockPushProvider, PushProvider, PushResult

NOTIFICATIONS = f"{settings.API_V1_STR}/notifications"


class RecordingPushProvider(PushProvider):
    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send(self, device_token, title, body, data):
        self.sent.append((device_token, title, body, data))
        if self.fail:
            raise RuntimeError("gateway down")
        return PushResult(status="SENT", provider_message_id="recorded")


async def _register_device(client: AsyncClient, user: dict, push_token: str) -> None:
    response = await client.put(
        f"{settings.API_V1_STR}/auth/me/push-token", json={"push_token": push_token}, headers=user["headers"]
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_notification_is_pushed_to_active_devices(client: AsyncClient, register):
    user = await register("push@test.com", name="Pushy")
    await _register_device(client, user, "device-1")
    provider = RecordingPushProvider()
    user_id = uuid.UUID(user["user"]["id"])

    async with AsyncSessionLocal() as db:
        service = NotificationService(NotificationRepository(db), provider)
        notification = await service.send_notification(user_id, "message", "Hello", "body", {"chat_id": "c1"})

    [(token, title, body, data)] = provider.sent
    assert token == "device-1"
    assert title == "Hello"
    assert data["chat_id"] == "c1"
    assert data["type"] == "message"
    assert data["notification_id"] == str(notification.id)

    # a signed-out session no longer receives pushes
    await client.post(f"{settings.API_V1_STR}/auth/logout", json={"refresh_token": user["refresh_token"]})
    provider.sent.clear()
    async with AsyncSessionLocal() as db:
        await NotificationService(NotificationRepository(db), provider).send_notification(user_id, "message", "Again")
    assert provider.sent == []


@pytest.mark.asyncio
async def test_push_failure_still_persists_notification(client: AsyncClient, register):
    user = await register("flaky@test.com", name="Flaky")
    await _register_device(client, user, "device-x")
    provider = RecordingPushProvider(fail=True)

    async with AsyncSessionLocal() as db:
        service = NotificationService(NotificationRepository(db), provider)
        await service.send_notification(uuid.UUID(user["user"]["id"]), "message", "Still stored")

    listed = await client.get(NOTIFICATIONS, headers=user["headers"])
    assert [item["title"] for item in listed.json()["data"]["notifications"]] == ["Still stored"]
    assert len(provider.sent) == 1


@pytest.mark.asyncio
async def test_listing_and_marking_read(client: AsyncClient, register):
    owner = await register("owner@test.com", name="Owner")
    other = await register("other@test.com", name="Other")
    owner_id = uuid.UUID(owner["user"]["id"])

    async with AsyncSessionLocal() as db:
        service = NotificationService(NotificationRepository(db), MockPushProvider())
        first = await service.send_notification(owner_id, "message", "First")
        await service.send_notification(owner_id, "message", "Second")
        await service.send_notification(owner_id, "message", "Third")

    listed = await client.get(NOTIFICATIONS, params={"limit": 2}, headers=owner["headers"])
    data = listed.json()["data"]
    assert [item["title"] for item in data["notifications"]] == ["Third", "Second"]
    assert data["unread_count"] == 3

    forbidden = await client.post(f"{NOTIFICATIONS}/{first.id}/read", headers=other["headers"])
    assert forbidden.status_code == 403

    marked = await client.post(f"{NOTIFICATIONS}/{first.id}/read", headers=owner["headers"])
    assert marked.json()["data"]["is_read"] is True

    everything = await client.post(f"{NOTIFICATIONS}/read-all", headers=owner["headers"])
    assert everything.status_code == 200
    listed = await client.get(NOTIFICATIONS, headers=owner["headers"])
    assert listed.json()["data"]["unread_count"] == 0
    assert all(item["is_read"] for item in listed.json()["data"]["notifications"])

    missing = await client.post(f"{NOTIFICATIONS}/{uuid.uuid4()}/read", headers=owner["headers"])
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_mark_as_read_checks_ownership(db_session):
    service = NotificationService(NotificationRepository(db_session), MockPushProvider())
    owner = await AuthRepository(db_session).create_user(name="Owner", email="own@test.com")
    notification = await service.send_notification(owner.id, "message", "Mine")

    with pytest.raises(UnauthorizedError):
        await service.mark_as_read(uuid.uuid4(), notification.id)


@pytest.mark.asyncio
async def test_notifier_delivers_in_the_background(db_session):
    user = await AuthRepository(db_session).create_user(name="Later", email="later@test.com")
    supervisor = TaskSupervisor()
    notifier = Notifier(supervisor, AsyncSessionLocal, MockPushProvider())

    notifier.notify(user.id, "connection_request", "Someone wants to connect")
    assert supervisor.pending == 1
    await supervisor.drain(timeout=5)

    notifications, unread = await NotificationService(
        NotificationRepository(db_session), MockPushProvider()
    ).list_notifications(user.id)
    assert [n.title for n in notifications] == ["Someone wants to connect"]
    assert unread == 1


@pytest.mark.asyncio
async def test_push_providers_respect_configuration(monkeypatch):
    monkeypatch.setattr(settings, "PUSH_ENABLED", False)
    skipped = await MockPushProvider().send("token", "title", None, None)
    assert skipped.status == "SKIPPED"

    monkeypatch.setattr(settings, "PUSH_ENABLED", True)
    monkeypatch.setattr(settings, "PUSH_DRY_RUN", True)
    dry_run = await MockPushProvider().send("token", "title", None, None)
    assert dry_run.status == "SENT"
    assert dry_run.provider_message_id == "dry-run"

    monkeypatch.setattr(settings, "PUSH_API_URL", None)
    unconfigured = await HttpPushProvider().send("token", "title", None, None)
    assert unconfigured.status == "FAILED"
