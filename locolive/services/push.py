import logging
from dataclasses import dataclass
from typing import Any

import httpx

from locolive.config import settings

logger = logging.getLogger(__name__)


@dataclass
class PushResult:
    status: str
    provider_message_id: str | None = None
    error_message: str | None = None


class PushProvider:
    async def send(self, device_token: str, title: str, body: str | None, data: dict[str, Any] | None) -> PushResult:
        raise NotImplementedError


class MockPushProvider(PushProvider):
    async def send(self, device_token: str, title: str, body: str | None, data: dict[str, Any] | None) -> PushResult:
        if not settings.PUSH_ENABLED:
            return PushResult(status="SKIPPED", error_message="Push disabled")
        if settings.PUSH_DRY_RUN:
            logger.info("Dry-run push to %s...: %s", device_token[:8], title)
            return PushResult(status="SENT", provider_message_id="dry-run")
        return PushResult(status="SENT", provider_message_id="mock-provider")


class HttpPushProvider(PushProvider):
    """Posts an FCM v1 shaped message to a configured push gateway."""

    async def send(self, device_token: str, title: str, body: str | None, data: dict[str, Any] | None) -> PushResult:
        if not settings.PUSH_ENABLED:
            return PushResult(status="SKIPPED", error_message="Push disabled")
        if not settings.PUSH_API_URL or not settings.PUSH_API_TOKEN:
            return PushResult(status="FAILED", error_message="Missing push API configuration")

        payload = {
            "message": {
                "token": device_token,
                "notification": {"title": title, "body": body or ""},
                # FCM data values must be strings
                "data": {key: str(value) for key, value in (data or {}).items()},
            }
        }
        headers = {"Authorization": f"Bearer {settings.PUSH_API_TOKEN}"}
        try:
            async with httpx.AsyncClient(timeout=settings.PUSH_TIMEOUT_SECONDS) as client:
                response = await client.post(settings.PUSH_API_URL, json=payload, headers=headers)
            if response.status_code >= 400:
                return PushResult(status="FAILED", error_message=f"HTTP {response.status_code}")

            response_data = response.json() if response.content else {}
            return PushResult(status="SENT", provider_message_id=str(response_data.get("name", "http-provider")))
        except httpx.HTTPError as exc:
            return PushResult(status="FAILED", error_message=str(exc))


def get_push_provider() -> PushProvider:
    if settings.PUSH_PROVIDER.lower() == "http":
        return HttpPushProvider()
    return MockPushProvider()
