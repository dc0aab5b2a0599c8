from __future__ import annotations

import json
import time
from collections import deque
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from locolive.config import settings


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int
    json_fields: tuple[str, ...] = ()


# Credential endpoints only; everything else sits behind an access token.
AUTH_RATE_LIMITS: dict[str, RateLimitRule] = {
    "register": RateLimitRule(limit=10, window_seconds=60),
    "login": RateLimitRule(limit=5, window_seconds=60, json_fields=("email",)),
    "google": RateLimitRule(limit=10, window_seconds=60),
    "refresh": RateLimitRule(limit=10, window_seconds=60),
    "forgot-password": RateLimitRule(limit=5, window_seconds=60, json_fields=("email",)),
}


class SlidingWindowRateLimiter:
    """Per-key sliding window held in process memory.

    ``allow`` never awaits between reading and updating a bucket, so calls on
    one event loop cannot interleave.
    """

    def __init__(self) -> None:
        self._entries: dict[str, deque[float]] = {}

    def allow(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        bucket = self._entries.setdefault(key, deque())
        boundary = now - window_seconds
        while bucket and bucket[0] <= boundary:
            bucket.popleft()
        if len(bucket) >= limit:
            retry_after = max(int(window_seconds - (now - bucket[0])) + 1, 1)
            return False, retry_after
        bucket.append(now)
        return True, 0

    def reset(self) -> None:
        self._entries.clear()


_rate_limiter = SlidingWindowRateLimiter()


def reset_rate_limiter_state() -> None:
    _rate_limiter.reset()


def client_address(request: Request, forwarded_for: str | None = None) -> str:
    forwarded = (forwarded_for or request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    client_host = request.client.host if request.client else None
    return forwarded or client_host or "unknown"


async def _json_key_parts(request: Request, fields: tuple[str, ...]) -> list[str]:
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/json" not in content_type:
        return []
    try:
        payload = json.loads((await request.body()) or b"{}")
    except json.JSONDecodeError:
        return []
    if not isinstance(payload, dict):
        return []
    return [
        f"{field}={str(payload[field]).strip().lower()}"
        for field in fields
        if payload.get(field) is not None
    ]


def rate_limit(scope: str):
    """Dependency enforcing ``AUTH_RATE_LIMITS[scope]``; answers 429 when exceeded."""
    rule = AUTH_RATE_LIMITS[scope]

    async def dependency(
        request: Request,
        x_forwarded_for: Annotated[str | None, Header(alias="X-Forwarded-For")] = None,
    ) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        key_parts = [scope, client_address(request, x_forwarded_for)]
        if rule.json_fields:
            key_parts.extend(await _json_key_parts(request, rule.json_fields))
        allowed, retry_after = _rate_limiter.allow(
            ":".join(key_parts),
            limit=rule.limit,
            window_seconds=rule.window_seconds,
        )
        if not allowed:
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {retry_after} seconds.",
                headers={"Retry-After": str(retry_after)},
            )

    return Depends(dependency)
