import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="locolive-tests-")

os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db"
os.environ["APP_ENV"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DB_AUTO_CREATE"] = "true"
os.environ["CLEANUP_ENABLED"] = "false"
os.environ["PUSH_ENABLED"] = "false"

import asyncio
from typing import AsyncGenerator

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocketDisconnect

from locolive.config import settings
from locolive.core.rate_limit import reset_rate_limiter_state
from locolive.database import AsyncSessionLocal, Base, engine, get_db
from locolive.main import app, start_runtime, stop_runtime
import locolive.models  # noqa: F401

TEST_PASSWORD = "Abcd1234"


async def reset_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


class FakeSocket:
    """Stands in for a websocket: records outbound text, replays inbound frames."""

    def __init__(self, inbound: list[str] | None = None) -> None:
        self.sent: list[str] = []
        self._inbound: asyncio.Queue = asyncio.Queue()
        for frame in inbound or []:
            self._inbound.put_nowait(frame)

    def push(self, frame: str | None) -> None:
        self._inbound.put_nowait(frame)

    async def send_text(self, data: str) -> None:
        self.sent.append(data)

    async def receive_text(self) -> str:
        frame = await self._inbound.get()
        if frame is None:
            raise WebSocketDisconnect(code=1000)
        return frame


@pytest.fixture(scope="function")
async def db_engine():
    await reset_schema()
    yield engine
    await drop_schema()


@pytest.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture(scope="function")
async def runtime(db_engine):
    await start_runtime(app)
    yield app.state
    await stop_runtime(app)


@pytest.fixture(scope="function")
async def client(db_session, runtime) -> AsyncGenerator[AsyncClient, None]:
    reset_rate_limiter_state()

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    await runtime.supervisor.drain(timeout=5)
    app.dependency_overrides.clear()
    reset_rate_limiter_state()


@pytest.fixture
def register(client):
    """Register a user over HTTP and return the auth payload plus ready-made headers."""

    async def _register(email: str, name: str = "Test User", password: str = TEST_PASSWORD) -> dict:
        response = await client.post(
            f"{settings.API_V1_STR}/auth/register",
            json={"email": email, "password": password, "name": name},
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        data["headers"] = {"Authorization": f"Bearer {data['access_token']}"}
        return data

    return _register


@pytest.fixture
def drain_background(runtime):
    async def _drain() -> None:
        await runtime.supervisor.drain(timeout=5)

    return _drain


@pytest.fixture
def fake_socket():
    return FakeSocket


@pytest.fixture
def live_client():
    """Full application with startup and shutdown hooks, for websocket tests."""
    asyncio.run(reset_schema())
    reset_rate_limiter_state()
    with TestClient(app) as c:
        yield c
    asyncio.run(drop_schema())
