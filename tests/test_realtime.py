import asyncio
import json
import uuid

import pytest

from locolive.realtime.connection import LiveConnection
from locolive.realtime.dispatcher import FanoutDispatcher, encode_event
from locolive.realtime.hub import RealtimeHub
from locolive.realtime.registry import ConnectionRegistry


@pytest.fixture
async def registry():
    registry = ConnectionRegistry()
    await registry.start()
    yield registry
    await registry.stop()


def _drain_queue(connection: LiveConnection) -> list[str]:
    items = []
    while not connection.outbound.empty():
        items.append(connection.outbound.get_nowait())
    return items


@pytest.mark.asyncio
async def test_register_and_unregister_are_visible_in_snapshots(registry, fake_socket):
    user_id = uuid.uuid4()
    first = LiveConnection(fake_socket(), user_id)
    second = LiveConnection(fake_socket(), user_id)

    registry.register(first)
    registry.register(second)
    snapshot = await registry.snapshot()
    assert snapshot.total_connections == 2
    assert snapshot.users_online == 1
    assert set((await registry.snapshot(user_id)).connection_ids) == {first.id, second.id}

    registry.unregister(first)
    registry.unregister(first)
    snapshot = await registry.snapshot()
    assert snapshot.total_connections == 1
    assert first.closed and not second.closed

    registry.unregister(second)
    assert (await registry.snapshot()).users_online == 0


@pytest.mark.asyncio
async def test_send_reaches_every_connection_of_the_user_only(registry, fake_socket):
    alice, bob = uuid.uuid4(), uuid.uuid4()
    alice_phone = LiveConnection(fake_socket(), alice)
    alice_laptop = LiveConnection(fake_socket(), alice)
    bob_phone = LiveConnection(fake_socket(), bob)
    for connection in (alice_phone, alice_laptop, bob_phone):
        registry.register(connection)

    for index in range(3):
        registry.send_to_user(alice, f"frame-{index}")
    await registry.snapshot()

    assert _drain_queue(alice_phone) == ["frame-0", "frame-1", "frame-2"]
    assert _drain_queue(alice_laptop) == ["frame-0", "frame-1", "frame-2"]
    assert _drain_queue(bob_phone) == []


@pytest.mark.asyncio
async def test_send_to_offline_user_is_a_no_op(registry):
    registry.send_to_user(uuid.uuid4(), "nobody home")
    snapshot = await registry.snapshot()
    assert snapshot.total_connections == 0


@pytest.mark.asyncio
async def test_full_queue_drops_instead_of_blocking(registry, fake_socket):
    user_id = uuid.uuid4()
    connection = LiveConnection(fake_socket(), user_id, queue_size=2)
    registry.register(connection)

    for index in range(5):
        registry.send_to_user(user_id, f"frame-{index}")
    await registry.snapshot()

    assert connection.dropped == 3
    assert _drain_queue(connection) == ["frame-0", "frame-1"]


@pytest.mark.asyncio
async def test_stop_closes_remaining_connections(fake_socket):
    registry = ConnectionRegistry()
    await registry.start()
    connection = LiveConnection(fake_socket(), uuid.uuid4())
    registry.register(connection)
    await registry.snapshot()

    await registry.stop()

    assert connection.closed
    assert not registry.running


@pytest.mark.asyncio
async def test_write_loop_batches_pending_frames(fake_socket):
    socket = fake_socket()
    connection = LiveConnection(socket, uuid.uuid4())
    for frame in ("a", "b", "c"):
        assert connection.offer(frame)
    connection.close()

    await asyncio.wait_for(connection.write_loop(), timeout=1)

    assert socket.sent == ["a\nb\nc"]
    assert connection.offer("late") is False


def test_encode_event_shape():
    user_id = uuid.uuid4()
    decoded = json.loads(encode_event("new_message", {"sender_id": user_id, "content": "hi"}))
    assert decoded == {"type": "new_message", "payload": {"sender_id": str(user_id), "content": "hi"}}


@pytest.mark.asyncio
async def test_dispatcher_sends_once_per_user(registry, fake_socket):
    dispatcher = FanoutDispatcher(registry)
    user_id = uuid.uuid4()
    connection = LiveConnection(fake_socket(), user_id)
    registry.register(connection)

    dispatcher.send_to_users([user_id, user_id], "ping", {})
    await registry.snapshot()

    assert len(_drain_queue(connection)) == 1


@pytest.mark.asyncio
async def test_hub_serves_until_disconnect(fake_socket):
    hub = RealtimeHub(queue_size=8)
    await hub.start()
    user_id = uuid.uuid4()
    socket = fake_socket(inbound=['{"action": "ping"}', "not json", '{"action": "unknown"}', None])

    connection = hub.accept_connection(socket, user_id)
    hub.dispatch(user_id, "hello", {"n": 1})
    await asyncio.wait_for(hub.serve(connection), timeout=2)

    frames = [json.loads(line) for batch in socket.sent for line in batch.split("\n")]
    assert {"type": "hello", "payload": {"n": 1}} in frames
    assert {"type": "pong", "payload": {}} in frames
    assert len(frames) == 2
    assert (await hub.registry.snapshot()).total_connections == 0
    await hub.stop()


class _BrokenPipeSocket:
    """Accepts reads forever but fails every write."""

    def __init__(self) -> None:
        self._never = asyncio.Event()

    async def send_text(self, data: str) -> None:
        raise ConnectionResetError("peer went away")

    async def receive_text(self) -> str:
        await self._never.wait()
        return ""


@pytest.mark.asyncio
async def test_failing_write_reaps_the_connection():
    hub = RealtimeHub(queue_size=8)
    await hub.start()
    user_id = uuid.uuid4()
    connection = hub.accept_connection(_BrokenPipeSocket(), user_id)
    assert (await hub.registry.snapshot()).total_connections == 1

    hub.dispatch(user_id, "hello", {"n": 1})
    await asyncio.wait_for(hub.serve(connection), timeout=2)

    assert connection.closed
    snapshot = await hub.registry.snapshot()
    assert snapshot.total_connections == 0
    assert snapshot.users_online == 0
    await hub.stop()
