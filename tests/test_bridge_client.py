"""
Tests for the client entry point wiring the bridge websocket to the session controller.
"""

import asyncio

import pytest
import pytest_asyncio
import websockets

from client.bridge_client import BridgeClient
from client.polling import MESSAGES, PROGRESS
from client.session_cache import SessionCache
from conftest import FakeBridgeSocket


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate() and loop.time() < deadline:
        await asyncio.sleep(0.01)


@pytest.fixture
def bridge_socket(monkeypatch):
    socket = FakeBridgeSocket()
    monkeypatch.setattr(websockets, "connect", socket.connect)
    return socket


@pytest_asyncio.fixture
async def client(bridge_socket, tmp_path):
    client = BridgeClient("ws://bridge.test/ws", token="tok", cache=SessionCache(tmp_path / "cache"))
    yield client
    await client.stop()


class TestBridgeClient:
    @pytest.mark.asyncio
    async def test_start_authenticates_and_opens_session(self, client, bridge_socket):
        opened = await client.start("s-1", "/agent/s-1")

        assert opened == "s-1"
        assert bridge_socket.url == "ws://bridge.test/ws?token=tok"
        assert [frame["action"] for frame in bridge_socket.sent] == ["authenticate", "initial_load"]
        assert client.controller.orchestrator.is_running(MESSAGES)

    @pytest.mark.asyncio
    async def test_cached_session_is_resumed(self, client, bridge_socket):
        await client.controller.cache.save_session("s-9", "/agent/s-9")

        opened = await client.start()

        assert opened == "s-9"
        assert client.controller.context.session_id == "s-9"

    @pytest.mark.asyncio
    async def test_nothing_to_resume(self, client, bridge_socket):
        assert await client.start() is None
        assert not client.controller.orchestrator.is_running(PROGRESS)

    @pytest.mark.asyncio
    async def test_replies_reach_the_transcript(self, client, bridge_socket):
        await client.start("s-1")

        bridge_socket.push({"action": "heartbeat"})
        bridge_socket.push("not json")
        bridge_socket.push({
            "action": "get_messages",
            "success": True,
            "messages": [{"role": "user", "text": "hi"}, {"role": "agent", "text": "hello"}],
        })
        await wait_until(lambda: len(client.controller.messages) == 2)

        assert [(m.role, m.text) for m in client.controller.messages] == [("user", "hi"), ("agent", "hello")]

    @pytest.mark.asyncio
    async def test_bridge_hang_up_stops_polling(self, client, bridge_socket):
        """Closing the connection from the bridge side stops every scheduled task."""
        await client.start("s-1")
        assert client.controller.orchestrator.is_running(MESSAGES)

        bridge_socket.hang_up()
        await asyncio.wait_for(client.wait_closed(), timeout=1)

        assert client.closed
        assert not client.controller.orchestrator.is_running(MESSAGES)
        assert not client.controller.orchestrator.is_running(PROGRESS)
        assert not client.connection.connected

    @pytest.mark.asyncio
    async def test_stop_closes_socket_and_polling(self, client, bridge_socket):
        await client.start("s-1")

        await client.stop()

        assert bridge_socket.closed
        assert client.closed
        assert not client.controller.orchestrator.is_running(MESSAGES)
