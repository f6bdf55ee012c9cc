"""Loopback tests running the relay over a real WebSocket server."""

import asyncio
import json

import pytest
import pytest_asyncio
from websockets.asyncio.client import connect
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from server import RelayServer

TIMEOUT = 5


async def recv(ws):
    return json.loads(await asyncio.wait_for(ws.recv(), TIMEOUT))


async def send(ws, type, **payload):
    msg = {"type": type}
    if payload:
        msg["payload"] = payload
    await ws.send(json.dumps(msg))


@pytest_asyncio.fixture
async def running():
    server = RelayServer(heartbeat_interval=60)
    async with serve(server.handler, "127.0.0.1", 0, ping_interval=None) as ws_server:
        port = ws_server.sockets[0].getsockname()[1]
        yield server, f"ws://127.0.0.1:{port}"


@pytest.mark.asyncio
async def test_lobby_over_websocket(running):
    server, uri = running
    async with connect(uri) as a, connect(uri) as b:
        assert await recv(a) == {"type": "system", "payload": {"message": "Connected"}}
        assert await recv(b) == {"type": "system", "payload": {"message": "Connected"}}

        await send(a, "join", roomId="lobby", name="Ayush")
        joined = await recv(a)
        assert joined["type"] == "joined"
        assert joined["payload"]["name"] == "Ayush"

        await send(b, "join", roomId="lobby", name="Bea")
        assert (await recv(b))["type"] == "joined"
        assert await recv(a) == {"type": "system", "payload": {"message": "Bea joined room lobby"}}

        await send(b, "chat", message="hi")
        for ws in (a, b):
            msg = await recv(ws)
            assert msg["type"] == "chat"
            assert msg["payload"]["message"] == "hi"
            assert msg["payload"]["name"] == "Bea"
            assert isinstance(msg["payload"]["time"], int)

        await b.close()
        assert await recv(a) == {"type": "system", "payload": {"message": "Bea disconnected"}}

        await send(a, "rooms")
        assert await recv(a) == {"type": "rooms", "payload": {"rooms": [{"roomId": "lobby", "count": 1}]}}

        await a.send("not json")
        assert await recv(a) == {"type": "system", "payload": {"message": "invalid/unknown message"}}

    for _ in range(100):
        if len(server.relay.registry) == 0:
            break
        await asyncio.sleep(0.01)
    assert len(server.relay.registry) == 0


@pytest.mark.asyncio
async def test_probe_is_acknowledged_by_pong(running):
    server, uri = running
    async with connect(uri) as ws:
        await recv(ws)
        (connection,) = server.relay.registry.all_matching(lambda c: True)
        connection.is_alive = False
        server.probe(connection.handle)
        for _ in range(100):
            if connection.is_alive:
                break
            await asyncio.sleep(0.01)
        assert connection.is_alive is True


@pytest.mark.asyncio
async def test_heartbeat_terminates_silent_connection(running):
    server, uri = running
    async with connect(uri) as ws:
        await recv(ws)
        (connection,) = server.relay.registry.all_matching(lambda c: True)
        connection.is_alive = False
        assert server.heartbeat.sweep() == [connection.connection_id]
        assert len(server.relay.registry) == 0
        with pytest.raises(ConnectionClosed):
            await asyncio.wait_for(ws.recv(), TIMEOUT)
