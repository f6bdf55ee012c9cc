#!/usr/bin/env python3
import asyncio
from typing import Dict, Set

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from common import Settings, TransportError
from dispatcher import Relay
from heartbeat import HeartbeatMonitor
from logging_config import get_logger, setup_logging

logger = get_logger(__name__)


class RelayServer:
    """Runs the relay over `websockets` and acts as its transport.

    Outbound frames go through a per-connection queue drained by a writer
    task, so `send` never blocks a transition and frames to one peer keep
    their order.
    """

    def __init__(self, heartbeat_interval: float):
        self.relay = Relay(self)
        self.heartbeat = HeartbeatMonitor(self.relay, heartbeat_interval)
        self._outboxes: Dict[ServerConnection, asyncio.Queue] = {}
        self._ids: Dict[ServerConnection, str] = {}
        self._pending: Set[asyncio.Task] = set()

    # ---- Transport ----

    def is_open(self, ws: ServerConnection) -> bool:
        return ws.state is State.OPEN

    def send(self, ws: ServerConnection, frame: str) -> bool:
        outbox = self._outboxes.get(ws)
        if outbox is None:
            return False
        outbox.put_nowait(frame)
        return True

    def terminate(self, ws: ServerConnection) -> None:
        if ws.transport is None:
            raise TransportError("no underlying transport")
        ws.transport.abort()

    def probe(self, ws: ServerConnection) -> None:
        connection_id = self._ids.get(ws)
        if connection_id is None or not self.is_open(ws):
            raise TransportError("connection is not open")
        task = asyncio.create_task(self._await_pong(ws, connection_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _await_pong(self, ws: ServerConnection, connection_id: str) -> None:
        try:
            pong_waiter = await ws.ping()
            await pong_waiter
        except ConnectionClosed:
            return  # the heartbeat will evict it
        self.relay.acknowledge(connection_id)

    async def _drain(self, ws: ServerConnection, outbox: asyncio.Queue) -> None:
        while True:
            frame = await outbox.get()
            try:
                await ws.send(frame)
            except ConnectionClosed:
                return

    # ---- Connection lifecycle ----

    async def handler(self, ws: ServerConnection) -> None:
        """Handles the entire lifecycle of a client connection."""
        outbox: asyncio.Queue = asyncio.Queue()
        self._outboxes[ws] = outbox
        writer = asyncio.create_task(self._drain(ws, outbox))
        connection = self.relay.connect(ws)
        self._ids[ws] = connection.connection_id
        try:
            async for raw_message in ws:
                self.relay.receive(connection.connection_id, raw_message)
        except ConnectionClosed:
            # expected when a client goes away without a close frame
            pass
        except Exception:
            logger.exception("Unexpected error for %s", ws.remote_address)
        finally:
            self.relay.disconnect(connection.connection_id)
            self._ids.pop(ws, None)
            self._outboxes.pop(ws, None)
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass


async def run_server(settings: Settings) -> None:
    server = RelayServer(settings.heartbeat_interval)
    server.heartbeat.start()
    logger.info("Starting Chat Server on ws://%s:%d", settings.host, settings.port)
    try:
        # liveness is owned by the heartbeat monitor, not websockets' keepalive
        async with serve(
            server.handler,
            settings.host,
            settings.port,
            ping_interval=None,
            max_queue=settings.max_queue,
        ):
            await asyncio.Future()  # run forever
    finally:
        await server.heartbeat.stop()


def main():
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        logger.info("Server stopped gracefully.")

if __name__ == "__main__":
    main()
