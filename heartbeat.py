"""
Periodic liveness sweep.

Each cycle clears ``is_alive`` and probes every connection; a connection that
is still not alive on the next cycle never acknowledged the previous probe and
gets terminated.
"""

import asyncio
from typing import List, Optional

from common import DEFAULT_HEARTBEAT_INTERVAL, TransportError
from dispatcher import Relay
from logging_config import get_logger

logger = get_logger(__name__)


class HeartbeatMonitor:
    def __init__(self, relay: Relay, interval: float = DEFAULT_HEARTBEAT_INTERVAL):
        self.relay = relay
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def sweep(self) -> List[str]:
        """Run one cycle and return the ids that were evicted."""
        registry = self.relay.registry
        transport = self.relay.transport
        evicted: List[str] = []
        for connection in registry.all_matching(lambda c: True):
            if connection.connection_id not in registry:
                continue
            if not connection.is_alive:
                try:
                    transport.terminate(connection.handle)
                except TransportError as e:
                    logger.debug("Terminate failed for %s: %s", connection.connection_id, e)
                self.relay.disconnect(connection.connection_id)
                evicted.append(connection.connection_id)
                logger.info("Evicted unresponsive connection %s", connection.connection_id)
                continue
            connection.is_alive = False
            try:
                transport.probe(connection.handle)
            except TransportError as e:
                logger.debug("Probe failed for %s: %s", connection.connection_id, e)
        return evicted

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Heartbeat sweep failed")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
