"""
Best-effort delivery of server messages to one connection or a whole room.
"""

from typing import Any, Optional, Protocol

from common import encode
from logging_config import get_logger
from registry import Connection, ConnectionRegistry

logger = get_logger(__name__)


class Transport(Protocol):
    """What the relay needs from the connection layer.

    All calls are synchronous and must not block. ``send`` reports whether
    the frame was accepted and never raises; ``probe`` and ``terminate`` may
    raise ``TransportError``.
    """

    def is_open(self, handle: Any) -> bool: ...

    def send(self, handle: Any, frame: str) -> bool: ...

    def probe(self, handle: Any) -> None: ...

    def terminate(self, handle: Any) -> None: ...


def _deliver(transport: Transport, connection: Connection, frame: str) -> bool:
    if not transport.is_open(connection.handle):
        logger.debug("Skipping send to closed connection %s", connection.connection_id)
        return False
    return transport.send(connection.handle, frame)


def send_to(transport: Transport, connection: Connection, message: dict) -> bool:
    return _deliver(transport, connection, encode(message))


def broadcast(
    registry: ConnectionRegistry,
    transport: Transport,
    room_id: str,
    message: dict,
    exclude: Optional[str] = None,
) -> int:
    """Send ``message`` to every member of ``room_id`` except ``exclude``.

    Returns how many recipients accepted the frame. Closed sessions are
    skipped silently.
    """
    targets = registry.all_matching(lambda c: c.room_id == room_id and c.connection_id != exclude)
    if not targets:
        return 0
    frame = encode(message)
    return sum(1 for c in targets if _deliver(transport, c, frame))
