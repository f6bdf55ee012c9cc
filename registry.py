"""
In-memory registry of live connections.

The registry is the only place room membership is recorded: a room is just the
set of connections whose ``room_id`` matches.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from common import ANONYMOUS


class DuplicateConnectionError(ValueError):
    pass


@dataclass
class Connection:
    connection_id: str
    handle: Any
    display_name: str = ANONYMOUS
    room_id: Optional[str] = None
    is_alive: bool = True
    connected_at: float = field(default_factory=time.time)


class ConnectionRegistry:
    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def add(self, connection: Connection) -> None:
        if connection.connection_id in self._connections:
            raise DuplicateConnectionError(f"connection {connection.connection_id} already registered")
        self._connections[connection.connection_id] = connection

    def remove(self, connection_id: str) -> Optional[Connection]:
        """Drop a connection. Unknown ids return None so double-close is harmless."""
        return self._connections.pop(connection_id, None)

    def find(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def all_matching(self, predicate: Callable[[Connection], bool]) -> List[Connection]:
        # list() snapshots the values so callers may mutate the registry while iterating
        return [c for c in list(self._connections.values()) if predicate(c)]
