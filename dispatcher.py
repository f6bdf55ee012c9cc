"""
Connection lifecycle and per-request transitions.

Every method here runs to completion without awaiting, so on a single event
loop each transition is atomic with respect to every other event and to the
heartbeat sweep.
"""

import time
import uuid
from typing import Any, Callable, Optional

import common
from broadcast import Transport, broadcast, send_to
from common import (
    ChatRequest,
    DecodeFailure,
    JoinRequest,
    LeaveRequest,
    PingRequest,
    Request,
    RoomsRequest,
    WhoRequest,
    decode_request,
)
from logging_config import get_logger
from registry import Connection, ConnectionRegistry
from rooms import members_of, room_summary

logger = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_connection_id() -> str:
    return str(uuid.uuid4())


class Relay:
    def __init__(
        self,
        transport: Transport,
        registry: Optional[ConnectionRegistry] = None,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = new_connection_id,
    ):
        self.transport = transport
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.clock = clock
        self.id_factory = id_factory

    # ---- Lifecycle ----

    def connect(self, handle: Any) -> Connection:
        connection = Connection(connection_id=self.id_factory(), handle=handle)
        self.registry.add(connection)
        logger.info("Connection %s opened (%d live)", connection.connection_id, len(self.registry))
        self._reply(connection, common.system_message(common.CONNECTED))
        return connection

    def disconnect(self, connection_id: str) -> Optional[Connection]:
        """Remove a connection and tell its room. Safe to call more than once."""
        connection = self.registry.remove(connection_id)
        if connection is None:
            return None
        logger.info("Connection %s closed (%d live)", connection_id, len(self.registry))
        if connection.room_id is not None:
            broadcast(
                self.registry,
                self.transport,
                connection.room_id,
                common.system_message(f"{connection.display_name} disconnected"),
            )
        return connection

    def acknowledge(self, connection_id: str) -> None:
        connection = self.registry.find(connection_id)
        if connection is not None:
            connection.is_alive = True

    def receive(self, connection_id: str, raw: Any) -> None:
        connection = self.registry.find(connection_id)
        if connection is None:
            logger.debug("Dropping frame for unregistered connection %s", connection_id)
            return
        request = decode_request(raw)
        if isinstance(request, DecodeFailure):
            logger.debug("Bad frame from %s: %s", connection_id, request.reason)
            self._reply(connection, common.system_message(common.INVALID_MESSAGE))
            return
        self.dispatch(connection, request)

    # ---- Transitions ----

    def dispatch(self, connection: Connection, request: Request) -> None:
        if isinstance(request, JoinRequest):
            self._join(connection, request)
        elif isinstance(request, LeaveRequest):
            self._leave(connection)
        elif isinstance(request, ChatRequest):
            self._chat(connection, request)
        elif isinstance(request, WhoRequest):
            self._who(connection)
        elif isinstance(request, RoomsRequest):
            self._reply(connection, common.rooms_message(room_summary(self.registry)))
        elif isinstance(request, PingRequest):
            self._reply(connection, common.pong_message())
        else:
            self._reply(connection, common.system_message(common.INVALID_MESSAGE))

    def _join(self, connection: Connection, request: JoinRequest) -> None:
        room_id = request.room_id.strip()
        if not room_id:
            self._reply(connection, common.system_message(common.ROOM_REQUIRED))
            return

        name = (request.name or "").strip()
        if name:
            connection.display_name = name

        previous = connection.room_id
        if previous is not None and previous != room_id:
            # switching rooms: the old room hears about the departure first
            connection.room_id = None
            self._announce(previous, f"{connection.display_name} left room {previous}")
            logger.info("%s left room %s", connection.connection_id, previous)

        connection.room_id = room_id
        self._reply(
            connection,
            common.joined_message(room_id, connection.connection_id, connection.display_name),
        )
        if previous != room_id:
            self._announce(
                room_id,
                f"{connection.display_name} joined room {room_id}",
                exclude=connection.connection_id,
            )
            logger.info("%s joined room %s as %s", connection.connection_id, room_id, connection.display_name)

    def _leave(self, connection: Connection) -> None:
        old_room = connection.room_id
        if old_room is None:
            self._reply(connection, common.system_message(common.NOT_IN_ROOM))
            return
        connection.room_id = None
        self._reply(connection, common.left_message(old_room, connection.connection_id))
        self._announce(old_room, f"{connection.display_name} left room {old_room}")
        logger.info("%s left room %s", connection.connection_id, old_room)

    def _chat(self, connection: Connection, request: ChatRequest) -> None:
        if connection.room_id is None:
            self._reply(connection, common.system_message(common.JOIN_FIRST))
            return
        text = request.message.strip()
        if not text:
            self._reply(connection, common.system_message(common.MESSAGE_REQUIRED))
            return
        # the sender gets its own message back
        broadcast(
            self.registry,
            self.transport,
            connection.room_id,
            common.chat_message(
                connection.room_id,
                connection.connection_id,
                connection.display_name,
                text,
                self.clock(),
            ),
        )

    def _who(self, connection: Connection) -> None:
        if connection.room_id is None:
            self._reply(connection, common.system_message(common.NOT_IN_ROOM))
            return
        members = members_of(self.registry, connection.room_id)
        self._reply(connection, common.who_message(connection.room_id, members))

    # ---- Output ----

    def _reply(self, connection: Connection, message: dict) -> None:
        send_to(self.transport, connection, message)

    def _announce(self, room_id: str, text: str, exclude: Optional[str] = None) -> None:
        broadcast(self.registry, self.transport, room_id, common.system_message(text), exclude=exclude)
