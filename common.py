"""
Common helpers for message formats and constants.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_HEARTBEAT_INTERVAL = 15.0
DEFAULT_MAX_QUEUE = 64

ANONYMOUS = "Anonymous"

# ---- System message texts ----
CONNECTED = "Connected"
INVALID_MESSAGE = "invalid/unknown message"
ROOM_REQUIRED = "roomId is required"
NOT_IN_ROOM = "not in any room"
JOIN_FIRST = "join a room first"
MESSAGE_REQUIRED = "message is required"


class TransportError(RuntimeError):
    """A probe or terminate call could not reach the peer."""


# ---- Configuration ----

@dataclass
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    max_queue: int = DEFAULT_MAX_QUEUE
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        settings = cls(
            host=env.get("CHAT_HOST", DEFAULT_HOST),
            port=int(env.get("CHAT_PORT", DEFAULT_PORT)),
            heartbeat_interval=float(env.get("CHAT_HEARTBEAT_INTERVAL", DEFAULT_HEARTBEAT_INTERVAL)),
            max_queue=int(env.get("CHAT_MAX_QUEUE", DEFAULT_MAX_QUEUE)),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_file=env.get("LOG_FILE") or None,
        )
        if settings.heartbeat_interval <= 0:
            raise ValueError("CHAT_HEARTBEAT_INTERVAL must be positive")
        return settings


# ---- Wire message helpers (JSON over WebSocket) ----

def encode(obj: dict) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)

def decode(s: Union[str, bytes]) -> Any:
    return json.loads(s)


# ---- Client requests ----

@dataclass(frozen=True)
class JoinRequest:
    room_id: str
    name: Optional[str] = None

@dataclass(frozen=True)
class LeaveRequest:
    pass

@dataclass(frozen=True)
class ChatRequest:
    message: str

@dataclass(frozen=True)
class WhoRequest:
    pass

@dataclass(frozen=True)
class RoomsRequest:
    pass

@dataclass(frozen=True)
class PingRequest:
    pass

@dataclass(frozen=True)
class DecodeFailure:
    reason: str


Request = Union[JoinRequest, LeaveRequest, ChatRequest, WhoRequest, RoomsRequest, PingRequest]

_BARE_REQUESTS = {
    "leave": LeaveRequest,
    "who": WhoRequest,
    "rooms": RoomsRequest,
    "ping": PingRequest,
}


def _payload(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    payload = data.get("payload")
    return payload if isinstance(payload, dict) else None


def decode_request(raw: Any) -> Union[Request, DecodeFailure]:
    """Turn one inbound frame into a typed request.

    Every input maps to either a request or a DecodeFailure; nothing raises.
    Trimming and emptiness checks are left to the dispatcher so that it can
    answer with a precise reason.
    """
    try:
        data = decode(raw)
    except (ValueError, TypeError, RecursionError):
        return DecodeFailure("malformed JSON")

    if not isinstance(data, dict):
        return DecodeFailure("frame is not an object")

    kind = data.get("type")
    if not isinstance(kind, str):
        return DecodeFailure("missing type")

    if kind in _BARE_REQUESTS:
        return _BARE_REQUESTS[kind]()

    if kind == "join":
        payload = _payload(data)
        if payload is None or not isinstance(payload.get("roomId"), str):
            return DecodeFailure("join requires payload.roomId")
        name = payload.get("name")
        if name is not None and not isinstance(name, str):
            return DecodeFailure("join payload.name must be a string")
        return JoinRequest(room_id=payload["roomId"], name=name)

    if kind == "chat":
        payload = _payload(data)
        if payload is None or not isinstance(payload.get("message"), str):
            return DecodeFailure("chat requires payload.message")
        return ChatRequest(message=payload["message"])

    return DecodeFailure(f"unknown type {kind!r}")


# ---- Server messages ----
# {"type":"system","payload":{"message":"..."}}
# {"type":"joined","payload":{"roomId":"lobby","userId":"...","name":"alice"}}
# {"type":"left","payload":{"roomId":"lobby","userId":"..."}}
# {"type":"chat","payload":{"roomId":"lobby","userId":"...","name":"alice","message":"hi","time":1700000000000}}
# {"type":"who","payload":{"roomId":"lobby","members":[{"userId":"...","name":"alice"}]}}
# {"type":"rooms","payload":{"rooms":[{"roomId":"lobby","count":1}]}}
# {"type":"pong"}

def system_message(message: str) -> dict:
    return {"type": "system", "payload": {"message": message}}

def joined_message(room_id: str, user_id: str, name: str) -> dict:
    return {"type": "joined", "payload": {"roomId": room_id, "userId": user_id, "name": name}}

def left_message(room_id: str, user_id: str) -> dict:
    return {"type": "left", "payload": {"roomId": room_id, "userId": user_id}}

def chat_message(room_id: str, user_id: str, name: str, message: str, time_ms: int) -> dict:
    return {
        "type": "chat",
        "payload": {"roomId": room_id, "userId": user_id, "name": name, "message": message, "time": time_ms},
    }

def who_message(room_id: str, members: List[dict]) -> dict:
    return {"type": "who", "payload": {"roomId": room_id, "members": members}}

def rooms_message(rooms: List[dict]) -> dict:
    return {"type": "rooms", "payload": {"rooms": rooms}}

def pong_message() -> dict:
    return {"type": "pong"}
