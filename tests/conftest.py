import itertools
import json
from collections import defaultdict

import pytest

from common import TransportError
from dispatcher import Relay

FIXED_TIME_MS = 1_700_000_000_000


class FakeTransport:
    """Records frames per handle instead of writing to a socket."""

    def __init__(self):
        self.sent = defaultdict(list)
        self.closed = set()
        self.probed = []
        self.terminated = []
        self.failing_probes = set()

    def is_open(self, handle):
        return handle not in self.closed

    def send(self, handle, frame):
        self.sent[handle].append(json.loads(frame))
        return True

    def probe(self, handle):
        if handle in self.failing_probes:
            raise TransportError("probe failed")
        self.probed.append(handle)

    def terminate(self, handle):
        self.terminated.append(handle)
        self.closed.add(handle)

    def messages(self, handle, type=None):
        return [m for m in self.sent[handle] if type is None or m["type"] == type]

    def system_texts(self, handle):
        return [m["payload"]["message"] for m in self.messages(handle, "system")]

    def last(self, handle):
        return self.sent[handle][-1]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def relay(transport):
    counter = itertools.count(1)
    return Relay(
        transport,
        clock=lambda: FIXED_TIME_MS,
        id_factory=lambda: f"conn-{next(counter)}",
    )


def frame(type, **payload):
    msg = {"type": type}
    if payload:
        msg["payload"] = payload
    return json.dumps(msg)


def join(relay, connection, room_id, name=None):
    payload = {"roomId": room_id}
    if name is not None:
        payload["name"] = name
    relay.receive(connection.connection_id, frame("join", **payload))
