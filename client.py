#!/usr/bin/env python3
import asyncio
import os
import sys
import time
from typing import Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from common import DEFAULT_PORT, decode, encode
from logging_config import get_logger, setup_logging

logger = get_logger(__name__)

HELP = """
Commands:
  /join <room> [name]
  /leave
  /who                        # members of your current room
  /rooms                      # all occupied rooms
  /ping
  /quit
  /help

Anything not starting with / is sent as a chat message to your room.
"""


def build_request(line: str) -> Optional[dict]:
    """Translate one input line into a client request, or None if it isn't one."""
    line = line.strip()
    if not line:
        return None
    if not line.startswith("/"):
        return {"type": "chat", "payload": {"message": line}}

    parts = line.split(" ", 2)
    cmd = parts[0].lower()
    if cmd == "/join" and len(parts) >= 2 and parts[1].strip():
        payload = {"roomId": parts[1].strip()}
        if len(parts) == 3 and parts[2].strip():
            payload["name"] = parts[2].strip()
        return {"type": "join", "payload": payload}
    if cmd in ("/leave", "/who", "/rooms", "/ping"):
        return {"type": cmd[1:]}
    return None


def format_message(data: dict) -> str:
    t = data.get("type")
    payload = data.get("payload") or {}
    if t == "chat":
        ts = time.strftime("%H:%M:%S", time.localtime(payload.get("time", 0) / 1000))
        return f"[{ts}] #{payload.get('roomId')} <{payload.get('name')}>: {payload.get('message')}"
    if t == "system":
        return f"<< {payload.get('message', '')} >>"
    if t == "joined":
        return f"Joined #{payload.get('roomId')} as {payload.get('name')}"
    if t == "left":
        return f"Left #{payload.get('roomId')}"
    if t == "who":
        names = ", ".join(m.get("name", "?") for m in payload.get("members", []))
        return f"In #{payload.get('roomId')}: {names or '(nobody)'}"
    if t == "rooms":
        rooms = payload.get("rooms", [])
        if not rooms:
            return "No active rooms"
        return "Rooms: " + ", ".join(f"#{r.get('roomId')} ({r.get('count')})" for r in rooms)
    if t == "pong":
        return "<< pong >>"
    return "<< unknown message >>"


class Client:
    def __init__(self, uri: str):
        self.uri = uri

    async def input_loop(self, ws: ClientConnection):
        print(HELP)
        while True:
            try:
                line = await asyncio.get_running_loop().run_in_executor(None, sys.stdin.readline)
            except (EOFError, KeyboardInterrupt):
                break
            if not line:
                break
            command = line.strip().lower()
            if command == "/quit":
                break
            if command == "/help":
                print(HELP)
                continue
            request = build_request(line)
            if request is None:
                if line.strip():
                    print("Unknown/invalid command. Type /help")
                continue
            await ws.send(encode(request))
        await ws.close()

    async def recv_loop(self, ws: ClientConnection):
        async for raw in ws:
            try:
                data = decode(raw)
            except ValueError:
                print("<< invalid JSON >>")
                continue
            if isinstance(data, dict):
                print(format_message(data))

    async def run(self):
        print(f"Connecting to {self.uri} ...")
        try:
            async with connect(self.uri, max_queue=64) as ws:
                await asyncio.gather(self.input_loop(ws), self.recv_loop(ws))
        except ConnectionRefusedError:
            print("\nConnection failed. Is the server running?")
        except ConnectionClosed as e:
            logger.info("Connection closed: %s", e)
        except OSError as e:
            print(f"\nAn error occurred: {e}")


def main():
    setup_logging(os.environ.get("LOG_LEVEL", "WARNING"))
    host = os.environ.get("CHAT_HOST", "localhost")
    port = int(os.environ.get("CHAT_PORT", DEFAULT_PORT))
    uri = f"ws://{host}:{port}"
    try:
        asyncio.run(Client(uri).run())
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    main()
