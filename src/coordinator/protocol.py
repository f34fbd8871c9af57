"""Control protocol spoken between the coordinator and its agents.

Messages are JSON objects, one per line, each carrying a ``type``.

Coordinator -> agent:
  ``configure``  round parameters (role, load, rate, ci_size, wait_conn, ...)
  ``start``      begin the measurement window of a configured round
  ``terminate``  end the session

Agent -> coordinator:
  ``ready``      ``{"ok": bool, "error": str}`` answer to ``configure``
  ``report``     ``{"status": "ok" | "failed", "error": str, "summary": {...}}``
"""

from __future__ import annotations

import json
import socket
import threading

from src.coordinator.errors import ProtocolError

CONFIGURE = "configure"
START = "start"
TERMINATE = "terminate"
READY = "ready"
REPORT = "report"

_MAX_LINE = 1 << 20


def encode(msg: dict) -> bytes:
    if "type" not in msg:
        raise ProtocolError(f"Message without type: {msg}")
    return json.dumps(msg, sort_keys=True).encode() + b"\n"


def decode(line: bytes) -> dict:
    try:
        msg = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Malformed message {line[:80]!r}: {exc}") from exc
    if not isinstance(msg, dict) or "type" not in msg:
        raise ProtocolError(f"Message without type: {line[:80]!r}")
    return msg


def configure_msg(
    *,
    round_no: int,
    role: str,
    load_pattern: str,
    load: int,
    rate: int,
    ci_size: int,
    wait_conn: bool,
) -> dict:
    return {
        "type": CONFIGURE,
        "round": round_no,
        "role": role,
        "load_pattern": load_pattern,
        "load": load,
        "rate": rate,
        "ci_size": ci_size,
        "wait_conn": wait_conn,
    }


class ControlConnection:
    """A connected control session to one agent.

    Owned exclusively by the coordinator; ``send`` and ``recv`` are never
    called concurrently for the same connection.
    """

    def __init__(self, sock: socket.socket, peer: str = "") -> None:
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._lock = threading.Lock()
        self.peer = peer
        self.closed = False

    def send(self, msg: dict) -> None:
        if self.closed:
            raise ProtocolError(f"Connection to {self.peer} is closed")
        try:
            self._sock.sendall(encode(msg))
        except OSError as exc:
            raise ProtocolError(f"Sending {msg['type']} to {self.peer} failed: {exc}") from exc

    def recv(self, expect: str | None = None) -> dict:
        """Read the next message; optionally insist on its type."""
        if self.closed:
            raise ProtocolError(f"Connection to {self.peer} is closed")
        try:
            line = self._reader.readline(_MAX_LINE)
        except OSError as exc:
            raise ProtocolError(f"Reading from {self.peer} failed: {exc}") from exc
        if not line:
            raise ProtocolError(f"{self.peer} disconnected")
        msg = decode(line)
        if expect is not None and msg["type"] != expect:
            raise ProtocolError(f"Expected {expect} from {self.peer}, got {msg['type']}")
        return msg

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
        try:
            self._reader.close()
        finally:
            self._sock.close()
