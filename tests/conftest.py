"""Fake agents speaking the control protocol over socket pairs."""

from __future__ import annotations

import functools
import json
import socket
import threading

import pytest

from src.common.logging import configure_structlog
from src.coordinator import cli


class FakeAgent:
    """Scripted agent served on one end of a ``socket.socketpair``."""

    def __init__(
        self,
        name: str,
        *,
        ready: bool = True,
        status: str = "ok",
        summary: dict | None = None,
        drop_on: str | None = None,
        fail_round: int | None = None,
    ) -> None:
        self.name = name
        self.ready = ready
        self.status = status
        self.summary = summary if summary is not None else {"throughput": 1000.0}
        self.drop_on = drop_on
        self.fail_round = fail_round
        self.received: list[dict] = []
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None

    def attach(self) -> socket.socket:
        ours, theirs = socket.socketpair()
        self._sock = theirs
        self._thread = threading.Thread(target=self._serve, name=f"fake-{self.name}", daemon=True)
        self._thread.start()
        return ours

    def _send(self, msg: dict) -> None:
        self._sock.sendall(json.dumps(msg).encode() + b"\n")

    def _serve(self) -> None:
        reader = self._sock.makefile("rb")
        try:
            for line in reader:
                msg = json.loads(line)
                self.received.append(msg)
                kind = msg["type"]
                if kind == self.drop_on:
                    break
                if kind == "configure":
                    self._send({"type": "ready", "ok": self.ready,
                                "error": "" if self.ready else "target unreachable"})
                elif kind == "start":
                    status = "failed" if msg.get("round") == self.fail_round else self.status
                    self._send({"type": "report", "status": status,
                                "error": "" if status == "ok" else "sampling failed",
                                "summary": self.summary})
                elif kind == "terminate":
                    break
        except OSError:
            pass
        finally:
            reader.close()
            self._sock.close()

    def join(self, timeout: float = 5.0) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def types(self) -> list[str]:
        return [m["type"] for m in self.received]

    def of_type(self, kind: str) -> list[dict]:
        return [m for m in self.received if m["type"] == kind]


class FakeNetwork:
    """Dialer that hands out fake agents and records every attempt."""

    def __init__(self, agents, *, refuse=(), unresolvable=()) -> None:
        self.agents = {a.name: a for a in agents}
        self.refuse = set(refuse)
        self.unresolvable = set(unresolvable)
        self.dialed: list[tuple[str, int]] = []
        self.opened: dict[str, socket.socket] = {}

    def __call__(self, address: tuple[str, int]) -> socket.socket:
        self.dialed.append(address)
        host, _ = address
        if host in self.unresolvable:
            raise socket.gaierror(-2, "Name or service not known")
        if host in self.refuse:
            raise ConnectionRefusedError(111, "Connection refused")
        sock = self.agents[host].attach()
        self.opened[host] = sock
        return sock

    @property
    def dialed_hosts(self) -> list[str]:
        return [host for host, _ in self.dialed]

    def join_all(self) -> None:
        for agent in self.agents.values():
            agent.join()


@pytest.fixture
def fake_agent():
    return FakeAgent


@pytest.fixture
def fake_network():
    return FakeNetwork


@pytest.fixture
def no_sleep():
    calls: list[float] = []
    return calls.append, calls

@pytest.fixture(autouse=True)
def uncached_logging(monkeypatch):
    """Console loggers must follow pytest's swapped stdout between tests."""
    monkeypatch.setattr(cli, "configure_structlog", functools.partial(configure_structlog, cache=False))
