"""Remote agent bootstrap over ssh."""

from __future__ import annotations

import contextlib
import getpass
import shlex
import subprocess
import tempfile
import time
from pathlib import Path
from typing import IO, Callable

import structlog

from src.common.constants import (
    AGENT_BINARY,
    AGENT_SETTLE_SECS,
    LAUNCH_READY_WAIT,
    SSH_OPTIONS,
)
from src.coordinator.agent import Fleet, Role
from src.coordinator.errors import LaunchError

_log = structlog.get_logger("launcher")

_TAIL_BYTES = 4096


class RemoteSession:
    """An agent process running on a remote host; closing it stops the agent."""

    def __init__(self, host: str, proc: subprocess.Popen, log: IO[bytes] | None = None) -> None:
        self.host = host
        self._proc = proc
        self._log = log

    @property
    def alive(self) -> bool:
        return self._proc.poll() is None

    def close(self, timeout: float = 5.0) -> None:
        try:
            if self._proc.poll() is not None:
                return
            self._proc.terminate()
            try:
                self._proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                self._proc.wait()
            _log.info("agent_session_closed", host=self.host)
        finally:
            if self._log is not None:
                self._log.close()

    def __enter__(self) -> RemoteSession:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()


def ssh_command(
    host: str,
    key_path: str,
    args: str,
    *,
    user: str | None = None,
    agent_binary: str = AGENT_BINARY,
) -> list[str]:
    user = user or getpass.getuser()
    binary = agent_binary.format(user=user)
    remote_cmd = f"sudo {shlex.quote(binary)} {args}"
    cmd = ["ssh", *SSH_OPTIONS]
    if key_path:
        cmd += ["-i", key_path]
    return [*cmd, f"{user}@{host}", remote_cmd]


def launch_agent(
    host: str,
    key_path: str,
    args: str,
    *,
    user: str | None = None,
    agent_binary: str = AGENT_BINARY,
    ready_wait: float = LAUNCH_READY_WAIT,
    log_dir: Path | None = None,
) -> RemoteSession:
    """Start the agent binary on *host* and return its session handle.

    The session's stderr goes to ``agent-HOST.log`` under *log_dir*, or to an
    anonymous temporary file, never to a pipe: nobody reads it while the run
    is in progress.
    """
    cmd = ssh_command(host, key_path, args, user=user, agent_binary=agent_binary)
    try:
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            log = open(log_dir / f"agent-{host}.log", "w+b")
        else:
            log = tempfile.TemporaryFile()
    except OSError as exc:
        raise LaunchError(host, f"cannot open agent log: {exc}") from exc
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=log,
        )
    except OSError as exc:
        log.close()
        raise LaunchError(host, exc) from exc

    time.sleep(ready_wait)
    if proc.poll() is not None:
        stderr = _tail(log)
        log.close()
        raise LaunchError(host, f"ssh exited with code {proc.returncode}: {stderr or 'no output'}")

    _log.info("agent_launched", host=host)
    return RemoteSession(host, proc, log)


def _tail(log: IO[bytes], limit: int = _TAIL_BYTES) -> str:
    log.seek(0, 2)
    log.seek(max(0, log.tell() - limit))
    return log.read().decode(errors="replace").strip()


Launcher = Callable[[str, str, str], RemoteSession]


def launch_fleet(
    fleet: Fleet,
    args: dict[Role, str],
    key_path: str,
    stack: contextlib.ExitStack,
    *,
    launch: Launcher = launch_agent,
    settle: float = AGENT_SETTLE_SECS,
    sleep: Callable[[float], None] = time.sleep,
) -> list[RemoteSession]:
    """Launch every agent of *fleet*, registering each session on *stack*.

    Sessions already started stay on the stack when a later launch fails,
    so the caller's ``with`` block tears them down. After the last launch
    the agents get *settle* seconds to open their control listeners.
    """
    sessions = []
    for agent in fleet.agents():
        session = launch(agent.name, key_path, args[agent.role])
        stack.enter_context(session)
        sessions.append(session)
    if sessions:
        sleep(settle)
    return sessions
