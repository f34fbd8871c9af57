"""Control connections from the coordinator to every agent."""

from __future__ import annotations

import socket
import time
from typing import Callable

import structlog

from src.common.constants import CONNECT_BACKOFF_BASE, CONNECT_RETRIES
from src.coordinator.agent import Agent, Fleet
from src.coordinator.errors import AgentConnectionError
from src.coordinator.protocol import ControlConnection

Dialer = Callable[[tuple[str, int]], socket.socket]

_log = structlog.get_logger("connection")


def connect_agent(
    agent: Agent,
    port: int,
    *,
    dial: Dialer = socket.create_connection,
    retries: int = CONNECT_RETRIES,
    backoff: float = CONNECT_BACKOFF_BASE,
    sleep: Callable[[float], None] = time.sleep,
) -> ControlConnection:
    """Dial *agent* and attach the resulting control connection to it.

    Name resolution failures are fatal at once. A refused connection means
    the agent's listener may not be up yet and is retried with exponential
    backoff before giving up.
    """
    address = (agent.name, port)
    for attempt in range(1, retries + 2):
        try:
            sock = dial(address)
        except socket.gaierror as exc:
            raise AgentConnectionError(agent.name, f"cannot resolve {agent.name}: {exc}") from exc
        except ConnectionRefusedError as exc:
            if attempt > retries:
                raise AgentConnectionError(agent.name, exc) from exc
            wait = backoff ** attempt
            _log.warning(
                "agent_connect_refused",
                agent=agent.name, attempt=attempt, retry_in=wait,
            )
            sleep(wait)
            continue
        except OSError as exc:
            raise AgentConnectionError(agent.name, exc) from exc

        agent.conn = ControlConnection(sock, peer=agent.name)
        agent.status = "connected"
        return agent.conn
    raise AgentConnectionError(agent.name, "no connection attempt made")  # unreachable


def connect_fleet(fleet: Fleet, **kwargs) -> None:
    """Connect every agent of *fleet*, one at a time, in role-group order.

    All or nothing: when one agent cannot be reached, the connections made
    so far are closed before the error propagates.
    """
    try:
        for agent in fleet.agents():
            connect_agent(agent, fleet.agent_port, **kwargs)
            _log.info("agent_connected", agent=agent.name, role=agent.role.value)
    except AgentConnectionError:
        fleet.close()
        raise
