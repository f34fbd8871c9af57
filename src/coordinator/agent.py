"""Agent data model and the fleet context shared by the coordinator."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

from src.common.constants import AGENT_PORT, CONNECTION_ORIENTED_PROTOS

if TYPE_CHECKING:
    from src.coordinator.protocol import ControlConnection


class Role(enum.Enum):
    THROUGHPUT = "throughput"
    LATENCY = "latency"
    SYMMETRIC = "symmetric"

    @property
    def generates_load(self) -> bool:
        return self in (Role.THROUGHPUT, Role.SYMMETRIC)

    @property
    def reports_latency(self) -> bool:
        return self in (Role.LATENCY, Role.SYMMETRIC)

    @property
    def protocol_role(self) -> Role:
        """Role announced on the control protocol.

        Symmetric agents are driven exactly like latency agents; only their
        command line (and the load they emit) differs.
        """
        return Role.LATENCY if self is Role.SYMMETRIC else self


# Connect / launch order of the role groups
ROLE_ORDER = (Role.THROUGHPUT, Role.LATENCY, Role.SYMMETRIC)


@dataclass(eq=False)
class Agent:
    """A single remote load-generating agent."""

    name: str                    # host name or address of the agent
    role: Role
    conn: ControlConnection | None = field(default=None, repr=False)
    status: str = "pending"      # pending | connected | ready | completed | failed
    report: dict = field(default_factory=dict)

    def __setattr__(self, key: str, value: object) -> None:
        if key == "role" and "role" in self.__dict__:
            raise AttributeError(f"role of agent {self.name} is immutable")
        super().__setattr__(key, value)

    @property
    def connected(self) -> bool:
        return self.conn is not None and not self.conn.closed


def should_wait_for_connections(com_proto: str) -> bool:
    """Connection-oriented transports need their sessions up before measuring."""
    return com_proto.upper() in CONNECTION_ORIENTED_PROTOS


@dataclass
class Fleet:
    """Every agent of one coordinator run, grouped by role.

    Used as a context manager it guarantees that all control connections
    are closed whichever way the run ends::

        with Fleet.from_names(th, lt, sym, agent_port=5001) as fleet:
            connect_fleet(fleet)
            Director(fleet).run(params)
    """

    throughput: list[Agent] = field(default_factory=list)
    latency: list[Agent] = field(default_factory=list)
    symmetric: list[Agent] = field(default_factory=list)
    agent_port: int = AGENT_PORT
    wait_conn: bool = False

    @classmethod
    def from_names(
        cls,
        throughput: list[str] | None = None,
        latency: list[str] | None = None,
        symmetric: list[str] | None = None,
        *,
        agent_port: int = AGENT_PORT,
        wait_conn: bool = False,
    ) -> Fleet:
        return cls(
            throughput=[Agent(n, Role.THROUGHPUT) for n in throughput or []],
            latency=[Agent(n, Role.LATENCY) for n in latency or []],
            symmetric=[Agent(n, Role.SYMMETRIC) for n in symmetric or []],
            agent_port=agent_port,
            wait_conn=wait_conn,
        )

    def group(self, role: Role) -> list[Agent]:
        return {
            Role.THROUGHPUT: self.throughput,
            Role.LATENCY: self.latency,
            Role.SYMMETRIC: self.symmetric,
        }[role]

    def agents(self) -> Iterator[Agent]:
        """All agents in role-group order, registration order within a group."""
        for role in ROLE_ORDER:
            yield from self.group(role)

    def __len__(self) -> int:
        return len(self.throughput) + len(self.latency) + len(self.symmetric)

    def load_generators(self) -> list[Agent]:
        return [a for a in self.agents() if a.role.generates_load]

    def all_connected(self) -> bool:
        return all(a.connected for a in self.agents())

    def close(self) -> None:
        """Close every established control connection (idempotent)."""
        for agent in self.agents():
            if agent.conn is not None:
                agent.conn.close()

    def __enter__(self) -> Fleet:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
