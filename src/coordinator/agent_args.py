"""Command lines handed to the remote agent binary.

One argument string is computed per role, never per agent, and it depends
on nothing but the configuration, so ``--print-agent-args`` is
reproducible byte for byte.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field

from src.common.constants import DEFAULT_APP_PROTO, DEFAULT_COM_PROTO, DEFAULT_IDIST
from src.coordinator.agent import Fleet, Role
from src.coordinator.errors import ConfigurationError


class AgentMode(enum.IntEnum):
    """Value of the agent's ``-a`` flag."""

    THROUGHPUT = 0
    LATENCY = 1
    SYMMETRIC_NIC_TS = 2
    SYMMETRIC_SW_TS = 3


@dataclass(frozen=True)
class TargetConfig:
    """How agents reach and load the service under test."""

    target: str
    th_threads: int = 1
    lt_threads: int = 1
    th_conn: int = 1
    lt_conn: int = 1
    affinity_base: int = 0
    req_per_conn: int = 1
    idist: str = DEFAULT_IDIST
    com_proto: str = DEFAULT_COM_PROTO
    app_proto: str = DEFAULT_APP_PROTO
    if_names: tuple[str, ...] = field(default_factory=tuple)
    bind_to_nic: bool = False


def validate_nic_timestamping(target: TargetConfig) -> None:
    if not target.if_names:
        raise ConfigurationError("No interfaces given for NIC timestamping")
    if len(target.if_names) > 1 and target.bind_to_nic:
        raise ConfigurationError(
            "Can't bind to multiple NICs (remove --bind-to-nic or pass one interface)"
        )


def _common(target: TargetConfig, threads: int, conns: int) -> list[str]:
    return [
        "-s", target.target,
        "-t", str(threads),
        "-z", str(target.affinity_base),
        "-c", str(conns),
    ]


def _proto(target: TargetConfig) -> list[str]:
    return ["-i", target.idist, "-p", target.com_proto, "-r", target.app_proto]


def build_agent_args(role: Role, target: TargetConfig, *, nic_ts: bool = False) -> str:
    """Return the argument string for every agent of *role*."""
    if role is Role.THROUGHPUT:
        args = [
            *_common(target, target.th_threads, target.th_conn),
            "-o", str(target.req_per_conn),
            *_proto(target),
            "-a", str(int(AgentMode.THROUGHPUT)),
        ]
    elif role is Role.LATENCY:
        # Latency agents always issue a single request per connection
        args = [
            *_common(target, target.lt_threads, target.lt_conn),
            *_proto(target),
            "-a", str(int(AgentMode.LATENCY)),
            "-o", "1",
        ]
    else:
        args = [
            *_common(target, target.th_threads, target.th_conn),
            "-o", str(target.req_per_conn),
            *_proto(target),
        ]
        if nic_ts:
            validate_nic_timestamping(target)
            args += ["-a", str(int(AgentMode.SYMMETRIC_NIC_TS))]
            for iface in target.if_names:
                args += ["-n", iface]
            if target.bind_to_nic:
                args.append("-b")
        else:
            args += ["-a", str(int(AgentMode.SYMMETRIC_SW_TS))]
    return " ".join(args)


def args_by_role(fleet: Fleet, target: TargetConfig, *, nic_ts: bool = False) -> dict[Role, str]:
    """Compute the argument string of each role present in the fleet."""
    return {
        role: build_agent_args(role, target, nic_ts=nic_ts)
        for role in (Role.THROUGHPUT, Role.LATENCY, Role.SYMMETRIC)
        if fleet.group(role)
    }


def agent_args_map(fleet: Fleet, target: TargetConfig, *, nic_ts: bool = False) -> dict[str, str]:
    """Map every agent name to the command line it would be launched with."""
    per_role = args_by_role(fleet, target, nic_ts=nic_ts)
    return {agent.name: per_role[agent.role] for agent in fleet.agents()}


def format_agent_args_map(mapping: dict[str, str]) -> str:
    """Compact JSON with sorted keys."""
    return json.dumps(mapping, sort_keys=True, separators=(",", ":"))
