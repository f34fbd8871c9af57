"""Command-line and environment configuration of the coordinator."""

from __future__ import annotations

import argparse
import os
import textwrap
from dataclasses import dataclass, field
from pathlib import Path

from src.common.constants import (
    AGENT_BINARY,
    AGENT_PORT,
    DEFAULT_APP_PROTO,
    DEFAULT_CI_SIZE,
    DEFAULT_COM_PROTO,
    DEFAULT_IDIST,
    DEFAULT_LOAD_PATTERN,
    DEFAULT_LT_RATE,
    PROJECT_ROOT,
    RESULTS_DIR,
)
from src.coordinator.agent_args import TargetConfig, validate_nic_timestamping
from src.coordinator.errors import ConfigurationError
from src.coordinator.load_pattern import LoadPattern


@dataclass(frozen=True)
class ExperimentConfig:
    th_agents: tuple[str, ...] = ()
    lt_agents: tuple[str, ...] = ()
    sym_agents: tuple[str, ...] = ()
    agent_port: int = AGENT_PORT
    load_pattern: LoadPattern = field(default_factory=lambda: LoadPattern.parse(DEFAULT_LOAD_PATTERN))
    lt_rate: int = DEFAULT_LT_RATE
    ci_size: int = DEFAULT_CI_SIZE
    nic_ts: bool = False
    private_key: str = ""


@dataclass(frozen=True)
class GeneralConfig:
    run_agents: bool = False
    print_agent_args: bool = False
    agent_user: str = ""
    agent_binary: str = AGENT_BINARY
    results_dir: Path = RESULTS_DIR
    use_redis: bool = True


@dataclass(frozen=True)
class CoordinatorConfig:
    target: TargetConfig
    experiment: ExperimentConfig
    general: GeneralConfig


def load_dotenv(env_path: Path = PROJECT_ROOT / ".env") -> None:
    """Load variables from a .env file into os.environ (no overwrite)."""
    if not env_path.is_file():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            os.environ.setdefault(key.strip(), value.strip().strip("\"'"))


def _names(value: str) -> tuple[str, ...]:
    return tuple(n.strip() for n in value.split(",") if n.strip())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loadfleet-coordinator",
        description="Launch, connect and drive a fleet of load-generating agents.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              loadfleet-coordinator --target 10.0.0.1:8000 --th-agents h1,h2 --lt-agents h3
              loadfleet-coordinator --target 10.0.0.1:8000 --sym-agents h1 --nic-ts --if-names eth0
              loadfleet-coordinator ... --print-agent-args
        """),
    )
    fleet = parser.add_argument_group("fleet")
    fleet.add_argument("--th-agents", type=_names, default=(), help="Comma-separated throughput agents")
    fleet.add_argument("--lt-agents", type=_names, default=(), help="Comma-separated latency agents")
    fleet.add_argument("--sym-agents", type=_names, default=(), help="Comma-separated symmetric agents")
    fleet.add_argument("--agent-port", type=int, default=AGENT_PORT, help=f"Agent control port. Default: {AGENT_PORT}")

    target = parser.add_argument_group("target")
    target.add_argument("--target", required=True, help="Address of the service under test (host:port)")
    target.add_argument("--th-threads", type=int, default=1)
    target.add_argument("--lt-threads", type=int, default=1)
    target.add_argument("--th-conn", type=int, default=1, help="Connections per throughput agent")
    target.add_argument("--lt-conn", type=int, default=1, help="Connections per latency agent")
    target.add_argument("--affinity-base", type=int, default=0, help="First CPU the agent threads pin to")
    target.add_argument("--req-per-conn", type=int, default=1)
    target.add_argument("--idist", default=DEFAULT_IDIST, help=f"Inter-arrival distribution. Default: {DEFAULT_IDIST}")
    target.add_argument("--com-proto", default=DEFAULT_COM_PROTO, help=f"Communication protocol. Default: {DEFAULT_COM_PROTO}")
    target.add_argument("--app-proto", default=DEFAULT_APP_PROTO, help=f"Application protocol. Default: {DEFAULT_APP_PROTO}")
    target.add_argument("--if-names", type=_names, default=(), help="Comma-separated NICs for NIC timestamping")
    target.add_argument("--bind-to-nic", action="store_true", help="Bind symmetric agents to the single given NIC")

    exp = parser.add_argument_group("experiment")
    exp.add_argument("--load-pattern", default=DEFAULT_LOAD_PATTERN, help="fixed:LOAD or step:START:STEP:END")
    exp.add_argument("--lt-rate", type=int, default=DEFAULT_LT_RATE, help="Rate of latency / symmetric agents")
    exp.add_argument("--ci-size", type=int, default=DEFAULT_CI_SIZE, help="Confidence-interval size for latency sampling")
    exp.add_argument("--nic-ts", action="store_true", help="Use NIC timestamping on symmetric agents")

    general = parser.add_argument_group("general")
    general.add_argument("--private-key", default=None, help="ssh key for launching agents (env LOADFLEET_PRIVATE_KEY)")
    general.add_argument("--run-agents", action="store_true", help="Launch the agents over ssh before connecting")
    general.add_argument("--print-agent-args", action="store_true", help="Print agent arguments as JSON and exit")
    general.add_argument("--results-dir", type=Path, default=RESULTS_DIR)
    general.add_argument("--no-redis", action="store_true", help="Do not store results in Redis")
    return parser


def config_from_args(args: argparse.Namespace) -> CoordinatorConfig:
    """Build and validate the configuration; nothing is launched yet."""
    tc = TargetConfig(
        target=args.target,
        th_threads=args.th_threads,
        lt_threads=args.lt_threads,
        th_conn=args.th_conn,
        lt_conn=args.lt_conn,
        affinity_base=args.affinity_base,
        req_per_conn=args.req_per_conn,
        idist=args.idist,
        com_proto=args.com_proto,
        app_proto=args.app_proto,
        if_names=tuple(args.if_names),
        bind_to_nic=args.bind_to_nic,
    )
    ec = ExperimentConfig(
        th_agents=tuple(args.th_agents),
        lt_agents=tuple(args.lt_agents),
        sym_agents=tuple(args.sym_agents),
        agent_port=args.agent_port,
        load_pattern=LoadPattern.parse(args.load_pattern),
        lt_rate=args.lt_rate,
        ci_size=args.ci_size,
        nic_ts=args.nic_ts,
        private_key=args.private_key or os.environ.get("LOADFLEET_PRIVATE_KEY", ""),
    )
    gc = GeneralConfig(
        run_agents=args.run_agents,
        print_agent_args=args.print_agent_args,
        agent_user=os.environ.get("LOADFLEET_AGENT_USER", ""),
        agent_binary=os.environ.get("LOADFLEET_AGENT_BINARY", AGENT_BINARY),
        results_dir=args.results_dir,
        use_redis=not args.no_redis,
    )
    cfg = CoordinatorConfig(target=tc, experiment=ec, general=gc)
    validate(cfg)
    return cfg


def validate(cfg: CoordinatorConfig) -> None:
    ec = cfg.experiment
    names = [*ec.th_agents, *ec.lt_agents, *ec.sym_agents]
    if not names:
        raise ConfigurationError("No agents given (use --th-agents, --lt-agents or --sym-agents)")
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"Agents listed more than once: {', '.join(duplicates)}")
    if ec.lt_rate <= 0:
        raise ConfigurationError(f"--lt-rate must be positive, got {ec.lt_rate}")
    if ec.ci_size <= 0:
        raise ConfigurationError(f"--ci-size must be positive, got {ec.ci_size}")
    if not 0 < ec.agent_port < 65536:
        raise ConfigurationError(f"--agent-port out of range: {ec.agent_port}")
    if ec.nic_ts:
        validate_nic_timestamping(cfg.target)
