"""CLI entrypoint for the load-generation coordinator.

Architecture:
  1. Parse and validate the configuration (nothing is touched on failure)
  2. Compute one agent command line per role
     (``--print-agent-args`` prints them and stops here)
  3. Optionally launch every agent over ssh, then let them settle
  4. Connect to every agent, all or nothing
  5. Run the experiment rounds through the director
  6. Persist raw reports (results dir + Redis) and print a summary

Connections and launched agents are released on every exit path.
"""

from __future__ import annotations

import contextlib
import functools
import json
import sys
import time
from datetime import datetime, timezone
from typing import Callable

from redis.exceptions import RedisError

from src.common.console import C, fail, info, ok, warn
from src.common.logging import close_json_file_logger, configure_structlog, get_json_file_logger
from src.common.redis import store_agent_report, store_run
from src.coordinator.agent import Fleet, should_wait_for_connections
from src.coordinator.agent_args import agent_args_map, args_by_role, format_agent_args_map
from src.coordinator.config import CoordinatorConfig, build_parser, config_from_args, load_dotenv
from src.coordinator.connection import Dialer, connect_fleet
from src.coordinator.director import Director, ExperimentParams, ExperimentResult
from src.coordinator.errors import ConfigurationError, CoordinatorError, ExperimentError
from src.coordinator.launcher import Launcher, launch_agent, launch_fleet
from src.coordinator.summary import print_summary


def _banner(cfg: CoordinatorConfig, fleet: Fleet) -> None:
    ec = cfg.experiment
    print()
    print(f"{C.BOLD}{'=' * 62}{C.NC}")
    print(f"{C.BOLD}  loadfleet — Experiment Coordinator{C.NC}")
    print(f"{C.BOLD}{'=' * 62}{C.NC}")
    print()
    info(f"Target:  {cfg.target.target}  ({cfg.target.com_proto} / {cfg.target.app_proto})")
    info(
        f"Agents:  {len(fleet.throughput)} throughput, {len(fleet.latency)} latency, "
        f"{len(fleet.symmetric)} symmetric  (port {fleet.agent_port})"
    )
    info(f"Pattern: {ec.load_pattern}  rate={ec.lt_rate}  ci={ec.ci_size}  wait_conn={fleet.wait_conn}")
    print()


def _persist(
    cfg: CoordinatorConfig,
    run_id: str,
    fleet: Fleet,
    result: ExperimentResult | None,
    error: str = "",
) -> None:
    """Hand every raw report off to the results directory and Redis."""
    meta = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "target": cfg.target.target,
        "com_proto": cfg.target.com_proto,
        "app_proto": cfg.target.app_proto,
        "load_pattern": str(cfg.experiment.load_pattern),
        "lt_rate": cfg.experiment.lt_rate,
        "ci_size": cfg.experiment.ci_size,
        "wait_conn": fleet.wait_conn,
        "status": "completed" if result is not None and result.ok else "failed",
        "error": error,
        "agents": [
            {"name": a.name, "role": a.role.value, "status": a.status, "report": a.report}
            for a in fleet.agents()
        ],
        "rounds": [
            {"round": r.round_no, "load": r.load, "reports": r.reports}
            for r in (result.rounds if result is not None else [])
        ],
    }
    meta_file = cfg.general.results_dir / run_id / "run_meta.json"
    try:
        meta_file.parent.mkdir(parents=True, exist_ok=True)
        meta_file.write_text(json.dumps(meta, indent=2))
        ok(f"Run metadata saved to {meta_file}")
    except OSError as exc:
        warn(f"Writing {meta_file} failed (non-fatal): {exc}")

    if not cfg.general.use_redis:
        return
    try:
        store_run(run_id, {**meta, "timestamp_unix": time.time()})
        for agent in fleet.agents():
            if agent.report:
                store_agent_report(run_id, {
                    "agent": agent.name,
                    "role": agent.role.value,
                    "status": agent.status,
                    "report": agent.report,
                })
        ok("Run stored in Redis.")
    except RedisError as exc:
        warn(f"Redis store failed (non-fatal): {exc}")


def run(
    argv: list[str] | None = None,
    *,
    dial: Dialer | None = None,
    launch: Launcher | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Run the coordinator and return the process exit status."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_structlog()

    try:
        cfg = config_from_args(args)
    except ConfigurationError as exc:
        fail(f"Configuration error: {exc}")
        return 1

    ec = cfg.experiment
    fleet = Fleet.from_names(
        list(ec.th_agents), list(ec.lt_agents), list(ec.sym_agents),
        agent_port=ec.agent_port,
        wait_conn=should_wait_for_connections(cfg.target.com_proto),
    )
    per_role = args_by_role(fleet, cfg.target, nic_ts=ec.nic_ts)

    if cfg.general.print_agent_args:
        print(format_agent_args_map(agent_args_map(fleet, cfg.target, nic_ts=ec.nic_ts)))
        return 0

    _banner(cfg, fleet)
    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    events_path = cfg.general.results_dir / run_id / "events.jsonl"
    try:
        event_log = get_json_file_logger(events_path)
    except OSError as exc:
        warn(f"Event log {events_path} unavailable (non-fatal): {exc}")
        event_log = None
    params = ExperimentParams(load_pattern=ec.load_pattern, rate=ec.lt_rate, ci_size=ec.ci_size)
    connect_kwargs: dict = {"sleep": sleep}
    if dial is not None:
        connect_kwargs["dial"] = dial

    result: ExperimentResult | None = None
    try:
        with contextlib.ExitStack() as stack:
            stack.callback(close_json_file_logger, events_path)
            if cfg.general.run_agents:
                info(f"Launching {len(fleet)} agents ...")
                launch_fleet(
                    fleet, per_role, ec.private_key, stack,
                    launch=launch or functools.partial(
                        launch_agent,
                        user=cfg.general.agent_user or None,
                        agent_binary=cfg.general.agent_binary,
                        log_dir=cfg.general.results_dir / run_id,
                    ),
                    sleep=sleep,
                )
                ok("Agents launched.")
            # entered after the sessions, so connections close before agents stop
            stack.enter_context(fleet)

            info("Connecting to agents ...")
            connect_fleet(fleet, **connect_kwargs)
            ok(f"All {len(fleet)} agents connected.")

            result = Director(fleet, event_log=event_log).run(params)
    except ExperimentError as exc:
        fail(str(exc))
        _persist(cfg, run_id, fleet, exc.result, error=str(exc))
        return 1
    except CoordinatorError as exc:
        fail(str(exc))
        return 1

    ok(f"Experiment finished: {len(result.rounds)} round(s), {len(fleet)} agents.")
    _persist(cfg, run_id, fleet, result)
    print_summary(fleet, result)
    return 0


def main() -> None:
    sys.exit(run())
