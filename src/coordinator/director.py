"""Experiment director: drives one synchronized run across the whole fleet.

Every round of the load pattern goes through the same barrier sequence:

  1. ``configure`` is sent to every agent,
  2. every agent must answer ``ready`` before anyone is started,
  3. ``start`` is sent to every agent,
  4. every agent's ``report`` is collected, failed or not.

A failure in step 2 aborts the round before any load is generated; a
failure in step 4 fails the run only after the remaining reports are in.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable

import structlog

from src.coordinator.agent import Agent, Fleet, Role
from src.coordinator.errors import ExperimentError, ProtocolError
from src.coordinator.load_pattern import LoadPattern, per_agent_load
from src.coordinator.protocol import READY, REPORT, START, TERMINATE, configure_msg


@dataclass(frozen=True)
class ExperimentParams:
    load_pattern: LoadPattern
    rate: int        # latency / symmetric agents
    ci_size: int     # latency-reporting agents sample until this interval is met


@dataclass
class RoundResult:
    round_no: int
    load: int
    reports: dict[str, dict] = field(default_factory=dict)


@dataclass
class ExperimentResult:
    rounds: list[RoundResult] = field(default_factory=list)
    ok: bool = False


class Director:
    """Sequences experiment rounds over an already connected fleet."""

    def __init__(self, fleet: Fleet, *, event_log: structlog.BoundLogger | None = None) -> None:
        self._fleet = fleet
        self._console = structlog.get_logger("director")
        self._file_log = event_log

    def _emit(self, event: str, warning: bool = False, **fields) -> None:
        for log in (self._console, self._file_log):
            if log is None:
                continue
            if warning:
                log.warning(event, **fields)
            else:
                log.info(event, **fields)

    def run(self, params: ExperimentParams) -> ExperimentResult:
        """Run every round of ``params.load_pattern``; raise on the first failed round."""
        agents = list(self._fleet.agents())
        if not agents:
            raise ExperimentError("startup", {"<fleet>": "no agents configured"})
        missing = {a.name: "not connected" for a in agents if not a.connected}
        if missing:
            raise ExperimentError("startup", missing)

        result = ExperimentResult()
        try:
            for round_no, level in enumerate(params.load_pattern.levels(), start=1):
                self._run_round(agents, round_no, level, params, result)
            result.ok = True
        except ExperimentError as exc:
            exc.result = result
            raise
        finally:
            self.close_out()
        return result

    # ── One round ───────────────────────────────────────────────────────

    def _configure_for(self, agent: Agent, round_no: int, level: int, params: ExperimentParams) -> dict:
        if agent.role is Role.THROUGHPUT:
            group = self._fleet.throughput
            load = per_agent_load(level, len(group), group.index(agent))
        elif agent.role is Role.SYMMETRIC:
            load = params.rate
        else:
            load = 0
        msg = configure_msg(
            round_no=round_no,
            role=agent.role.protocol_role.value,
            load_pattern=str(params.load_pattern),
            load=load,
            rate=params.rate,
            ci_size=params.ci_size,
            wait_conn=self._fleet.wait_conn,
        )
        msg["generates_load"] = agent.role.generates_load
        return msg

    def _run_round(
        self,
        agents: list[Agent],
        round_no: int,
        level: int,
        params: ExperimentParams,
        result: ExperimentResult,
    ) -> None:
        self._emit("round_configure", round=round_no, load=level, agents=len(agents))

        failures = self._broadcast(
            agents, lambda a: self._configure_for(a, round_no, level, params),
        )
        ready = [a for a in agents if a.name not in failures]
        for agent, reply in self._gather(ready, READY).items():
            if isinstance(reply, Exception):
                failures[agent.name] = str(reply)
            elif not reply.get("ok", False):
                failures[agent.name] = reply.get("error") or "agent not ready"
            else:
                agent.status = "ready"
                continue
            agent.status = "failed"
        if failures:
            raise self._fail(round_no, "readiness", failures)
        self._emit("round_ready", round=round_no)

        failures = self._broadcast(agents, lambda a: {"type": START, "round": round_no})
        started = [a for a in agents if a.name not in failures]

        outcome = RoundResult(round_no=round_no, load=level)
        result.rounds.append(outcome)
        for agent, reply in self._gather(started, REPORT).items():
            if isinstance(reply, Exception):
                failures[agent.name] = str(reply)
                agent.status = "failed"
                continue
            agent.report = reply.get("summary") or {}
            outcome.reports[agent.name] = agent.report
            if reply.get("status") == "ok":
                agent.status = "completed"
            else:
                agent.status = "failed"
                failures[agent.name] = reply.get("error") or f"status {reply.get('status')!r}"
            self._emit(
                "agent_report", round=round_no, agent=agent.name,
                role=agent.role.value, status=reply.get("status"), summary=agent.report,
            )
        if failures:
            raise self._fail(round_no, "measurement", failures)

    def _fail(self, round_no: int, phase: str, failures: dict[str, str]) -> ExperimentError:
        for name, why in failures.items():
            self._emit("round_failed", warning=True, round=round_no, phase=phase, agent=name, error=why)
        return ExperimentError(f"{phase} of round {round_no}", failures)

    # ── Fan-out helpers ─────────────────────────────────────────────────

    def _broadcast(self, agents: list[Agent], build: Callable[[Agent], dict]) -> dict[str, str]:
        """Send one message to each agent; return ``{name: error}`` for failed sends."""
        failures: dict[str, str] = {}
        for agent in agents:
            try:
                agent.conn.send(build(agent))
            except ProtocolError as exc:
                agent.status = "failed"
                failures[agent.name] = str(exc)
        return failures

    def _gather(self, agents: list[Agent], expect: str) -> dict[Agent, dict | Exception]:
        """Wait for one *expect* message from every agent (the join is the barrier)."""
        replies: dict[Agent, dict | Exception] = {}
        if not agents:
            return replies
        with ThreadPoolExecutor(max_workers=len(agents)) as pool:
            futures = {pool.submit(agent.conn.recv, expect): agent for agent in agents}
            for future in as_completed(futures):
                agent = futures[future]
                try:
                    replies[agent] = future.result()
                except ProtocolError as exc:
                    replies[agent] = exc
        # keep fleet order for deterministic logs and reports
        return {a: replies[a] for a in agents}

    def close_out(self) -> None:
        """Tell every agent that is still reachable to end its session."""
        for agent in self._fleet.agents():
            if not agent.connected:
                continue
            try:
                agent.conn.send({"type": TERMINATE})
            except ProtocolError as exc:
                self._emit("terminate_failed", warning=True, agent=agent.name, error=str(exc))
