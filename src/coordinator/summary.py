"""Operator-facing summary of the raw reports a run gathered.

Reports are passed through untouched; the only numbers derived here are
per-round totals for the console. Agents report ``throughput`` (requests
per second) and, when they measure latency, ``latency_us`` with at least
``avg`` and ``p99``.
"""

from __future__ import annotations

from src.common.console import info, section
from src.common.stats import fmt_stat
from src.coordinator.agent import Fleet
from src.coordinator.director import ExperimentResult, RoundResult


def round_totals(fleet: Fleet, rnd: RoundResult) -> dict:
    throughput: list[float] = []
    avg_lat: list[float] = []
    p99_lat: list[float] = []
    for agent in fleet.agents():
        report = rnd.reports.get(agent.name)
        if report is None:
            continue
        if agent.role.generates_load and "throughput" in report:
            throughput.append(float(report["throughput"]))
        latency = report.get("latency_us") or {}
        if agent.role.reports_latency and latency:
            if "avg" in latency:
                avg_lat.append(float(latency["avg"]))
            if "p99" in latency:
                p99_lat.append(float(latency["p99"]))
    return {
        "round": rnd.round_no,
        "load": rnd.load,
        "throughput_total": sum(throughput),
        "throughput": throughput,
        "latency_avg_us": avg_lat,
        "latency_p99_us": p99_lat,
    }


def print_summary(fleet: Fleet, result: ExperimentResult) -> None:
    print(section("RESULTS"))
    for rnd in result.rounds:
        totals = round_totals(fleet, rnd)
        info(
            f"Round {totals['round']}  load={totals['load']:,}  "
            f"achieved={totals['throughput_total']:,.0f} rps"
        )
        if totals["throughput"]:
            print(f"    per-agent rps : {fmt_stat(totals['throughput'])}")
        if totals["latency_avg_us"]:
            print(f"    avg latency   : {fmt_stat(totals['latency_avg_us'], 'us')}")
        if totals["latency_p99_us"]:
            print(f"    p99 latency   : {fmt_stat(totals['latency_p99_us'], 'us')}")
