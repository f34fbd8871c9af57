"""Redis connection and data-access helpers for persisting run results."""

from __future__ import annotations

import json
import os

import redis


_client: redis.Redis | None = None


def get_redis() -> redis.Redis:
    """Return a shared Redis client (lazy singleton).

    Connection settings are read on first use so that a ``.env`` file
    loaded by the CLI can still provide them.
    """
    global _client
    if _client is None:
        _client = redis.Redis(
            host=os.environ.get("REDIS_HOST", "localhost"),
            port=int(os.environ.get("REDIS_PORT", "6379")),
            db=int(os.environ.get("REDIS_DB", "0")),
            password=os.environ.get("REDIS_PASSWORD") or None,
            decode_responses=True,
        )
    return _client


# ── Run metadata ─────────────────────────────────────────────────────────────


def store_run(run_id: str, meta: dict) -> None:
    """Persist run metadata and add it to the chronological index."""
    r = get_redis()
    r.hset(f"run:{run_id}", mapping={
        k: json.dumps(v) if isinstance(v, (dict, list)) else str(v)
        for k, v in meta.items()
    })
    timestamp = meta.get("timestamp_unix", 0)
    r.zadd("runs", {run_id: float(timestamp)})


# ── Agent reports ────────────────────────────────────────────────────────────


def store_agent_report(run_id: str, report: dict) -> None:
    """Append one agent's raw report to the run's report list."""
    get_redis().rpush(f"run:{run_id}:reports", json.dumps(report))
