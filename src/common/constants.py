"""Shared constants for the load-generation coordinator."""

from pathlib import Path

# Project root = loadfleet/
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

RESULTS_DIR = PROJECT_ROOT / "results"

# ── Agent control plane ─────────────────────────────────────────────────────
AGENT_PORT = 5001               # control port, same on every agent
AGENT_SETTLE_SECS = 5.0         # wait after launching before the first dial
CONNECT_RETRIES = 3             # refused dials retried while listeners come up
CONNECT_BACKOFF_BASE = 2.0      # seconds; doubles each retry

# ── Remote launch ───────────────────────────────────────────────────────────
AGENT_BINARY = "/tmp/{user}/loadfleet/agent"
LAUNCH_READY_WAIT = 1.0         # an ssh session that dies this fast never started
SSH_OPTIONS = ["-o", "BatchMode=yes", "-o", "StrictHostKeyChecking=no"]

# Communication protocols whose sessions must be set up before measuring
CONNECTION_ORIENTED_PROTOS = frozenset({"TCP"})

# ── Experiment defaults ─────────────────────────────────────────────────────
DEFAULT_LOAD_PATTERN = "fixed:10000"
DEFAULT_LT_RATE = 4000
DEFAULT_CI_SIZE = 10
DEFAULT_IDIST = "exp"
DEFAULT_COM_PROTO = "TCP"
DEFAULT_APP_PROTO = "echo:4"
