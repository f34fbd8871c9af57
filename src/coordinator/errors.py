"""Error taxonomy of the coordinator.

Every error carries enough context (agent name, phase) to be reported to
the operator as-is; the CLI turns any ``CoordinatorError`` into a non-zero
exit status.
"""

from __future__ import annotations


class CoordinatorError(RuntimeError):
    """Base class for all fatal coordinator conditions."""


class ConfigurationError(CoordinatorError):
    """Missing or contradictory experiment parameters."""


class LaunchError(CoordinatorError):
    def __init__(self, host: str, cause: object) -> None:
        self.host = host
        self.cause = cause
        super().__init__(f"Launching agent on {host} failed: {cause}")


class AgentConnectionError(CoordinatorError, ConnectionError):
    def __init__(self, agent: str, cause: object) -> None:
        self.agent = agent
        self.cause = cause
        super().__init__(f"Connecting to agent {agent} failed: {cause}")


class ProtocolError(CoordinatorError):
    """Malformed, unexpected or missing control-protocol message."""


class ExperimentError(CoordinatorError):
    """An agent failed or dropped out during a run.

    ``result`` holds whatever the run gathered before failing (completed
    rounds plus the partial reports of the failed one), once the director
    attaches it.
    """

    def __init__(self, phase: str, failures: dict[str, str]) -> None:
        self.phase = phase
        self.failures = failures
        self.result = None
        detail = "; ".join(f"{name}: {why}" for name, why in failures.items())
        super().__init__(f"Experiment failed during {phase} — {detail}")

    @property
    def agents(self) -> list[str]:
        return list(self.failures)
