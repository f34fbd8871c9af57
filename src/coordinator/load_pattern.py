"""Load patterns: the schedule of aggregate throughput load per round."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from src.coordinator.errors import ConfigurationError


@dataclass(frozen=True)
class LoadPattern:
    """Parsed form of ``fixed:LOAD`` or ``step:START:STEP:END``."""

    kind: str
    start: int
    step: int = 0
    end: int = 0

    @classmethod
    def parse(cls, text: str) -> LoadPattern:
        parts = text.strip().split(":")
        try:
            values = [int(p) for p in parts[1:]]
        except ValueError:
            raise ConfigurationError(f"Non-numeric load in pattern {text!r}") from None

        kind = parts[0].lower()
        if kind == "fixed" and len(values) == 1:
            pattern = cls("fixed", values[0])
        elif kind == "step" and len(values) == 3:
            pattern = cls("step", *values)
        else:
            raise ConfigurationError(
                f"Unknown load pattern {text!r} (expected fixed:LOAD or step:START:STEP:END)"
            )
        pattern._validate(text)
        return pattern

    def _validate(self, text: str) -> None:
        if self.start < 0:
            raise ConfigurationError(f"Negative load in pattern {text!r}")
        if self.kind == "step" and (self.step <= 0 or self.end < self.start):
            raise ConfigurationError(
                f"Step pattern {text!r} needs STEP > 0 and END >= START"
            )

    def levels(self) -> Iterator[int]:
        """Aggregate load of each round, in run order."""
        if self.kind == "fixed":
            yield self.start
            return
        load = self.start
        while load <= self.end:
            yield load
            load += self.step

    def __str__(self) -> str:
        if self.kind == "fixed":
            return f"fixed:{self.start}"
        return f"step:{self.start}:{self.step}:{self.end}"


def per_agent_load(level: int, n_agents: int, index: int = 0) -> int:
    """Share of an aggregate load emitted by generator *index* of *n_agents*.

    The first ``level % n_agents`` generators carry one extra unit so the
    shares add up to *level*.
    """
    if n_agents <= 0:
        return 0
    share, rest = divmod(level, n_agents)
    return share + (1 if index < rest else 0)
