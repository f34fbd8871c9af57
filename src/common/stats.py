"""Basic statistical helpers (stdlib only, no numpy needed)."""

from __future__ import annotations

import math


def mean(v: list[float | int]) -> float:
    return sum(v) / len(v) if v else 0.0


def stdev(v: list[float | int]) -> float:
    if len(v) < 2:
        return 0.0
    m = mean(v)
    return math.sqrt(sum((x - m) ** 2 for x in v) / (len(v) - 1))


def fmt_stat(v: list[float | int], unit: str = "") -> str:
    """mean +/- sigma  [min, max]  (n=...)."""
    if not v:
        return "—"
    return (
        f"{mean(v):,.1f}{unit} ± {stdev(v):,.1f}{unit}"
        f"  [min={min(v):,.0f}, max={max(v):,.0f}]"
        f"  (n={len(v)})"
    )
