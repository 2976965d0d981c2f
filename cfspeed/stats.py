"""Statistical aggregation for speed-test samples.

All functions take a sequence of floats, never mutate it, and return 0
for empty input.  ``jitter`` is the sample variance (n-1 divisor) and
``quantile`` is a truncating nearest-rank pick; both are kept as-is so
results stay comparable with earlier runs.
"""

from __future__ import annotations

from typing import Sequence

from cfspeed.models import LatencyStats


def average(values: Sequence[float]) -> float:
    """Arithmetic mean."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float:
    """Middle value of a sorted copy; mean of the two middles for even counts."""
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    mid = len(sorted_vals) // 2
    if len(sorted_vals) % 2 == 0:
        return (sorted_vals[mid - 1] + sorted_vals[mid]) / 2
    return sorted_vals[mid]


def jitter(values: Sequence[float]) -> float:
    """Sample variance around the mean, using the n-1 divisor."""
    n = len(values)
    if n <= 1:
        return 0.0
    avg = average(values)
    return sum((v - avg) * (v - avg) for v in values) / (n - 1)


def quantile(values: Sequence[float], q: float) -> float:
    """Element at index ``int(n * q)`` of a sorted copy, clamped to the valid range."""
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    pos = int(len(sorted_vals) * q)
    if pos >= len(sorted_vals):
        pos = len(sorted_vals) - 1
    if pos < 0:
        pos = 0
    return sorted_vals[pos]


def summarize_latency(values: Sequence[float]) -> LatencyStats:
    """Reduce latency samples to min/max/mean/median/jitter."""
    if not values:
        return LatencyStats()

    return LatencyStats(
        min=min(values),
        max=max(values),
        avg=average(values),
        median=median(values),
        jitter=jitter(values),
        count=len(values),
    )
