"""Shared numeric helpers for neuroloop."""

from __future__ import annotations

import math


def clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    """Clamp value into [lo, hi]."""
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (71.75 -> 72, 50.5 -> 51).

    Python's round() uses banker's rounding, which would send 50.5 to 50.
    """
    return int(math.floor(value + 0.5))


def round1(value: float) -> float:
    """Round to one decimal place, half up."""
    return math.floor(value * 10 + 0.5) / 10


def mean(values: list[float]) -> float | None:
    """Arithmetic mean, or None for an empty list."""
    if not values:
        return None
    return sum(values) / len(values)
