"""Reasoning Quality (RQ): System-2 skill, its consistency, and task priming.

RQ = 0.50 x S2 core + 0.30 x consistency + 0.20 x task priming, minus an
inactivity decay, bounded below by S2 - 10 (a low raw value is lifted to it).
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from datetime import datetime

from neuroloop.models import TaskCompletion, TaskType
from neuroloop.temporal import DecayWindow, MEDIUM_PERIOD_DAYS, days_between
from neuroloop.utils import clamp, round1

WEIGHT_CORE = 0.50
WEIGHT_CONSISTENCY = 0.30
WEIGHT_PRIMING = 0.20

CONSISTENCY_SAMPLE = 10
CONSISTENCY_MIN_SCORES = 2
CONSISTENCY_NEUTRAL = 50.0
CONSISTENCY_STDEV_SCALE = 50.0

TASK_WEIGHTS: dict[TaskType, float] = {
    TaskType.PODCAST: 12.0,
    TaskType.ARTICLE: 15.0,
    TaskType.BOOK: 20.0,
}
TASK_RECENCY_STEP = 0.1
TASK_RECENCY_FLOOR = 0.3
PRIMING_PER_TASK_CAP = 20.0
# Tasks beyond this count contribute half
PRIMING_FULL_TASKS = 5

DECAY_POINTS_PER_WEEK = 2.0
FLOOR_BELOW_CORE = 10.0

RQ_MULT_MIN = 0.85
RQ_MULT_MAX = 1.0


@dataclass
class RQResult:
    rq: float
    core: float
    consistency: float
    task_priming: float
    decay: float
    floor: float
    is_decaying: bool
    days_inactive: int | None
    contributions: dict[str, float] = field(default_factory=dict)


def s2_consistency(scores: list[float]) -> float:
    """100 minus the scaled stdev of the last 10 scores; 50 with fewer than 2."""
    recent = scores[-CONSISTENCY_SAMPLE:]
    if len(recent) < CONSISTENCY_MIN_SCORES:
        return CONSISTENCY_NEUTRAL
    stdev = statistics.pstdev(recent)
    return 100 - clamp(stdev / CONSISTENCY_STDEV_SCALE * 100)


def task_priming(tasks: list[TaskCompletion], now: datetime) -> float:
    """Recency-weighted task contribution over the last 7 days, in [0, 100]."""
    total = 0.0
    count = 0
    for task in tasks:
        days = days_between(task.completed_at, now)
        if days < 0 or days > MEDIUM_PERIOD_DAYS:
            continue
        recency = max(TASK_RECENCY_FLOOR, 1 - TASK_RECENCY_STEP * days)
        total += TASK_WEIGHTS[task.type] * recency
        count += 1
    if count == 0:
        return 0.0
    effective = min(count, PRIMING_FULL_TASKS) + 0.5 * max(0, count - PRIMING_FULL_TASKS)
    return clamp(min(total, effective * PRIMING_PER_TASK_CAP))


def rq_decay(
    last_s2_game_at: datetime | None,
    last_task_at: datetime | None,
    now: datetime,
) -> tuple[float, int | None]:
    """(decay points, days since the latest S2 activity).

    Two points per started week once the latest S2 game or task is 14+ days
    old. No activity at all yields no decay.
    """
    candidates = [t for t in (last_s2_game_at, last_task_at) if t is not None]
    if not candidates:
        return 0.0, None
    days = days_between(max(candidates), now)
    threshold = int(DecayWindow.RQ)
    if days < threshold:
        return 0.0, days
    weeks = (days - threshold) // 7 + 1
    return weeks * DECAY_POINTS_PER_WEEK, days


def calculate_rq(
    s2: float,
    s2_game_scores: list[float],
    task_completions: list[TaskCompletion],
    last_s2_game_at: datetime | None,
    last_task_at: datetime | None,
    now: datetime,
) -> RQResult:
    core = clamp(s2)
    consistency = s2_consistency(s2_game_scores)
    priming = task_priming(task_completions, now)
    decay, days_inactive = rq_decay(last_s2_game_at, last_task_at, now)

    raw = WEIGHT_CORE * core + WEIGHT_CONSISTENCY * consistency + WEIGHT_PRIMING * priming
    floor = max(0.0, core - FLOOR_BELOW_CORE)
    # RQ never sits more than 10 points under S2, decayed or not
    rq = clamp(raw - decay, floor, 100)

    return RQResult(
        rq=round1(clamp(rq)),
        core=round1(core),
        consistency=round1(consistency),
        task_priming=round1(priming),
        decay=decay,
        floor=round1(floor),
        is_decaying=decay > 0,
        days_inactive=days_inactive,
        contributions={
            "core": round1(WEIGHT_CORE * core),
            "consistency": round1(WEIGHT_CONSISTENCY * consistency),
            "task_priming": round1(WEIGHT_PRIMING * priming),
        },
    )


def rq_multiplier(rq: float | None) -> float:
    """0.85 at RQ 0 (or unknown), 1.0 at RQ 100."""
    if rq is None or math.isnan(rq):
        return RQ_MULT_MIN
    return clamp(RQ_MULT_MIN + 0.15 * rq / 100, RQ_MULT_MIN, RQ_MULT_MAX)
