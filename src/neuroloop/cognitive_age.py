"""Cognitive Age: an age-equivalent of long-run performance against the onboarding baseline.

Every 10 points of improvement over baseline takes one year off (scaled by
the RQ multiplier). A sustained drop below baseline adds regression-penalty
years. The result always stays within chronological age +/- 15 years.

`calculate_cognitive_age` is the live dashboard formula.
`compute_for_user` is the daily batch entry point over stored snapshots.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from neuroloop.metrics.reasoning import rq_multiplier
from neuroloop.models import (
    CognitiveAgeBaseline,
    CognitiveAgeState,
    DailySnapshot,
    RegressionRisk,
    SkillVector,
)
from neuroloop.temporal import long_period_start
from neuroloop.utils import clamp, mean, round1

logger = logging.getLogger("neuroloop")

POINTS_PER_YEAR = 10.0
MAX_AGE_DELTA = 15.0

WINDOW_SHORT = 21
WINDOW_PACE = 30
WINDOW_LONG = 180

REGRESSION_THRESHOLD = 10.0
REGRESSION_STREAK_DAYS = 21
REGRESSION_COOLDOWN_DAYS = 31
PRE_WARNING_DAYS = 14
# Stand-in for "never triggered" so the cooldown check always passes
NEVER_TRIGGERED_DAYS = 999

ENGAGEMENT_TARGET_SESSIONS = 21
MIN_SKILLS_PER_DAY = 2
MIN_SNAPSHOTS = 10
NEUTRAL_RQ = 50.0

PACE_MIN = 0.5
PACE_MAX = 2.5


# --- Live formula ---


def calculate_cognitive_age(
    skills: SkillVector,
    baseline_skills: SkillVector,
    baseline_age: float,
    rq: float | None = None,
) -> float:
    """baseline_age - (improvement / 10) x RQ multiplier, capped at +/-15 years."""
    improvement = skills.performance_avg - baseline_skills.performance_avg
    age = baseline_age - (improvement / POINTS_PER_YEAR) * rq_multiplier(rq)
    return round1(clamp(age, baseline_age - MAX_AGE_DELTA, baseline_age + MAX_AGE_DELTA))


# --- Batch computation ---


@dataclass
class CognitiveAgeResult:
    cognitive_age: float | None
    chronological_age: float
    delta: float | None
    pace: float
    regression_risk: RegressionRisk
    regression_streak_days: int
    regression_penalty_years: int
    regression_triggered: bool
    engagement_index: float
    perf_21: float | None
    perf_30: float | None
    perf_180: float | None
    rq: float
    warning: str | None = None


def daily_performance(snapshot: DailySnapshot) -> float | None:
    """Mean of the skills recorded that day; None with fewer than two."""
    values = [v for v in (snapshot.ae, snapshot.ra, snapshot.ct, snapshot.in_) if v is not None]
    if len(values) < MIN_SKILLS_PER_DAY:
        return None
    return sum(values) / len(values)


def _in_window(snapshot: DailySnapshot, days: int, today: date) -> bool:
    return long_period_start(days, today) < snapshot.snapshot_date <= today


def rolling_performance(snapshots: list[DailySnapshot], days: int, today: date) -> float | None:
    """Average daily performance over the last `days` days.

    Needs at least min(10, days // 3) valid days, otherwise None.
    """
    values = [
        p for p in (daily_performance(s) for s in snapshots if _in_window(s, days, today))
        if p is not None
    ]
    if len(values) < min(10, days // 3):
        return None
    return mean(values)


def _latest_rq(snapshots: list[DailySnapshot], today: date) -> float:
    """RQ of the most recent snapshot up to today; neutral when it has none."""
    past = [s for s in snapshots if s.snapshot_date <= today]
    if not past:
        return NEUTRAL_RQ
    latest = max(past, key=lambda s: s.snapshot_date)
    return NEUTRAL_RQ if latest.reasoning_quality is None else latest.reasoning_quality


def _current_chronological_age(baseline: CognitiveAgeBaseline, today: date) -> float:
    if baseline.onboarded_at is None or baseline.onboarded_at > today:
        return baseline.chronological_age
    return baseline.chronological_age + (today - baseline.onboarded_at).days / 365.25


def pace_of_aging(perf_30: float | None, perf_180: float | None) -> float:
    """1.0 is steady; below 1 means recent performance beats the long-run trend."""
    if perf_30 is None or perf_180 is None:
        return 1.0
    return clamp(1 - (perf_30 - perf_180) / POINTS_PER_YEAR, PACE_MIN, PACE_MAX)


def regression_risk(streak_days: int) -> RegressionRisk:
    if streak_days >= REGRESSION_STREAK_DAYS:
        return RegressionRisk.HIGH
    if streak_days >= PRE_WARNING_DAYS:
        return RegressionRisk.MEDIUM
    return RegressionRisk.LOW


def compute_for_user(
    baseline: CognitiveAgeBaseline,
    snapshots: list[DailySnapshot],
    previous: CognitiveAgeState | None,
    today: date,
    min_snapshots: int = MIN_SNAPSHOTS,
) -> tuple[CognitiveAgeResult, CognitiveAgeState] | None:
    """Daily cognitive-age job for one user.

    Returns None when there are fewer than min_snapshots snapshots. Running
    twice on the same day returns the same result without advancing the
    streak or charging another penalty year.
    """
    if len(snapshots) < min_snapshots:
        return None

    prev = previous or CognitiveAgeState()
    already_ran = prev.last_computed_date == today

    perf_21 = rolling_performance(snapshots, WINDOW_SHORT, today)
    perf_30 = rolling_performance(snapshots, WINDOW_PACE, today)
    perf_180 = rolling_performance(snapshots, WINDOW_LONG, today)
    rq = _latest_rq(snapshots, today)

    streak = prev.regression_streak_days
    penalty = prev.cumulative_regression_years
    last_trigger = prev.last_regression_trigger
    triggered = False

    if not already_ran:
        below = perf_21 is not None and perf_21 <= baseline.baseline_perf - REGRESSION_THRESHOLD
        streak = streak + 1 if below else 0
        days_since_trigger = (
            (today - last_trigger).days if last_trigger is not None else NEVER_TRIGGERED_DAYS
        )
        if below and streak >= REGRESSION_STREAK_DAYS and days_since_trigger >= REGRESSION_COOLDOWN_DAYS:
            penalty += 1
            last_trigger = today
            triggered = True

    chrono = _current_chronological_age(baseline, today)
    # The age only moves on the 180-day average; without it there is no age today
    cognitive_age = None
    if perf_180 is not None:
        improvement = perf_180 - baseline.baseline_perf
        raw_age = chrono - (improvement / POINTS_PER_YEAR) * rq_multiplier(rq) + penalty
        cognitive_age = round1(clamp(raw_age, chrono - MAX_AGE_DELTA, chrono + MAX_AGE_DELTA))

    sessions = sum(s.sessions for s in snapshots if _in_window(s, WINDOW_PACE, today))
    engagement = clamp(sessions / ENGAGEMENT_TARGET_SESSIONS, 0.0, 1.0)

    warning = None
    if PRE_WARNING_DAYS <= streak < REGRESSION_STREAK_DAYS:
        warning = (
            f"Performance has been below baseline for {streak} days; "
            f"{REGRESSION_STREAK_DAYS - streak} more days adds a regression year"
        )

    result = CognitiveAgeResult(
        cognitive_age=cognitive_age,
        chronological_age=round1(chrono),
        delta=round1(cognitive_age - chrono) if cognitive_age is not None else None,
        pace=round(pace_of_aging(perf_30, perf_180), 2),
        regression_risk=regression_risk(streak),
        regression_streak_days=streak,
        regression_penalty_years=penalty,
        regression_triggered=triggered,
        engagement_index=round(engagement, 2),
        perf_21=perf_21,
        perf_30=perf_30,
        perf_180=perf_180,
        rq=rq,
        warning=warning,
    )
    state = CognitiveAgeState(
        regression_streak_days=streak,
        cumulative_regression_years=penalty,
        last_regression_trigger=last_trigger,
        last_computed_date=today,
    )
    if triggered:
        logger.info("Regression year added (streak %d, total %d)", streak, penalty)
    return result, state
