"""Idempotent transitions over the per-user DecayTracking record.

Every transition takes the previous state explicitly and returns a new one;
inputs are never mutated. When a call changes nothing the same object comes
back, so callers can skip the write. Changed states carry version + 1 for a
compare-and-swap upsert.

Weekly accumulators hold the total decay applied for the tagged week. On a
new week tag they restart from 0, then rise to the week's target. Re-running
a transition with the same week and inputs is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from neuroloop.decay import rules
from neuroloop.models import DecayTracking, Skill, SkillVector
from neuroloop.temporal import days_between

logger = logging.getLogger("neuroloop")

# Days since training assumed for users who never trained
NEVER_TRAINED_DAYS = 30


def _next(state: DecayTracking, **updates: Any) -> DecayTracking:
    updates["version"] = state.version + 1
    return state.model_copy(update=updates)


def _accumulate(
    applied: float,
    stored_week: date | None,
    current_week: date,
    target: float,
    cap: float,
) -> tuple[float, float]:
    """(new applied total, delta) for one weekly accumulator."""
    base = applied if stored_week == current_week else 0.0
    new_applied = max(base, min(cap, target))
    return new_applied, new_applied - base


# --- Daily counters ---


def record_daily_recovery(state: DecayTracking, recovery: float | None, today: date) -> DecayTracking:
    """Advance the low-recovery streak once per day.

    Recovery below 40 extends the streak; anything else (including missing
    data, treated as neutral) resets it.
    """
    if state.last_rec_check_date == today:
        return state
    streak = state.consecutive_low_rec_days + 1 if rules.is_low_recovery(recovery) else 0
    return _next(state, consecutive_low_rec_days=streak, last_rec_check_date=today)


def record_skill_xp(state: DecayTracking, skill: Skill, at: datetime) -> DecayTracking:
    current = state.skill_last_xp.get(skill)
    if current is not None and current >= at:
        return state
    return _next(state, skill_last_xp={**state.skill_last_xp, skill: at})


def days_since_training(state: DecayTracking, now: datetime) -> int:
    if not state.skill_last_xp:
        return NEVER_TRAINED_DAYS
    return max(0, days_between(max(state.skill_last_xp.values()), now))


def track_performance_window(
    state: DecayTracking,
    performance_avg: float | None,
    today: date,
) -> DecayTracking:
    """Once-per-day update of the cognitive-age drop window.

    The window starts at the first observed value. A day at least 10 points
    under the start extends the drop streak; any other day restarts the
    window at today's value.
    """
    if performance_avg is None or state.perf_last_check_date == today:
        return state

    if state.perf_window_start_value is None:
        return _next(
            state,
            perf_window_start_value=performance_avg,
            perf_window_start_date=today,
            perf_drop_days=0,
            perf_last_check_date=today,
        )

    if rules.is_performance_drop(state.perf_window_start_value, performance_avg):
        return _next(state, perf_drop_days=state.perf_drop_days + 1, perf_last_check_date=today)

    return _next(
        state,
        perf_window_start_value=performance_avg,
        perf_window_start_date=today,
        perf_drop_days=0,
        perf_last_check_date=today,
    )


# --- Weekly accumulators ---


def apply_readiness_decay(state: DecayTracking, current_week: date) -> tuple[DecayTracking, float]:
    """Raise this week's readiness decay to the target for the current streak."""
    target = rules.readiness_decay_target(state.consecutive_low_rec_days)
    applied, delta = _accumulate(
        state.readiness_decay_applied,
        state.readiness_decay_week,
        current_week,
        target,
        rules.READINESS_DECAY_WEEKLY_CAP,
    )
    if applied == state.readiness_decay_applied and state.readiness_decay_week == current_week:
        return state, 0.0
    return _next(state, readiness_decay_applied=applied, readiness_decay_week=current_week), delta


def apply_sci_decay(
    state: DecayTracking,
    current_week: date,
    recovery: float | None,
    days_inactive: int | None,
) -> tuple[DecayTracking, float]:
    target = rules.sci_decay_target(recovery, days_inactive)
    applied, delta = _accumulate(
        state.sci_decay_applied,
        state.sci_decay_week,
        current_week,
        target,
        rules.SCI_DECAY_WEEKLY_CAP,
    )
    if applied == state.sci_decay_applied and state.sci_decay_week == current_week:
        return state, 0.0
    return _next(state, sci_decay_applied=applied, sci_decay_week=current_week), delta


def apply_dual_process_decay(
    state: DecayTracking,
    current_week: date,
    s1_xp: float,
    s2_xp: float,
) -> tuple[DecayTracking, float]:
    target = rules.dual_process_decay_target(s1_xp, s2_xp)
    applied, delta = _accumulate(
        state.dual_process_decay_applied,
        state.dual_process_decay_week,
        current_week,
        target,
        rules.DUAL_PROCESS_WEEKLY_CAP,
    )
    if applied == state.dual_process_decay_applied and state.dual_process_decay_week == current_week:
        return state, 0.0
    return _next(state, dual_process_decay_applied=applied, dual_process_decay_week=current_week), delta


# --- Cognitive-age regression ---


def apply_cognitive_age_regression(state: DecayTracking, today: date) -> tuple[DecayTracking, int]:
    """Add one regression year when the drop window qualifies. Returns (state, years added)."""
    if not rules.regression_triggered(state.perf_drop_days, state.last_regression_at, today):
        return state, 0
    logger.info(
        "Cognitive-age regression triggered: drop held %d days from %.1f",
        state.perf_drop_days,
        state.perf_window_start_value or 0.0,
    )
    return _next(state, regression_years=state.regression_years + 1, last_regression_at=today), 1


# --- Compute-on-read adjustments ---


@dataclass
class DecayAdjustments:
    """Decay amounts to subtract from displayed metrics."""
    skills: SkillVector
    skill_decay: dict[Skill, float] = field(default_factory=dict)
    readiness: float = 0.0
    sci: float = 0.0
    dual_process: float = 0.0
    regression_years: int = 0


def compute_decay_adjustments(
    state: DecayTracking,
    skills: SkillVector,
    baseline: SkillVector | None,
    now: datetime,
    current_week: date,
    reference_date: date | datetime | None = None,
) -> DecayAdjustments:
    """Apply skill decay and read the current week's accumulators.

    Accumulators tagged with an older week contribute nothing.
    """
    floor = baseline or SkillVector(ae=0, ra=0, ct=0, in_=0)
    decayed = skills
    skill_decay: dict[Skill, float] = {}
    for skill in Skill:
        value = skills.get(skill)
        new_value = rules.apply_skill_decay(
            value,
            floor.get(skill),
            state.skill_last_xp.get(skill),
            now,
            reference_date=reference_date,
        )
        if new_value != value:
            skill_decay[skill] = value - new_value
            decayed = decayed.with_skill(skill, new_value)

    def _current(applied: float, week: date | None) -> float:
        return applied if week == current_week else 0.0

    return DecayAdjustments(
        skills=decayed,
        skill_decay=skill_decay,
        readiness=_current(state.readiness_decay_applied, state.readiness_decay_week),
        sci=_current(state.sci_decay_applied, state.sci_decay_week),
        dual_process=_current(state.dual_process_decay_applied, state.dual_process_decay_week),
        regression_years=state.regression_years,
    )
