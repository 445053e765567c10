"""Pure decay calculators.

Each function maps already-loaded counters to a decay amount. Nothing here
reads or writes state; see neuroloop.decay.tracker for the transitions.
"""

from __future__ import annotations

from datetime import date, datetime

from neuroloop.temporal import DecayWindow, days_between

# Skill inactivity
SKILL_DECAY_THRESHOLD_DAYS = int(DecayWindow.SKILL)
SKILL_DECAY_INTERVAL_DAYS = 15
SKILL_DECAY_BASE = 1
SKILL_DECAY_MAX = 3

# Readiness
LOW_RECOVERY_THRESHOLD = 40.0
READINESS_DECAY_TRIGGER_DAYS = 3
READINESS_DECAY_INITIAL = 5.0
READINESS_DECAY_STEP = 2.0
READINESS_DECAY_WEEKLY_CAP = 15.0

# SCI
SCI_LOW_RECOVERY_DECAY = 5.0
SCI_INACTIVITY_DECAY = 5.0
SCI_INACTIVITY_DAYS = int(DecayWindow.SCI)
SCI_DECAY_WEEKLY_CAP = 10.0

# Dual process
DUAL_PROCESS_IMBALANCE_RATIO = 2.0
DUAL_PROCESS_DECAY = 5.0
DUAL_PROCESS_WEEKLY_CAP = 10.0

# Cognitive-age regression
REGRESSION_DROP_THRESHOLD = 10.0
REGRESSION_PERSIST_DAYS = int(DecayWindow.COGNITIVE_AGE)
REGRESSION_COOLDOWN_DAYS = 31


# --- Skill decay ---


def skill_decay_points(days_since_last_xp: int | None) -> int:
    """1 point at 30 days idle, +1 every further 15 days, max 3."""
    if days_since_last_xp is None or days_since_last_xp < SKILL_DECAY_THRESHOLD_DAYS:
        return 0
    over = days_since_last_xp - SKILL_DECAY_THRESHOLD_DAYS
    return min(SKILL_DECAY_MAX, SKILL_DECAY_BASE + over // SKILL_DECAY_INTERVAL_DAYS)


def apply_skill_decay(
    value: float,
    baseline: float,
    last_xp_at: date | datetime | None,
    now: date | datetime,
    reference_date: date | datetime | None = None,
) -> float:
    """Skill value after inactivity decay, never pushed below its baseline.

    With no last-XP date the idle time is measured from reference_date
    (typically onboarding). With neither there is no decay.
    """
    anchor = last_xp_at if last_xp_at is not None else reference_date
    if anchor is None or value <= baseline:
        return value
    points = skill_decay_points(days_between(anchor, now))
    return max(baseline, value - points)


# --- Readiness ---


def is_low_recovery(recovery: float | None) -> bool:
    return recovery is not None and recovery < LOW_RECOVERY_THRESHOLD


def readiness_decay_target(consecutive_low_rec_days: int) -> float:
    """Total readiness decay the week should reach for the current streak."""
    if consecutive_low_rec_days < READINESS_DECAY_TRIGGER_DAYS:
        return 0.0
    extra_days = consecutive_low_rec_days - READINESS_DECAY_TRIGGER_DAYS
    return min(READINESS_DECAY_WEEKLY_CAP, READINESS_DECAY_INITIAL + READINESS_DECAY_STEP * extra_days)


# --- SCI ---


def sci_decay_target(recovery: float | None, days_since_training: int | None) -> float:
    """5 for low recovery plus 5 for a week without training, capped at 10.

    days_since_training of None (never trained) counts as inactive.
    """
    total = 0.0
    if is_low_recovery(recovery):
        total += SCI_LOW_RECOVERY_DECAY
    if days_since_training is None or days_since_training >= SCI_INACTIVITY_DAYS:
        total += SCI_INACTIVITY_DECAY
    return min(SCI_DECAY_WEEKLY_CAP, total)


# --- Dual process ---


def is_dual_process_imbalanced(s1_xp: float, s2_xp: float) -> bool:
    """True when one system earned at least twice the other's weekly XP."""
    if s1_xp <= 0 and s2_xp <= 0:
        return False
    if s1_xp <= 0 or s2_xp <= 0:
        return True
    ratio = s1_xp / s2_xp
    return ratio >= DUAL_PROCESS_IMBALANCE_RATIO or ratio <= 1 / DUAL_PROCESS_IMBALANCE_RATIO


def dual_process_decay_target(s1_xp: float, s2_xp: float) -> float:
    return DUAL_PROCESS_DECAY if is_dual_process_imbalanced(s1_xp, s2_xp) else 0.0


# --- Cognitive-age regression ---


def is_performance_drop(window_start_value: float | None, current_avg: float | None) -> bool:
    if window_start_value is None or current_avg is None:
        return False
    return window_start_value - current_avg >= REGRESSION_DROP_THRESHOLD


def regression_triggered(
    drop_days: int,
    last_regression_at: date | None,
    today: date,
) -> bool:
    """+1 year once a drop has persisted 21 days, at most once per 31 days."""
    if drop_days < REGRESSION_PERSIST_DAYS:
        return False
    if last_regression_at is None:
        return True
    return days_between(last_regression_at, today) >= REGRESSION_COOLDOWN_DAYS
