"""Recovery models.

Two generations coexist:
- WEEKLY: detox + 0.5 x walk minutes over the last 7 days against a plan target.
- CONTINUOUS_DECAY: a stored value halving every 72h, raised by each logged
  detox/walk action.

Brand-new users with neither get the RRI (Recovery Readiness Init) estimate
from onboarding while it is still fresh, then a neutral default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from neuroloop.models import RecoveryModel, RecoveryState, RRIRecord, WeeklyActivity
from neuroloop.utils import clamp, round1

if TYPE_CHECKING:
    from neuroloop.config import RecoveryConfig

logger = logging.getLogger("neuroloop")

DEFAULT_DETOX_TARGET = 840
WALK_FACTOR = 0.5

REC_HALF_LIFE_HOURS = 72.0
REC_GAIN_FACTOR = 0.12

# Night hours (23:00-07:00) decay at a fraction of the daytime rate
NIGHT_START_HOUR = 23
NIGHT_END_HOUR = 7
NIGHT_DECAY_WEIGHT = 0.2

RRI_BASE = 35
RRI_MIN = 35
RRI_MAX = 55
RRI_DEFAULT = 45
RRI_VALID_HOURS = 72

NEUTRAL_RECOVERY = 50.0


# --- Weekly model ---


def calculate_recovery(
    weekly_detox_minutes: float,
    weekly_walk_minutes: float,
    detox_target: float = DEFAULT_DETOX_TARGET,
) -> float:
    """min(100, (detox + 0.5 x walk) / target x 100), one decimal. Target <= 0 gives 0."""
    if detox_target <= 0:
        return 0.0
    effective = max(0.0, weekly_detox_minutes or 0.0) + WALK_FACTOR * max(0.0, weekly_walk_minutes or 0.0)
    return round1(min(100.0, effective / detox_target * 100))


# --- Continuous-decay model ---


def _is_night(hour: int) -> bool:
    return hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR


def _next_boundary(cursor: datetime) -> datetime:
    day = cursor.date()
    candidates = (
        datetime.combine(day, time(NIGHT_END_HOUR), tzinfo=cursor.tzinfo),
        datetime.combine(day, time(NIGHT_START_HOUR), tzinfo=cursor.tzinfo),
        datetime.combine(day + timedelta(days=1), time(NIGHT_END_HOUR), tzinfo=cursor.tzinfo),
    )
    return next(c for c in candidates if c > cursor)


def elapsed_decay_hours(since: datetime, now: datetime, night_weighting: bool = False) -> float:
    """Hours between since and now, with night hours discounted when enabled."""
    if now <= since:
        return 0.0
    if not night_weighting:
        return (now - since).total_seconds() / 3600

    hours = 0.0
    cursor = since
    while cursor < now:
        seg_end = min(_next_boundary(cursor), now)
        seg_hours = (seg_end - cursor).total_seconds() / 3600
        hours += seg_hours * (NIGHT_DECAY_WEIGHT if _is_night(cursor.hour) else 1.0)
        cursor = seg_end
    return hours


def apply_recovery_decay(
    value: float,
    last_ts: datetime,
    now: datetime,
    night_weighting: bool = False,
) -> float:
    """value x 2^(-hours/72), one decimal."""
    hours = elapsed_decay_hours(last_ts, now, night_weighting)
    return round1(value * 2 ** (-hours / REC_HALF_LIFE_HOURS))


def get_current_recovery(
    state: RecoveryState | None,
    now: datetime,
    night_weighting: bool = False,
) -> float | None:
    """Decayed recovery, or None when no baseline has been initialised."""
    if state is None or not state.has_recovery_baseline:
        return None
    if state.rec_value is None or state.rec_last_ts is None:
        return None
    return clamp(apply_recovery_decay(state.rec_value, state.rec_last_ts, now, night_weighting))


def initialize_recovery_baseline(rri: float | None, now: datetime) -> RecoveryState:
    """Seed the continuous model from the onboarding RRI (clamped to 35-55)."""
    value = clamp(rri if rri is not None else RRI_DEFAULT, RRI_MIN, RRI_MAX)
    return RecoveryState(rec_value=value, rec_last_ts=now, has_recovery_baseline=True)


def apply_recovery_action(
    state: RecoveryState | None,
    detox_minutes: float,
    walk_minutes: float,
    now: datetime,
    night_weighting: bool = False,
) -> RecoveryState:
    """Decay to now, then add 0.12 x (detox + 0.5 x walk), capped at 100."""
    current = get_current_recovery(state, now, night_weighting)
    if current is None:
        current = float(RRI_DEFAULT)
    gain = REC_GAIN_FACTOR * (max(0.0, detox_minutes) + WALK_FACTOR * max(0.0, walk_minutes))
    return RecoveryState(
        rec_value=min(100.0, round1(current + gain)),
        rec_last_ts=now,
        has_recovery_baseline=True,
    )


# --- RRI ---


@dataclass
class RRIBreakdown:
    value: int
    sleep_bonus: int
    detox_bonus: int
    mental_bonus: int


def compute_rri(
    sleep_hours: float | None,
    detox_minutes: float | None,
    mental_state: str | None,
) -> RRIBreakdown:
    """35 + sleep/detox/mental bonuses, clamped to [35, 55].

    mental_state is one of "foggy", "tired", "ok", "clear", "very_clear".
    """
    sleep_bonus = 0
    if sleep_hours is not None:
        if sleep_hours >= 7:
            sleep_bonus = 8
        elif sleep_hours >= 6:
            sleep_bonus = 4

    detox_bonus = 0
    if detox_minutes is not None:
        if detox_minutes >= 60:
            detox_bonus = 6
        elif detox_minutes >= 30:
            detox_bonus = 3

    mental_bonus = {"clear": 4, "very_clear": 4, "ok": 2}.get(mental_state or "", 0)

    value = int(clamp(RRI_BASE + sleep_bonus + detox_bonus + mental_bonus, RRI_MIN, RRI_MAX))
    return RRIBreakdown(
        value=value,
        sleep_bonus=sleep_bonus,
        detox_bonus=detox_bonus,
        mental_bonus=mental_bonus,
    )


def is_rri_valid(record: RRIRecord | None, now: datetime, valid_hours: int = RRI_VALID_HOURS) -> bool:
    if record is None:
        return False
    age_hours = (now - record.set_at).total_seconds() / 3600
    return 0 <= age_hours <= valid_hours


# --- Model strategy ---


@dataclass
class RecoveryInputs:
    """Everything any recovery model might read for one user."""
    state: RecoveryState | None = None
    weekly: WeeklyActivity | None = None
    detox_target: float = DEFAULT_DETOX_TARGET
    rri: RRIRecord | None = None


@runtime_checkable
class RecoveryStrategy(Protocol):
    """A recovery model generation. Returns None when it has no data."""

    model: RecoveryModel

    def current(self, inputs: RecoveryInputs, now: datetime) -> float | None: ...


class WeeklyRecoveryModel:
    model = RecoveryModel.WEEKLY

    def current(self, inputs: RecoveryInputs, now: datetime) -> float | None:
        if inputs.weekly is None:
            return None
        return calculate_recovery(
            inputs.weekly.detox_minutes,
            inputs.weekly.walk_minutes,
            inputs.detox_target,
        )


class ContinuousDecayRecoveryModel:
    model = RecoveryModel.CONTINUOUS_DECAY

    def __init__(self, night_weighting: bool = False) -> None:
        self.night_weighting = night_weighting

    def current(self, inputs: RecoveryInputs, now: datetime) -> float | None:
        return get_current_recovery(inputs.state, now, self.night_weighting)


def get_recovery_strategy(model: RecoveryModel, night_weighting: bool = False) -> RecoveryStrategy:
    if model == RecoveryModel.CONTINUOUS_DECAY:
        return ContinuousDecayRecoveryModel(night_weighting=night_weighting)
    return WeeklyRecoveryModel()


def select_recovery_model(
    state: RecoveryState | None,
    onboarded_at: date | None,
    config: "RecoveryConfig",
) -> RecoveryModel:
    """Pick the recovery model for one user.

    A forced model in config wins. In "auto" mode a user already on the
    continuous model stays there, and users onboarded on or after the
    migration date start on it; everyone else keeps the weekly model.
    """
    if config.model == RecoveryModel.WEEKLY.value:
        return RecoveryModel.WEEKLY
    if config.model == RecoveryModel.CONTINUOUS_DECAY.value:
        return RecoveryModel.CONTINUOUS_DECAY
    if config.model != "auto":
        logger.warning("Unknown recovery.model %r, using auto selection", config.model)

    if state is not None and state.has_recovery_baseline:
        return RecoveryModel.CONTINUOUS_DECAY
    if config.migration_date and onboarded_at and onboarded_at >= config.migration_date:
        return RecoveryModel.CONTINUOUS_DECAY
    return RecoveryModel.WEEKLY


@dataclass
class RecoveryResolution:
    value: float
    source: str  # "weekly", "continuous_decay", "rri" or "default"
    model: RecoveryModel
    details: dict = field(default_factory=dict)


def resolve_effective_recovery(
    model: RecoveryModel,
    inputs: RecoveryInputs,
    now: datetime,
    night_weighting: bool = False,
    neutral_default: float = NEUTRAL_RECOVERY,
    rri_valid_hours: int = RRI_VALID_HOURS,
) -> RecoveryResolution:
    """Model value, then a fresh RRI, then the neutral default."""
    strategy = get_recovery_strategy(model, night_weighting)
    value = strategy.current(inputs, now)
    if value is not None:
        return RecoveryResolution(value=clamp(value), source=model.value, model=model)

    if inputs.rri is not None and is_rri_valid(inputs.rri, now, rri_valid_hours):
        return RecoveryResolution(
            value=clamp(inputs.rri.value),
            source="rri",
            model=model,
            details={"rri_set_at": inputs.rri.set_at.isoformat()},
        )

    return RecoveryResolution(value=neutral_default, source="default", model=model)
