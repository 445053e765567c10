"""Core data models for the neuroloop cognitive metrics engine.

Records here are what a state store persists or hands to the engine. Result
types produced by individual engines live next to the code that builds them.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field, field_validator

from neuroloop.utils import clamp

NEUTRAL_SKILL = 50.0


# --- Enums ---


class PlanId(str, Enum):
    """Subscription plan tiers, ordered from most to least conservative."""

    LIGHT = "light"
    EXPERT = "expert"
    SUPERHUMAN = "superhuman"


class Skill(str, Enum):
    """The four persisted skill scores."""

    AE = "AE"  # Attentional Efficiency
    RA = "RA"  # Rapid Association
    CT = "CT"  # Critical Thinking
    IN = "IN"  # Insight


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AEGame(str, Enum):
    """Attentional-Efficiency game family."""

    ORBIT_LOCK = "orbit_lock"        # stability
    TRIAGE_SPRINT = "triage_sprint"  # precision
    FOCUS_SWITCH = "focus_switch"    # flexibility


class TaskType(str, Enum):
    PODCAST = "podcast"
    ARTICLE = "article"
    BOOK = "book"


class RecoveryModel(str, Enum):
    """Recovery model generations."""

    WEEKLY = "weekly"
    CONTINUOUS_DECAY = "continuous_decay"


class RegressionRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# --- Skills ---


class SkillVector(BaseModel):
    """Four skill scores, each clamped to [0, 100]. Missing values are neutral (50)."""

    ae: float = Field(default=NEUTRAL_SKILL, alias="AE")
    ra: float = Field(default=NEUTRAL_SKILL, alias="RA")
    ct: float = Field(default=NEUTRAL_SKILL, alias="CT")
    in_: float = Field(default=NEUTRAL_SKILL, alias="IN")

    model_config = {"populate_by_name": True}

    @field_validator("ae", "ra", "ct", "in_", mode="before")
    @classmethod
    def _clamp_skill(cls, v: float | None) -> float:
        if v is None:
            return NEUTRAL_SKILL
        return clamp(float(v))

    @computed_field
    @property
    def s1(self) -> float:
        """System-1 (fast) aggregate."""
        return (self.ae + self.ra) / 2

    @computed_field
    @property
    def s2(self) -> float:
        """System-2 (slow) aggregate."""
        return (self.ct + self.in_) / 2

    @computed_field
    @property
    def performance_avg(self) -> float:
        """Five-way average AE, RA, CT, IN, S2 (S2 re-weights CT/IN)."""
        return (self.ae + self.ra + self.ct + self.in_ + self.s2) / 5

    def get(self, skill: Skill) -> float:
        return {
            Skill.AE: self.ae,
            Skill.RA: self.ra,
            Skill.CT: self.ct,
            Skill.IN: self.in_,
        }[skill]

    def with_skill(self, skill: Skill, value: float) -> "SkillVector":
        """Return a copy with one skill replaced (clamped)."""
        data = {"ae": self.ae, "ra": self.ra, "ct": self.ct, "in_": self.in_}
        data[_SKILL_FIELDS[skill]] = value
        return SkillVector(**data)


_SKILL_FIELDS: dict[Skill, str] = {
    Skill.AE: "ae",
    Skill.RA: "ra",
    Skill.CT: "ct",
    Skill.IN: "in_",
}


# --- Recovery ---


class RecoveryState(BaseModel):
    """Continuous-decay recovery fields."""

    rec_value: float | None = None
    rec_last_ts: datetime | None = None
    has_recovery_baseline: bool = False


class RRIRecord(BaseModel):
    """Recovery Readiness Init estimate captured during onboarding."""

    value: float
    set_at: datetime


class WeeklyActivity(BaseModel):
    """Last-7-day behavioural totals."""

    detox_minutes: float = 0.0
    walk_minutes: float = 0.0
    s1_xp: float = 0.0
    s2_xp: float = 0.0
    last_training_at: datetime | None = None

    @computed_field
    @property
    def games_xp(self) -> float:
        return self.s1_xp + self.s2_xp


class WearableSnapshot(BaseModel):
    """Latest wearable readings. Every field is optional."""

    hrv_ms: float | None = None
    resting_hr: float | None = None
    sleep_duration_min: float | None = None
    sleep_efficiency: float | None = None  # 0-1 or percent


class TaskCompletion(BaseModel):
    type: TaskType
    completed_at: datetime


# --- Game guidance ---


class AESession(BaseModel):
    """One stored AE game session, with raw (un-normalised) metrics."""

    game: AEGame
    played_at: datetime
    difficulty: Difficulty = Difficulty.MEDIUM
    false_alarm_rate: float | None = None
    hit_rate: float | None = None
    rt_variability_ms: float | None = None
    degradation_slope: float | None = None
    time_in_band_pct: float | None = None
    switch_latency_ms: float | None = None
    perseveration_rate: float | None = None


class SessionAggregates(BaseModel):
    """7-day rolling averages for the AE game family. Built fresh per computation."""

    session_count: int = 0
    last_game: AEGame | None = None
    false_alarm_rate: float | None = None
    hit_rate: float | None = None
    rt_variability_norm: float | None = None
    degradation_slope_norm: float | None = None
    time_in_band: float | None = None  # fraction 0-1
    switch_latency_norm: float | None = None
    perseveration_rate: float | None = None
    current_difficulty: Difficulty | None = None
    sessions_at_current_difficulty: int = 0
    last_upgrade_at: datetime | None = None


# --- Persisted state ---


class DecayTracking(BaseModel):
    """Per-user decay counters. Transitions return new copies with version + 1."""

    consecutive_low_rec_days: int = 0
    last_rec_check_date: date | None = None
    skill_last_xp: dict[Skill, datetime] = Field(default_factory=dict)
    # Weekly accumulators, each tagged with the Monday it applies to
    readiness_decay_applied: float = 0.0
    readiness_decay_week: date | None = None
    sci_decay_applied: float = 0.0
    sci_decay_week: date | None = None
    dual_process_decay_applied: float = 0.0
    dual_process_decay_week: date | None = None
    # Cognitive-age regression window
    perf_window_start_value: float | None = None
    perf_window_start_date: date | None = None
    perf_drop_days: int = 0
    perf_last_check_date: date | None = None
    last_regression_at: date | None = None
    regression_years: int = 0
    version: int = 0


class TrainingCapacityState(BaseModel):
    value: float | None = None
    previous_value: float | None = None
    last_updated_at: date | None = None
    version: int = 0


class CognitiveAgeBaseline(BaseModel):
    """Onboarding snapshot the cognitive-age job measures against."""

    chronological_age: float
    baseline_perf: float
    baseline_rq: float | None = None
    baseline_skills: SkillVector | None = None
    onboarded_at: date | None = None


class DailySnapshot(BaseModel):
    """One day of skill values as written by the daily snapshot job."""

    snapshot_date: date
    ae: float | None = None
    ra: float | None = None
    ct: float | None = None
    in_: float | None = None
    reasoning_quality: float | None = None
    sessions: int = 0


class CognitiveAgeState(BaseModel):
    """Carried between daily cognitive-age runs."""

    regression_streak_days: int = 0
    cumulative_regression_years: int = 0
    last_regression_trigger: date | None = None
    last_computed_date: date | None = None


# --- Suggestions ---


class Suggestion(BaseModel):
    """A single call-to-action. Lower priority number is more urgent."""

    id: str
    priority: int
    urgency: str  # "critical", "high", "medium", "low"
    headline: str
    body: str
    action: str | None = None
    progress: float | None = None


# --- User context ---


class UserProfile(BaseModel):
    """Per-user context the engine needs besides metrics."""

    user_id: str
    plan_id: str = PlanId.LIGHT.value
    onboarded_at: date | None = None
    chronological_age: float | None = None


class S2GameResult(BaseModel):
    score: float
    played_at: datetime
