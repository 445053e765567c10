"""State store contract and an in-memory implementation.

The engine never owns persistence. Callers read inputs through a
MetricsRepository and write updated state back through it. Mutable records
(decay tracking, training capacity) are written with compare-and-swap on
their version so racing writers cannot double-apply decay.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from neuroloop.errors import ErrorCode, NeuroloopError, StaleStateError
from neuroloop.models import (
    AESession,
    CognitiveAgeBaseline,
    CognitiveAgeState,
    DailySnapshot,
    DecayTracking,
    RecoveryState,
    RRIRecord,
    S2GameResult,
    SkillVector,
    TaskCompletion,
    TrainingCapacityState,
    UserProfile,
    WearableSnapshot,
    WeeklyActivity,
)
from neuroloop.temporal import medium_period_start

logger = logging.getLogger("neuroloop")


class ActivityEntry(BaseModel):
    """A logged detox/walk block or a game XP award."""

    at: datetime
    detox_minutes: float = 0.0
    walk_minutes: float = 0.0
    s1_xp: float = 0.0
    s2_xp: float = 0.0


@runtime_checkable
class MetricsRepository(Protocol):
    """Protocol for per-user metric state stores."""

    def list_user_ids(self) -> list[str]:
        """All users the daily jobs should visit."""
        ...

    def get_profile(self, user_id: str) -> UserProfile:
        """Plan id, onboarding date and age. Raises NOT_FOUND for unknown users."""
        ...

    def get_skill_vector(self, user_id: str) -> SkillVector:
        ...

    def save_skill_vector(self, user_id: str, skills: SkillVector) -> None:
        ...

    def get_baseline_skills(self, user_id: str) -> SkillVector | None:
        ...

    def get_recovery_state(self, user_id: str) -> RecoveryState | None:
        ...

    def save_recovery_state(self, user_id: str, state: RecoveryState) -> None:
        ...

    def get_rri(self, user_id: str) -> RRIRecord | None:
        ...

    def get_weekly_activity(self, user_id: str, now: datetime) -> WeeklyActivity:
        """Detox, walk and XP totals for the 7 days before now."""
        ...

    def add_activity(self, user_id: str, entry: ActivityEntry) -> None:
        """Append one detox/walk block or XP award."""
        ...

    def get_decay_tracking(self, user_id: str) -> DecayTracking:
        ...

    def save_decay_tracking(self, user_id: str, state: DecayTracking, expected_version: int) -> None:
        """Write only if the stored version still equals expected_version."""
        ...

    def get_training_capacity(self, user_id: str) -> TrainingCapacityState | None:
        ...

    def save_training_capacity(self, user_id: str, state: TrainingCapacityState, expected_version: int) -> None:
        ...

    def get_ae_sessions(self, user_id: str) -> list[AESession]:
        ...

    def get_wearable_snapshot(self, user_id: str) -> WearableSnapshot | None:
        ...

    def get_s2_games(self, user_id: str) -> list[S2GameResult]:
        ...

    def get_task_completions(self, user_id: str) -> list[TaskCompletion]:
        ...

    def get_cognitive_age_baseline(self, user_id: str) -> CognitiveAgeBaseline | None:
        ...

    def get_daily_snapshots(self, user_id: str) -> list[DailySnapshot]:
        ...

    def get_cognitive_age_state(self, user_id: str) -> CognitiveAgeState | None:
        ...

    def save_cognitive_age(self, user_id: str, day: date, result: dict[str, Any], state: CognitiveAgeState) -> None:
        """Upsert keyed by user + day."""
        ...

    def save_metric_snapshot(self, user_id: str, day: date, values: dict[str, Any]) -> None:
        """Upsert keyed by user + day."""
        ...

    def prune_activity(self, user_id: str, before: datetime, keep_days: int = 30) -> int:
        """Drop activity older than keep_days before `before`. Returns count removed."""
        ...


# --- In-memory implementation ---


class UserData(BaseModel):
    """Everything the in-memory store holds for one user."""

    profile: UserProfile
    skills: SkillVector = Field(default_factory=SkillVector)
    baseline_skills: SkillVector | None = None
    recovery: RecoveryState | None = None
    rri: RRIRecord | None = None
    activity: list[ActivityEntry] = Field(default_factory=list)
    decay: DecayTracking = Field(default_factory=DecayTracking)
    training_capacity: TrainingCapacityState | None = None
    ae_sessions: list[AESession] = Field(default_factory=list)
    wearable: WearableSnapshot | None = None
    s2_games: list[S2GameResult] = Field(default_factory=list)
    tasks: list[TaskCompletion] = Field(default_factory=list)
    cognitive_age_baseline: CognitiveAgeBaseline | None = None
    daily_snapshots: list[DailySnapshot] = Field(default_factory=list)
    cognitive_age_state: CognitiveAgeState | None = None
    cognitive_age_results: dict[date, dict[str, Any]] = Field(default_factory=dict)
    metric_snapshots: dict[date, dict[str, Any]] = Field(default_factory=dict)


class InMemoryMetricsRepository:
    """Dict-backed MetricsRepository for tests, the CLI and local experiments."""

    def __init__(self, users: dict[str, UserData] | None = None) -> None:
        self._users: dict[str, UserData] = dict(users or {})

    def add_user(self, data: UserData) -> None:
        self._users[data.profile.user_id] = data

    def user(self, user_id: str) -> UserData:
        try:
            return self._users[user_id]
        except KeyError:
            raise NeuroloopError(ErrorCode.NOT_FOUND, f"Unknown user: {user_id}", {"user_id": user_id}) from None

    def list_user_ids(self) -> list[str]:
        return sorted(self._users)

    def get_profile(self, user_id: str) -> UserProfile:
        return self.user(user_id).profile

    def get_skill_vector(self, user_id: str) -> SkillVector:
        return self.user(user_id).skills

    def save_skill_vector(self, user_id: str, skills: SkillVector) -> None:
        self.user(user_id).skills = skills

    def get_baseline_skills(self, user_id: str) -> SkillVector | None:
        return self.user(user_id).baseline_skills

    def get_recovery_state(self, user_id: str) -> RecoveryState | None:
        return self.user(user_id).recovery

    def save_recovery_state(self, user_id: str, state: RecoveryState) -> None:
        self.user(user_id).recovery = state

    def get_rri(self, user_id: str) -> RRIRecord | None:
        return self.user(user_id).rri

    def get_weekly_activity(self, user_id: str, now: datetime) -> WeeklyActivity:
        data = self.user(user_id)
        start = medium_period_start(now)
        recent = [a for a in data.activity if start <= a.at <= now]
        trained = [a.at for a in data.activity if (a.s1_xp > 0 or a.s2_xp > 0) and a.at <= now]
        return WeeklyActivity(
            detox_minutes=sum(a.detox_minutes for a in recent),
            walk_minutes=sum(a.walk_minutes for a in recent),
            s1_xp=sum(a.s1_xp for a in recent),
            s2_xp=sum(a.s2_xp for a in recent),
            last_training_at=max(trained) if trained else None,
        )

    def add_activity(self, user_id: str, entry: ActivityEntry) -> None:
        self.user(user_id).activity.append(entry)

    def get_decay_tracking(self, user_id: str) -> DecayTracking:
        return self.user(user_id).decay

    def save_decay_tracking(self, user_id: str, state: DecayTracking, expected_version: int) -> None:
        data = self.user(user_id)
        if data.decay.version != expected_version:
            raise StaleStateError(user_id, "decay_tracking", expected_version, data.decay.version)
        data.decay = state

    def get_training_capacity(self, user_id: str) -> TrainingCapacityState | None:
        return self.user(user_id).training_capacity

    def save_training_capacity(self, user_id: str, state: TrainingCapacityState, expected_version: int) -> None:
        data = self.user(user_id)
        current = data.training_capacity.version if data.training_capacity is not None else 0
        if current != expected_version:
            raise StaleStateError(user_id, "training_capacity", expected_version, current)
        data.training_capacity = state

    def get_ae_sessions(self, user_id: str) -> list[AESession]:
        return list(self.user(user_id).ae_sessions)

    def get_wearable_snapshot(self, user_id: str) -> WearableSnapshot | None:
        return self.user(user_id).wearable

    def get_s2_games(self, user_id: str) -> list[S2GameResult]:
        return sorted(self.user(user_id).s2_games, key=lambda g: g.played_at)

    def get_task_completions(self, user_id: str) -> list[TaskCompletion]:
        return list(self.user(user_id).tasks)

    def get_cognitive_age_baseline(self, user_id: str) -> CognitiveAgeBaseline | None:
        return self.user(user_id).cognitive_age_baseline

    def get_daily_snapshots(self, user_id: str) -> list[DailySnapshot]:
        return sorted(self.user(user_id).daily_snapshots, key=lambda s: s.snapshot_date)

    def get_cognitive_age_state(self, user_id: str) -> CognitiveAgeState | None:
        return self.user(user_id).cognitive_age_state

    def save_cognitive_age(self, user_id: str, day: date, result: dict[str, Any], state: CognitiveAgeState) -> None:
        data = self.user(user_id)
        data.cognitive_age_results[day] = result
        data.cognitive_age_state = state

    def save_metric_snapshot(self, user_id: str, day: date, values: dict[str, Any]) -> None:
        self.user(user_id).metric_snapshots[day] = values

    def prune_activity(self, user_id: str, before: datetime, keep_days: int = 30) -> int:
        """Drop activity entries older than keep_days before `before`. Returns count removed."""
        data = self.user(user_id)
        cutoff = before - timedelta(days=keep_days)
        kept = [a for a in data.activity if a.at >= cutoff]
        removed = len(data.activity) - len(kept)
        data.activity = kept
        if removed:
            logger.debug("Pruned %d activity entries for %s", removed, user_id)
        return removed
