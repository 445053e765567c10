"""Daily refresh: load one user's state, run every engine, write state back.

This is the orchestration a UI data layer or cron job would otherwise do by
hand. Engine calls stay pure; this module owns the load/compute/store cycle
and the compare-and-swap retry when two refreshes race on the same user.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable

from neuroloop.cognitive_age import MAX_AGE_DELTA, calculate_cognitive_age
from neuroloop.config import Config
from neuroloop.decay import tracker
from neuroloop.errors import StaleStateError
from neuroloop.guidance import GuidanceResult, aggregate_sessions, compute_guidance
from neuroloop.logging_setup import current_user
from neuroloop.metrics.capacity import OptimalRange, advance_training_capacity, get_dynamic_optimal_range
from neuroloop.metrics.network import SCIResult, calculate_sci
from neuroloop.metrics.reasoning import RQResult, calculate_rq
from neuroloop.metrics.recovery import (
    RecoveryInputs,
    RecoveryResolution,
    apply_recovery_action,
    initialize_recovery_baseline,
    resolve_effective_recovery,
    select_recovery_model,
)
from neuroloop.metrics.scores import (
    DualProcessBalance,
    SharpnessFormula,
    apply_session_xp,
    calculate_dual_process_balance,
    calculate_physio_component,
    calculate_readiness,
    calculate_sharpness,
    classify_readiness,
    is_system1,
    route_xp,
)
from neuroloop.models import (
    DecayTracking,
    RecoveryModel,
    RecoveryState,
    SkillVector,
    TrainingCapacityState,
    WeeklyActivity,
)
from neuroloop.plans import get_plan
from neuroloop.repository import ActivityEntry, MetricsRepository
from neuroloop.suggestions import SuggestionSet, build_context, prioritize_suggestions
from neuroloop.temporal import days_between, week_start
from neuroloop.utils import clamp, round1

logger = logging.getLogger("neuroloop")

_MAX_WRITE_ATTEMPTS = 3


@dataclass
class DashboardSnapshot:
    """Everything the dashboard shows for one user on one day."""
    user_id: str
    plan_id: str
    computed_at: datetime
    recovery: RecoveryResolution
    skills: SkillVector
    sharpness: int
    readiness: int
    physio: float | None
    dual_process: DualProcessBalance
    rq: RQResult
    sci: SCIResult
    training_capacity: float
    optimal_range: OptimalRange
    guidance: GuidanceResult
    suggestions: SuggestionSet
    cognitive_age: float | None = None
    decay: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Flat summary used for metric snapshots and CLI output."""
        top = self.suggestions.top
        return {
            "user_id": self.user_id,
            "plan": self.plan_id,
            "recovery": self.recovery.value,
            "recovery_source": self.recovery.source,
            "sharpness": self.sharpness,
            "readiness": self.readiness,
            "readiness_level": classify_readiness(self.readiness),
            "physio": self.physio,
            "dual_process": self.dual_process.score,
            "rq": self.rq.rq,
            "rq_decaying": self.rq.is_decaying,
            "sci": self.sci.total,
            "sci_level": self.sci.level,
            "training_capacity": self.training_capacity,
            "optimal_range": [self.optimal_range.min, self.optimal_range.max],
            "suggest_upgrade": self.optimal_range.suggest_upgrade,
            "suggested_game": self.guidance.suggested_game.value,
            "guidance_reason": self.guidance.reason,
            "difficulty": self.guidance.forced_difficulty.value,
            "difficulty_reasons": list(self.guidance.difficulty_reasons),
            "can_upgrade": self.guidance.can_upgrade,
            "cognitive_age": self.cognitive_age,
            "top_suggestion": top.id if top else None,
            "decay": dict(self.decay),
        }


class MetricsService:
    """Runs the daily metric refresh against a MetricsRepository."""

    def __init__(self, repo: MetricsRepository, config: Config | None = None) -> None:
        self._repo = repo
        self._config = config or Config()

    # --- Decay state ---

    def _update_decay(self, user_id: str, transition: Callable[[DecayTracking], DecayTracking]) -> DecayTracking:
        """Apply a transition to stored decay tracking, retrying on a lost compare-and-swap."""
        attempt = 0
        while True:
            attempt += 1
            loaded = self._repo.get_decay_tracking(user_id)
            updated = transition(loaded)
            if updated is loaded:
                return loaded
            try:
                self._repo.save_decay_tracking(user_id, updated, expected_version=loaded.version)
                return updated
            except StaleStateError:
                if attempt == _MAX_WRITE_ATTEMPTS:
                    raise
                logger.warning("Decay tracking for %s changed concurrently, retrying (%d)", user_id, attempt)

    def _advance_decay(
        self,
        user_id: str,
        state: DecayTracking,
        recovery: float,
        skills: SkillVector,
        weekly: WeeklyActivity,
        now: datetime,
    ) -> DecayTracking:
        today = now.date()
        week = week_start(today)
        days_inactive = tracker.days_since_training(state, now)
        if weekly.last_training_at is not None:
            days_inactive = min(days_inactive, max(0, days_between(weekly.last_training_at, now)))

        new = tracker.record_daily_recovery(state, recovery, today)
        new = tracker.track_performance_window(new, skills.performance_avg, today)
        new, _ = tracker.apply_readiness_decay(new, week)
        new, _ = tracker.apply_sci_decay(new, week, recovery, days_inactive)
        new, _ = tracker.apply_dual_process_decay(new, week, weekly.s1_xp, weekly.s2_xp)
        new, years = tracker.apply_cognitive_age_regression(new, today)
        if years:
            logger.info("User %s gained %d regression year(s)", user_id, years)
        return new

    # --- Event recording ---

    def record_session(
        self,
        user_id: str,
        gym_area: str | None,
        thinking_mode: str,
        xp: float,
        at: datetime,
    ) -> SkillVector:
        """Apply one finished game session.

        Routes the XP to a skill, raises that skill, logs the XP as S1 or S2
        activity and stamps the skill's last-XP time so inactivity decay stops.
        """
        token = current_user.set(user_id)
        try:
            skill = route_xp(gym_area, thinking_mode)
            skills = apply_session_xp(self._repo.get_skill_vector(user_id), skill, xp)
            self._repo.save_skill_vector(user_id, skills)
            if is_system1(skill):
                entry = ActivityEntry(at=at, s1_xp=xp)
            else:
                entry = ActivityEntry(at=at, s2_xp=xp)
            self._repo.add_activity(user_id, entry)
            self._update_decay(user_id, lambda state: tracker.record_skill_xp(state, skill, at))
            logger.info("Session for %s: %s XP to %s", user_id, xp, skill.value)
            return skills
        finally:
            current_user.reset(token)

    def record_recovery_action(
        self,
        user_id: str,
        detox_minutes: float,
        walk_minutes: float,
        at: datetime,
    ) -> RecoveryState | None:
        """Log a detox/walk block.

        Users on the continuous model also get their stored recovery raised,
        seeded from the onboarding RRI on first use. Returns the new recovery
        state, or None for users on the weekly model.
        """
        cfg = self._config.recovery
        self._repo.add_activity(user_id, ActivityEntry(at=at, detox_minutes=detox_minutes, walk_minutes=walk_minutes))

        state = self._repo.get_recovery_state(user_id)
        profile = self._repo.get_profile(user_id)
        if select_recovery_model(state, profile.onboarded_at, cfg) != RecoveryModel.CONTINUOUS_DECAY:
            return None
        if state is None or not state.has_recovery_baseline:
            rri = self._repo.get_rri(user_id)
            state = initialize_recovery_baseline(rri.value if rri is not None else None, at)
        updated = apply_recovery_action(state, detox_minutes, walk_minutes, at, cfg.night_weighting)
        self._repo.save_recovery_state(user_id, updated)
        return updated

    # --- Refresh ---

    def daily_refresh(self, user_id: str, now: datetime) -> DashboardSnapshot:
        """Compute the dashboard for one user and persist updated state.

        Safe to call repeatedly on the same day: decay, TC and regression
        updates are guarded so nothing is applied twice.
        """
        token = current_user.set(user_id)
        try:
            return self._refresh(user_id, now)
        finally:
            current_user.reset(token)

    def _refresh(self, user_id: str, now: datetime) -> DashboardSnapshot:
        cfg = self._config
        repo = self._repo
        today = now.date()

        profile = repo.get_profile(user_id)
        plan = get_plan(profile.plan_id, strict=cfg.engine.strict_plans, fallback=cfg.engine.default_plan)
        skills = repo.get_skill_vector(user_id)
        baseline = repo.get_baseline_skills(user_id)
        weekly = repo.get_weekly_activity(user_id, now)

        # Recovery
        rec_state = repo.get_recovery_state(user_id)
        model = select_recovery_model(rec_state, profile.onboarded_at, cfg.recovery)
        recovery = resolve_effective_recovery(
            model,
            RecoveryInputs(
                state=rec_state,
                weekly=weekly,
                detox_target=plan.detox_target_minutes,
                rri=repo.get_rri(user_id),
            ),
            now,
            night_weighting=cfg.recovery.night_weighting,
            neutral_default=cfg.recovery.neutral_default,
            rri_valid_hours=cfg.recovery.rri_valid_hours,
        )
        logger.debug("Recovery %.1f from %s (%s model)", recovery.value, recovery.source, model.value)

        # Decay
        decay_state = self._update_decay(
            user_id, lambda state: self._advance_decay(user_id, state, recovery.value, skills, weekly, now)
        )
        adjustments = tracker.compute_decay_adjustments(
            decay_state,
            skills,
            baseline,
            now,
            week_start(today),
            reference_date=profile.onboarded_at,
        )
        effective_skills = adjustments.skills

        # State scores
        physio = calculate_physio_component(repo.get_wearable_snapshot(user_id))
        sharpness = calculate_sharpness(
            effective_skills,
            recovery.value,
            SharpnessFormula(cfg.engine.sharpness_formula),
        )
        readiness = int(clamp(calculate_readiness(effective_skills, recovery.value, physio) - adjustments.readiness))
        balance = calculate_dual_process_balance(effective_skills.s1, effective_skills.s2)
        if adjustments.dual_process:
            balance.score = clamp(balance.score - adjustments.dual_process)

        # Reasoning quality
        s2_games = repo.get_s2_games(user_id)
        tasks = repo.get_task_completions(user_id)
        rq = calculate_rq(
            effective_skills.s2,
            [g.score for g in s2_games],
            tasks,
            s2_games[-1].played_at if s2_games else None,
            max((t.completed_at for t in tasks), default=None),
            now,
        )

        # Network score
        sci = calculate_sci(
            effective_skills,
            weekly.games_xp,
            plan.weekly_xp_target,
            weekly.detox_minutes,
            plan.detox_target_minutes,
            decay=adjustments.sci,
        )

        # Training capacity
        tc_state = self._store_training_capacity(user_id, effective_skills, weekly.games_xp, recovery.value,
                                                 weekly.last_training_at, plan.tc_cap, now)
        tc_value = tc_state.value if tc_state.value is not None else 0.0
        optimal = get_dynamic_optimal_range(tc_value, plan.tc_cap, plan.weekly_xp_target)

        # Guidance and suggestions
        aggregates = aggregate_sessions(repo.get_ae_sessions(user_id), now)
        guidance = compute_guidance(aggregates, plan, tc_value, recovery.value, now)
        suggestions = prioritize_suggestions(
            build_context(recovery.value, weekly.games_xp, weekly.detox_minutes, plan, rq.is_decaying)
        )

        cognitive_age = None
        if baseline is not None and profile.chronological_age is not None:
            age = calculate_cognitive_age(effective_skills, baseline, profile.chronological_age, rq.rq)
            cognitive_age = round1(clamp(
                age + adjustments.regression_years,
                profile.chronological_age - MAX_AGE_DELTA,
                profile.chronological_age + MAX_AGE_DELTA,
            ))

        snapshot = DashboardSnapshot(
            user_id=user_id,
            plan_id=plan.plan_id.value,
            computed_at=now,
            recovery=recovery,
            skills=effective_skills,
            sharpness=sharpness,
            readiness=readiness,
            physio=physio,
            dual_process=balance,
            rq=rq,
            sci=sci,
            training_capacity=tc_value,
            optimal_range=optimal,
            guidance=guidance,
            suggestions=suggestions,
            cognitive_age=cognitive_age,
            decay={
                "readiness": adjustments.readiness,
                "sci": adjustments.sci,
                "dual_process": adjustments.dual_process,
                "regression_years": adjustments.regression_years,
                "skills": {k.value: v for k, v in adjustments.skill_decay.items()},
            },
        )
        repo.save_metric_snapshot(user_id, today, snapshot.as_dict())
        logger.info("Refreshed metrics for %s: sharpness=%d readiness=%d sci=%d", user_id, sharpness, readiness, sci.total)
        return snapshot

    def _store_training_capacity(
        self,
        user_id: str,
        skills: SkillVector,
        weekly_xp: float,
        avg_rec: float,
        last_training_at: datetime | None,
        plan_cap: float,
        now: datetime,
    ) -> TrainingCapacityState:
        days_since = None if last_training_at is None else max(0, days_between(last_training_at, now))
        attempt = 0
        while True:
            attempt += 1
            loaded = self._repo.get_training_capacity(user_id)
            updated = advance_training_capacity(loaded, skills, weekly_xp, avg_rec, days_since, plan_cap, now.date())
            if updated is loaded:
                return loaded
            try:
                self._repo.save_training_capacity(
                    user_id, updated, expected_version=loaded.version if loaded is not None else 0
                )
                return updated
            except StaleStateError:
                if attempt == _MAX_WRITE_ATTEMPTS:
                    raise
                logger.warning("Training capacity for %s changed concurrently, retrying (%d)", user_id, attempt)


def snapshot_to_dict(snapshot: DashboardSnapshot) -> dict[str, Any]:
    """Full nested dict of a snapshot, including every breakdown."""
    data = asdict(snapshot)
    data["skills"] = snapshot.skills.model_dump()
    data["suggestions"] = [s.model_dump() for s in snapshot.suggestions.suggestions]
    return data
