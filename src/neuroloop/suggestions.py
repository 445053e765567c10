"""Suggestion prioritizer: "what should the user do next".

Rules are checked independently in a fixed order, so several can match at
once. All matches are returned sorted by priority (lower is more urgent)
and the first becomes the top call-to-action. on_track only fires when
nothing else matched.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from neuroloop.models import Suggestion
from neuroloop.plans import PlanConfig

CRITICAL_RECOVERY = 30.0
LOW_RECOVERY = 45.0
S2_OPPORTUNITY_RECOVERY = 70.0
BEHIND_PROGRESS = 50.0
CATCHUP_PROGRESS = 80.0
XP_PER_GAME = 20
NEUTRAL_RECOVERY = 50.0


@dataclass
class SuggestionContext:
    recovery: float | None
    weekly_progress_pct: float
    xp_remaining: float
    detox_complete: bool
    detox_minutes_remaining: int
    rq_decaying: bool = False


@dataclass
class SuggestionSet:
    suggestions: list[Suggestion] = field(default_factory=list)

    @property
    def top(self) -> Suggestion | None:
        return self.suggestions[0] if self.suggestions else None


def build_context(
    recovery: float | None,
    weekly_games_xp: float,
    weekly_detox_minutes: float,
    plan: PlanConfig,
    rq_decaying: bool = False,
) -> SuggestionContext:
    """Derive progress and remaining amounts from weekly totals and the plan."""
    target = plan.weekly_xp_target
    progress = weekly_games_xp / target * 100 if target > 0 else 0.0
    detox_remaining = max(0, round(plan.detox_target_minutes - weekly_detox_minutes))
    return SuggestionContext(
        recovery=recovery,
        weekly_progress_pct=progress,
        xp_remaining=max(0.0, target - weekly_games_xp),
        detox_complete=detox_remaining == 0,
        detox_minutes_remaining=detox_remaining,
        rq_decaying=rq_decaying,
    )


def _games_needed(xp_remaining: float) -> int:
    return math.ceil(xp_remaining / XP_PER_GAME)


def prioritize_suggestions(ctx: SuggestionContext) -> SuggestionSet:
    rec = NEUTRAL_RECOVERY if ctx.recovery is None else ctx.recovery
    progress = ctx.weekly_progress_pct
    found: list[Suggestion] = []

    if rec < CRITICAL_RECOVERY:
        found.append(Suggestion(
            id="recovery_critical",
            priority=1,
            urgency="critical",
            headline="Recovery is critically low",
            body="Skip training today. A detox block or a walk will restore more than another session.",
            action="start_detox",
        ))
    elif rec < LOW_RECOVERY:
        found.append(Suggestion(
            id="recovery_low",
            priority=2,
            urgency="high",
            headline="Recovery is low",
            body="Prioritise recovery before pushing training volume.",
            action="start_detox",
        ))

    if rec >= LOW_RECOVERY and progress < BEHIND_PROGRESS and ctx.xp_remaining > 0:
        games = _games_needed(ctx.xp_remaining)
        found.append(Suggestion(
            id="training_behind",
            priority=3,
            urgency="high",
            headline="Training is behind this week",
            body=f"About {games} more game{'s' if games != 1 else ''} to reach your weekly target.",
            action="start_training",
            progress=progress,
        ))
    elif rec >= LOW_RECOVERY and BEHIND_PROGRESS <= progress < CATCHUP_PROGRESS:
        games = _games_needed(ctx.xp_remaining)
        found.append(Suggestion(
            id="training_catchup",
            priority=4,
            urgency="medium",
            headline="Catch up on training",
            body=f"{games} game{'s' if games != 1 else ''} would put you on track.",
            action="start_training",
            progress=progress,
        ))

    if rec >= LOW_RECOVERY and not ctx.detox_complete and ctx.detox_minutes_remaining > 0:
        found.append(Suggestion(
            id="detox_incomplete",
            priority=5,
            urgency="medium",
            headline="Detox goal not reached",
            body=f"{ctx.detox_minutes_remaining} detox minutes left this week.",
            action="start_detox",
        ))

    if rec >= S2_OPPORTUNITY_RECOVERY and progress < 100 and ctx.xp_remaining > 0:
        found.append(Suggestion(
            id="s2_opportunity",
            priority=6,
            urgency="low",
            headline="Good moment for deep reasoning",
            body="Recovery is high; a System-2 game gets the most out of it.",
            action="start_s2_game",
        ))

    if ctx.rq_decaying and rec >= CRITICAL_RECOVERY:
        found.append(Suggestion(
            id="rq_declining",
            priority=7,
            urgency="medium",
            headline="Reasoning Quality is declining",
            body="No reasoning game or task in two weeks. A podcast, article or S2 game stops the slide.",
            action="start_task",
        ))

    if progress >= 100:
        found.append(Suggestion(
            id="goal_reached",
            priority=8,
            urgency="low",
            headline="Weekly goal reached",
            body="Target met. Extra sessions are optional; recovery matters more now.",
            progress=progress,
        ))

    if not found and progress >= CATCHUP_PROGRESS:
        found.append(Suggestion(
            id="on_track",
            priority=9,
            urgency="low",
            headline="On track",
            body="Keep the current rhythm.",
            progress=progress,
        ))

    found.sort(key=lambda s: s.priority)
    return SuggestionSet(suggestions=found)
