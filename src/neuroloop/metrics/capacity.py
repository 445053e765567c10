"""Training Capacity (TC): a slow-moving ceiling on sustainable weekly XP.

TC grows with sustained weekly XP scaled by recovery, loses a fixed amount
after a week without XP, and always stays within [TC_FLOOR, plan cap].
Updates run at most once per calendar day.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from neuroloop.models import SkillVector, TrainingCapacityState
from neuroloop.utils import clamp, round1, round_half_up

logger = logging.getLogger("neuroloop")

TC_FLOOR = 30
TC_GROWTH_ALPHA = 0.06
TC_INACTIVITY_DECAY = 3
TC_INACTIVITY_DAYS = 7
TC_INIT_CAP_FRACTION = 0.6

OPTIMAL_MIN_FRACTION = 0.60
OPTIMAL_MAX_FRACTION = 0.85
# The range floor never exceeds this share of the range ceiling
OPTIMAL_MIN_TO_MAX_RATIO = 0.7
UPGRADE_THRESHOLD = 0.90

REC_MULT_MIN = 0.6
REC_MULT_MAX = 1.2
NEUTRAL_AVG_REC = 50.0


def initialize_training_capacity(skills: SkillVector, plan_cap: float) -> float:
    """Seed TC from (S1 + S2) / 2, bounded to [30, 60% of plan cap]."""
    upper = max(TC_FLOOR, round_half_up(plan_cap * TC_INIT_CAP_FRACTION))
    return float(clamp(round_half_up((skills.s1 + skills.s2) / 2), TC_FLOOR, upper))


def recovery_multiplier(avg_rec: float | None) -> float:
    """0.6 at REC 0, 0.9 at REC 50, 1.2 at REC 100."""
    rec = NEUTRAL_AVG_REC if avg_rec is None else avg_rec
    return clamp(0.6 + 0.006 * rec, REC_MULT_MIN, REC_MULT_MAX)


def update_training_capacity(
    current_tc: float,
    weekly_xp: float,
    avg_rec: float | None,
    days_since_last_xp: int | None,
    plan_cap: float,
) -> float:
    """One daily step: TC + 0.06 x min(XP, cap) x recMult - inactivity decay.

    days_since_last_xp of None means the user never earned XP and counts as inactive.
    """
    days = TC_INACTIVITY_DAYS if days_since_last_xp is None else days_since_last_xp
    capped_xp = min(max(0.0, weekly_xp), plan_cap)
    growth = TC_GROWTH_ALPHA * capped_xp * recovery_multiplier(avg_rec)
    decay = TC_INACTIVITY_DECAY if days >= TC_INACTIVITY_DAYS else 0
    return clamp(round1(current_tc + growth - decay), TC_FLOOR, plan_cap)


def advance_training_capacity(
    state: TrainingCapacityState | None,
    skills: SkillVector,
    weekly_xp: float,
    avg_rec: float | None,
    days_since_last_xp: int | None,
    plan_cap: float,
    today: date,
) -> TrainingCapacityState:
    """Return the next TC state, initialising when empty.

    Returns the same state unchanged when it was already updated today, so
    repeated runs on one day never compound growth.
    """
    if state is not None and state.last_updated_at == today and state.value is not None:
        return state

    version = state.version if state is not None else 0
    if state is None or state.value is None:
        value = initialize_training_capacity(skills, plan_cap)
        logger.debug("Initialised training capacity at %.1f (cap %s)", value, plan_cap)
        return TrainingCapacityState(
            value=value,
            previous_value=None,
            last_updated_at=today,
            version=version + 1,
        )

    value = update_training_capacity(state.value, weekly_xp, avg_rec, days_since_last_xp, plan_cap)
    return TrainingCapacityState(
        value=value,
        previous_value=state.value,
        last_updated_at=today,
        version=version + 1,
    )


@dataclass
class OptimalRange:
    min: int
    max: int
    suggest_upgrade: bool


def get_dynamic_optimal_range(
    tc: float,
    plan_cap: float,
    weekly_xp_target: float | None = None,
) -> OptimalRange:
    """Weekly XP sweet spot: 60%-85% of TC, the top capped at the plan's XP target."""
    top = round_half_up(OPTIMAL_MAX_FRACTION * tc)
    bottom = round_half_up(OPTIMAL_MIN_FRACTION * tc)
    if weekly_xp_target is not None and weekly_xp_target < top:
        top = round_half_up(weekly_xp_target)
    bottom = min(bottom, round_half_up(top * OPTIMAL_MIN_TO_MAX_RATIO))
    return OptimalRange(min=bottom, max=top, suggest_upgrade=should_suggest_upgrade(tc, plan_cap))


def should_suggest_upgrade(tc: float, plan_cap: float) -> bool:
    """TC within 10% of the plan cap, so the optimal range cannot grow further on this plan."""
    return plan_cap > 0 and tc >= UPGRADE_THRESHOLD * plan_cap
