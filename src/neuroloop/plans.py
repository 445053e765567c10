"""Static plan table: weekly XP target, TC cap, detox target and AE difficulties.

Unknown plan ids fail loudly when strict mode is on (development) and fall
back to the most conservative plan otherwise, with a logged warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from neuroloop.errors import UnknownPlanError
from neuroloop.models import Difficulty, PlanId

logger = logging.getLogger("neuroloop")


@dataclass(frozen=True)
class PlanConfig:
    plan_id: PlanId
    weekly_xp_target: int
    tc_cap: int
    detox_target_minutes: int
    allowed_difficulties: tuple[Difficulty, ...]

    @property
    def locked_difficulty(self) -> Difficulty | None:
        """Single permitted difficulty, if the plan is hard-locked."""
        if len(self.allowed_difficulties) == 1:
            return self.allowed_difficulties[0]
        return None


PLANS: dict[PlanId, PlanConfig] = {
    PlanId.LIGHT: PlanConfig(
        plan_id=PlanId.LIGHT,
        weekly_xp_target=120,
        tc_cap=100,
        detox_target_minutes=480,
        allowed_difficulties=(Difficulty.EASY, Difficulty.MEDIUM),
    ),
    PlanId.EXPERT: PlanConfig(
        plan_id=PlanId.EXPERT,
        weekly_xp_target=200,
        tc_cap=160,
        detox_target_minutes=840,
        allowed_difficulties=(Difficulty.MEDIUM,),
    ),
    PlanId.SUPERHUMAN: PlanConfig(
        plan_id=PlanId.SUPERHUMAN,
        weekly_xp_target=300,
        tc_cap=220,
        detox_target_minutes=1680,
        allowed_difficulties=(Difficulty.MEDIUM, Difficulty.HARD),
    ),
}

SAFEST_PLAN = PlanId.LIGHT


def get_plan(
    plan_id: PlanId | str | None,
    strict: bool = False,
    fallback: PlanId | str = SAFEST_PLAN,
) -> PlanConfig:
    """Look up a plan by id.

    Args:
        plan_id: plan identifier (enum or raw string from the store).
        strict: raise UnknownPlanError instead of falling back.
        fallback: plan used when the id is unknown and strict is off.

    Raises:
        UnknownPlanError: unknown id in strict mode.
    """
    try:
        return PLANS[PlanId(plan_id)]
    except ValueError:
        if strict:
            raise UnknownPlanError(str(plan_id)) from None
        try:
            fallback_plan = PLANS[PlanId(fallback)]
        except ValueError:
            fallback_plan = PLANS[SAFEST_PLAN]
        logger.warning("Unknown plan %r, falling back to %s", plan_id, fallback_plan.plan_id.value)
        return fallback_plan


def next_difficulty(current: Difficulty) -> Difficulty | None:
    order = list(Difficulty)
    idx = order.index(current)
    return order[idx + 1] if idx + 1 < len(order) else None


def previous_difficulty(current: Difficulty) -> Difficulty | None:
    order = list(Difficulty)
    idx = order.index(current)
    return order[idx - 1] if idx > 0 else None
