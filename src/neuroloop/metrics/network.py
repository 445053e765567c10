"""Cognitive Network Score (SCI).

SCI = 0.50 x Cognitive Performance + 0.30 x Behavioral Engagement + 0.20 x Recovery Factor.

Cognitive Performance averages AE, RA, CT, IN and S2. S2 is itself the mean
of CT and IN, so CT/IN weigh more than AE/RA. That re-weighting is kept as is.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from neuroloop.models import SkillVector
from neuroloop.utils import clamp, round_half_up

WEIGHT_CP = 0.50
WEIGHT_BE = 0.30
WEIGHT_RF = 0.20

# (threshold, level, status) checked top-down
_SCI_LEVELS: tuple[tuple[int, str, str], ...] = (
    (80, "elite", "Your cognitive network is operating at an elite level"),
    (65, "high", "Strong, well-integrated cognitive network"),
    (50, "moderate", "Solid base with room to strengthen"),
    (35, "developing", "Network is developing; consistency will lift it"),
    (0, "early", "Early stage; regular training builds the network"),
)


@dataclass
class SCIComponent:
    score: int
    weight: float
    weighted: int
    inputs: dict[str, float] = field(default_factory=dict)


@dataclass
class SCIResult:
    total: int
    level: str
    status: str
    cognitive_performance: SCIComponent
    behavioral_engagement: SCIComponent
    recovery_factor: SCIComponent
    decay: float = 0.0

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "level": self.level,
            "status": self.status,
            "decay": self.decay,
            "components": {
                name: {
                    "score": comp.score,
                    "weight": comp.weight,
                    "weighted": comp.weighted,
                    "inputs": comp.inputs,
                }
                for name, comp in (
                    ("cognitive_performance", self.cognitive_performance),
                    ("behavioral_engagement", self.behavioral_engagement),
                    ("recovery_factor", self.recovery_factor),
                )
            },
        }


def sci_level(score: float) -> tuple[str, str]:
    """(level, status text) for a SCI value."""
    for threshold, level, status in _SCI_LEVELS:
        if score >= threshold:
            return level, status
    return _SCI_LEVELS[-1][1], _SCI_LEVELS[-1][2]


def _ratio_score(value: float, target: float) -> int:
    if target <= 0:
        return 0
    return round_half_up(clamp(max(0.0, value) / target * 100))


def calculate_sci(
    skills: SkillVector,
    weekly_games_xp: float,
    xp_target_week: float,
    weekly_detox_minutes: float,
    detox_target: float,
    decay: float = 0.0,
) -> SCIResult:
    """SCI with a full per-component breakdown.

    Tasks do not contribute XP; only game XP feeds engagement. decay is the
    weekly SCI decay already accumulated for the current week.
    """
    cp_score = round_half_up(clamp(skills.performance_avg))
    be_score = _ratio_score(weekly_games_xp, xp_target_week)
    rf_score = _ratio_score(weekly_detox_minutes, detox_target)

    raw = round_half_up(WEIGHT_CP * cp_score + WEIGHT_BE * be_score + WEIGHT_RF * rf_score)
    total = int(clamp(raw - round_half_up(max(0.0, decay))))
    level, status = sci_level(total)

    return SCIResult(
        total=total,
        level=level,
        status=status,
        cognitive_performance=SCIComponent(
            score=cp_score,
            weight=WEIGHT_CP,
            weighted=round_half_up(WEIGHT_CP * cp_score),
            inputs={"AE": skills.ae, "RA": skills.ra, "CT": skills.ct, "IN": skills.in_, "S2": skills.s2},
        ),
        behavioral_engagement=SCIComponent(
            score=be_score,
            weight=WEIGHT_BE,
            weighted=round_half_up(WEIGHT_BE * be_score),
            inputs={"weekly_games_xp": weekly_games_xp, "xp_target_week": xp_target_week},
        ),
        recovery_factor=SCIComponent(
            score=rf_score,
            weight=WEIGHT_RF,
            weighted=round_half_up(WEIGHT_RF * rf_score),
            inputs={"weekly_detox_minutes": weekly_detox_minutes, "detox_target": detox_target},
        ),
        decay=decay,
    )
