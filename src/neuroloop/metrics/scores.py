"""Daily state scores: Sharpness, Readiness, physiological component, dual-process balance.

Also holds XP routing, which maps a finished game session onto the skill it trains.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from neuroloop.models import Skill, SkillVector, WearableSnapshot
from neuroloop.utils import clamp, round_half_up


class SharpnessFormula(str, Enum):
    MODULATED = "modulated"  # (0.6 S1 + 0.4 S2) x recovery modulation
    LEGACY = "legacy"        # 0.50 S1 + 0.30 AE + 0.20 S2


# --- Sharpness ---


def calculate_sharpness(
    skills: SkillVector,
    recovery: float | None = None,
    formula: SharpnessFormula | str = SharpnessFormula.MODULATED,
) -> int:
    """Sharpness in [0, 100].

    MODULATED scales the skill blend by 0.75-1.0 depending on recovery; a
    missing recovery is treated as neutral (50). LEGACY ignores recovery.
    """
    formula = SharpnessFormula(formula)
    if formula == SharpnessFormula.LEGACY:
        raw = 0.50 * skills.s1 + 0.30 * skills.ae + 0.20 * skills.s2
    else:
        rec = clamp(recovery if recovery is not None else 50.0)
        raw = (0.6 * skills.s1 + 0.4 * skills.s2) * (0.75 + 0.25 * rec / 100)
    return round_half_up(clamp(raw))


# --- Physiological component ---

_HRV_RANGE = (20.0, 120.0)
_RESTING_HR_RANGE = (45.0, 90.0)
_SLEEP_DURATION_RANGE = (300.0, 540.0)
_SLEEP_EFFICIENCY_RANGE = (0.70, 0.98)

_PHYSIO_WEIGHTS = {"hrv": 0.4, "resting_hr": 0.2, "sleep": 0.4}


def _normalize(value: float, lo: float, hi: float) -> float:
    return clamp((value - lo) / (hi - lo) * 100)


def _sleep_score(duration_min: float | None, efficiency: float | None) -> float | None:
    parts: list[tuple[float, float]] = []
    if duration_min is not None:
        parts.append((0.6, _normalize(duration_min, *_SLEEP_DURATION_RANGE)))
    if efficiency is not None:
        eff = efficiency / 100 if efficiency > 1 else efficiency
        parts.append((0.4, _normalize(eff, *_SLEEP_EFFICIENCY_RANGE)))
    if not parts:
        return None
    total_w = sum(w for w, _ in parts)
    return sum(w * s for w, s in parts) / total_w


def calculate_physio_component(snapshot: WearableSnapshot | None) -> float | None:
    """Wearable readiness in [0, 100], or None when no signal is present.

    HRV is scored over 20-120 ms, resting HR over 45-90 bpm (lower is better),
    sleep over 300-540 minutes and 70-98% efficiency. Weights 0.4/0.2/0.4 are
    renormalised over whichever signals exist.
    """
    if snapshot is None:
        return None

    scores: dict[str, float] = {}
    if snapshot.hrv_ms is not None:
        scores["hrv"] = _normalize(snapshot.hrv_ms, *_HRV_RANGE)
    if snapshot.resting_hr is not None:
        scores["resting_hr"] = 100 - _normalize(snapshot.resting_hr, *_RESTING_HR_RANGE)
    sleep = _sleep_score(snapshot.sleep_duration_min, snapshot.sleep_efficiency)
    if sleep is not None:
        scores["sleep"] = sleep

    if not scores:
        return None
    total_w = sum(_PHYSIO_WEIGHTS[k] for k in scores)
    return clamp(sum(_PHYSIO_WEIGHTS[k] * v for k, v in scores.items()) / total_w)


# --- Readiness ---


def calculate_readiness(
    skills: SkillVector,
    recovery: float | None,
    physio: float | None = None,
) -> int:
    """Readiness in [0, 100].

    Without physio data: 0.35 REC + 0.35 S2 + 0.30 AE. With it, half the
    score comes from physio and half from a skill blend weighted toward
    System-2. A missing recovery is neutral (50).
    """
    if physio is not None:
        cognitive = (
            0.30 * skills.ct
            + 0.25 * skills.ae
            + 0.20 * skills.in_
            + 0.15 * skills.s2
            + 0.10 * skills.s1
        )
        raw = 0.5 * clamp(physio) + 0.5 * cognitive
    else:
        rec = clamp(recovery if recovery is not None else 50.0)
        raw = 0.35 * rec + 0.35 * skills.s2 + 0.30 * skills.ae
    return round_half_up(clamp(raw))


def classify_readiness(readiness: float) -> str:
    if readiness >= 75:
        return "high"
    if readiness >= 50:
        return "moderate"
    return "low"


# --- Dual-process balance ---


@dataclass
class DualProcessBalance:
    score: float
    level: str  # "elite", "good" or "unbalanced"
    dominant: str | None  # "S1", "S2" or None when equal


def calculate_dual_process_balance(s1: float, s2: float) -> DualProcessBalance:
    """100 - |S1 - S2|."""
    score = clamp(100 - abs(s1 - s2))
    if score >= 85:
        level = "elite"
    elif score >= 70:
        level = "good"
    else:
        level = "unbalanced"
    dominant = None if s1 == s2 else ("S1" if s1 > s2 else "S2")
    return DualProcessBalance(score=score, level=level, dominant=dominant)


# --- XP routing ---

XP_TO_SKILL_FACTOR = 0.5

_FAST_ROUTES = {"focus": Skill.AE, "creativity": Skill.RA}
_SLOW_ROUTES = {"reasoning": Skill.CT, "creativity": Skill.IN, "insight": Skill.IN}


def route_xp(gym_area: str | None, thinking_mode: str) -> Skill:
    """Which skill a session's XP trains.

    thinking_mode "fast" routes to System-1 skills (default AE), anything
    else to System-2 skills (default CT).
    """
    area = (gym_area or "").lower()
    if thinking_mode == "fast":
        return _FAST_ROUTES.get(area, Skill.AE)
    return _SLOW_ROUTES.get(area, Skill.CT)


def apply_session_xp(skills: SkillVector, skill: Skill, xp: float) -> SkillVector:
    """Raise one skill by 0.5 x XP, clamped to [0, 100]."""
    return skills.with_skill(skill, skills.get(skill) + XP_TO_SKILL_FACTOR * max(0.0, xp))


def is_system1(skill: Skill) -> bool:
    return skill in (Skill.AE, Skill.RA)
