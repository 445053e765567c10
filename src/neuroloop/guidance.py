"""Game guidance for the Attentional-Efficiency family.

Two decisions per computation, both pure functions of 7-day session aggregates:

- which game to suggest, from three deficit indices (precision, stability,
  flexibility) with an epsilon buffer against flapping on near-ties;
- which difficulty to force, from plan, capacity, recovery and performance,
  with every applied rule recorded in difficulty_reasons.

Missing metrics count as neutral (0.5). Guidance always produces an answer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from neuroloop.models import AEGame, AESession, Difficulty, SessionAggregates
from neuroloop.plans import PlanConfig, next_difficulty, previous_difficulty
from neuroloop.temporal import days_between, medium_period_start
from neuroloop.utils import clamp, mean

EPSILON = 0.05
NEUTRAL_SIGNAL = 0.5
MIN_SESSIONS_FOR_SCORING = 3

# Capacity ratio bands
EASY_BELOW = 0.55
MEDIUM_UP_TO = 0.80

LOW_RECOVERY_DOWNGRADE = 45.0
FALSE_ALARM_DOWNGRADE = 0.35
DEGRADATION_DOWNGRADE = 0.70

UPGRADE_MIN_SESSIONS = 5
UPGRADE_MAX_FALSE_ALARM = 0.20
UPGRADE_MAX_DEGRADATION = 0.30
UPGRADE_COOLDOWN_DAYS = 7

# Normaliser scales
RT_VARIABILITY_SCALE_MS = 500.0
DEGRADATION_SLOPE_SCALE = 1.0
SWITCH_LATENCY_SCALE_MS = 2000.0

REASON_PRECISION = "Precision"
REASON_STABILITY = "Stability"
REASON_FLEXIBILITY = "Flexibility"

_GAME_REASONS: dict[AEGame, str] = {
    AEGame.TRIAGE_SPRINT: REASON_PRECISION,
    AEGame.ORBIT_LOCK: REASON_STABILITY,
    AEGame.FOCUS_SWITCH: REASON_FLEXIBILITY,
}

# Round-robin order used before there is enough data to score
_ROTATION: dict[AEGame | None, AEGame] = {
    None: AEGame.ORBIT_LOCK,
    AEGame.ORBIT_LOCK: AEGame.TRIAGE_SPRINT,
    AEGame.TRIAGE_SPRINT: AEGame.FOCUS_SWITCH,
    AEGame.FOCUS_SWITCH: AEGame.ORBIT_LOCK,
}


@dataclass
class DeficitIndices:
    pdi: float
    sdi: float
    fdi: float


@dataclass
class GuidanceResult:
    suggested_game: AEGame
    reason: str
    forced_difficulty: Difficulty
    difficulty_reasons: list[str]
    can_upgrade: bool
    computed_date: str
    debug: dict = field(default_factory=dict)


# --- Normalisers ---


def normalize_rt_variability(ms: float | None) -> float | None:
    return None if ms is None else clamp(ms / RT_VARIABILITY_SCALE_MS, 0.0, 1.0)


def normalize_degradation_slope(slope: float | None) -> float | None:
    """Only a negative slope (performance falling within a session) counts."""
    return None if slope is None else clamp(abs(min(0.0, slope)) / DEGRADATION_SLOPE_SCALE, 0.0, 1.0)


def normalize_time_in_band(pct: float | None) -> float | None:
    return None if pct is None else clamp(pct / 100, 0.0, 1.0)


def normalize_switch_latency(ms: float | None) -> float | None:
    return None if ms is None else clamp(ms / SWITCH_LATENCY_SCALE_MS, 0.0, 1.0)


def _signal(value: float | None) -> float:
    return NEUTRAL_SIGNAL if value is None else clamp(value, 0.0, 1.0)


# --- Aggregation ---


def aggregate_sessions(sessions: list[AESession], now: datetime) -> SessionAggregates:
    """Build 7-day aggregates from stored session rows.

    Averages and the session count cover the last 7 days. Last game, current
    difficulty, streak at that difficulty and last upgrade use full history.
    """
    ordered = sorted(sessions, key=lambda s: s.played_at)
    window_start = medium_period_start(now)
    recent = [s for s in ordered if s.played_at >= window_start]

    def _avg(values: list[float | None]) -> float | None:
        return mean([v for v in values if v is not None])

    last = ordered[-1] if ordered else None
    at_current = 0
    last_upgrade_at = None
    if last is not None:
        for s in reversed(ordered):
            if s.difficulty != last.difficulty:
                break
            at_current += 1
        order = list(Difficulty)
        for prev, cur in zip(ordered, ordered[1:]):
            if order.index(cur.difficulty) > order.index(prev.difficulty):
                last_upgrade_at = cur.played_at

    return SessionAggregates(
        session_count=len(recent),
        last_game=last.game if last else None,
        false_alarm_rate=_avg([s.false_alarm_rate for s in recent]),
        hit_rate=_avg([s.hit_rate for s in recent]),
        rt_variability_norm=_avg([normalize_rt_variability(s.rt_variability_ms) for s in recent]),
        degradation_slope_norm=_avg([normalize_degradation_slope(s.degradation_slope) for s in recent]),
        time_in_band=_avg([normalize_time_in_band(s.time_in_band_pct) for s in recent]),
        switch_latency_norm=_avg([normalize_switch_latency(s.switch_latency_ms) for s in recent]),
        perseveration_rate=_avg([s.perseveration_rate for s in recent]),
        current_difficulty=last.difficulty if last else None,
        sessions_at_current_difficulty=at_current,
        last_upgrade_at=last_upgrade_at,
    )


# --- Game suggestion ---


def compute_deficit_indices(agg: SessionAggregates) -> DeficitIndices:
    fa = _signal(agg.false_alarm_rate)
    hit = _signal(agg.hit_rate)
    deg = _signal(agg.degradation_slope_norm)
    rt = _signal(agg.rt_variability_norm)
    sw = _signal(agg.switch_latency_norm)
    pers = _signal(agg.perseveration_rate)

    pdi = 0.6 * fa + 0.4 * (1 - hit)
    if agg.time_in_band is not None:
        sdi = 0.4 * deg + 0.3 * rt + 0.3 * (1 - clamp(agg.time_in_band, 0.0, 1.0))
    else:
        sdi = 0.6 * deg + 0.4 * rt
    fdi = 0.5 * sw + 0.5 * pers
    return DeficitIndices(pdi=pdi, sdi=sdi, fdi=fdi)


def select_game(agg: SessionAggregates, indices: DeficitIndices) -> tuple[AEGame, str]:
    """Rotate below 3 sessions; otherwise pick the clearly largest deficit."""
    if agg.session_count < MIN_SESSIONS_FOR_SCORING:
        game = _ROTATION[agg.last_game]
    elif indices.fdi > max(indices.pdi, indices.sdi) + EPSILON:
        game = AEGame.FOCUS_SWITCH
    elif indices.sdi > indices.pdi + EPSILON:
        game = AEGame.ORBIT_LOCK
    else:
        game = AEGame.TRIAGE_SPRINT
    return game, _GAME_REASONS[game]


# --- Difficulty ---


def _clamp_to_allowed(target: Difficulty, allowed: tuple[Difficulty, ...]) -> Difficulty:
    """Nearest allowed difficulty; on a tie the lower one wins."""
    if target in allowed:
        return target
    order = list(Difficulty)
    idx = order.index(target)
    for distance in range(1, len(order)):
        for candidate_idx in (idx - distance, idx + distance):
            if 0 <= candidate_idx < len(order) and order[candidate_idx] in allowed:
                return order[candidate_idx]
    return allowed[0]


def capacity_difficulty(ratio: float) -> Difficulty:
    if ratio < EASY_BELOW:
        return Difficulty.EASY
    if ratio <= MEDIUM_UP_TO:
        return Difficulty.MEDIUM
    return Difficulty.HARD


def force_difficulty(
    agg: SessionAggregates,
    plan: PlanConfig,
    tc: float | None,
    recovery: float | None,
) -> tuple[Difficulty, list[str], float]:
    """(difficulty, reasons, capacity ratio)."""
    locked = plan.locked_difficulty
    if locked is not None:
        return locked, ["Plan"], NEUTRAL_SIGNAL

    ratio = clamp(tc / plan.tc_cap, 0.0, 1.0) if tc is not None and plan.tc_cap > 0 else NEUTRAL_SIGNAL
    difficulty = _clamp_to_allowed(capacity_difficulty(ratio), plan.allowed_difficulties)
    reasons = ["Capacity"]

    if recovery is not None and recovery < LOW_RECOVERY_DOWNGRADE and difficulty == Difficulty.HARD:
        difficulty = _clamp_to_allowed(Difficulty.MEDIUM, plan.allowed_difficulties)
        reasons.append("Recovery")

    fa = agg.false_alarm_rate
    deg = agg.degradation_slope_norm
    if (fa is not None and fa > FALSE_ALARM_DOWNGRADE) or (deg is not None and deg > DEGRADATION_DOWNGRADE):
        lower = previous_difficulty(difficulty)
        if lower is not None:
            downgraded = _clamp_to_allowed(lower, plan.allowed_difficulties)
            if downgraded != difficulty:
                difficulty = downgraded
                reasons.append("Performance")

    return difficulty, reasons, ratio


def can_upgrade(agg: SessionAggregates, difficulty: Difficulty, plan: PlanConfig, now: datetime) -> bool:
    """Upgrade signal only; never applied automatically."""
    if agg.sessions_at_current_difficulty < UPGRADE_MIN_SESSIONS:
        return False
    if agg.false_alarm_rate is not None and agg.false_alarm_rate >= UPGRADE_MAX_FALSE_ALARM:
        return False
    if agg.degradation_slope_norm is not None and agg.degradation_slope_norm > UPGRADE_MAX_DEGRADATION:
        return False
    if agg.last_upgrade_at is not None and days_between(agg.last_upgrade_at, now) < UPGRADE_COOLDOWN_DAYS:
        return False
    nxt = next_difficulty(difficulty)
    return nxt is not None and nxt in plan.allowed_difficulties


def compute_guidance(
    agg: SessionAggregates,
    plan: PlanConfig,
    tc: float | None,
    recovery: float | None,
    now: datetime,
) -> GuidanceResult:
    indices = compute_deficit_indices(agg)
    game, reason = select_game(agg, indices)
    difficulty, reasons, ratio = force_difficulty(agg, plan, tc, recovery)
    return GuidanceResult(
        suggested_game=game,
        reason=reason,
        forced_difficulty=difficulty,
        difficulty_reasons=reasons,
        can_upgrade=can_upgrade(agg, difficulty, plan, now),
        computed_date=now.date().isoformat(),
        debug={
            "pdi": round(indices.pdi, 3),
            "sdi": round(indices.sdi, 3),
            "fdi": round(indices.fdi, 3),
            "capacity_ratio": round(ratio, 3),
            "session_count": agg.session_count,
        },
    )
