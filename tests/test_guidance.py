"""Tests for AE game selection, forced difficulty and the upgrade signal."""

from __future__ import annotations

from datetime import timedelta

import pytest

from neuroloop.guidance import (
    aggregate_sessions,
    can_upgrade,
    compute_deficit_indices,
    compute_guidance,
    force_difficulty,
    normalize_degradation_slope,
    select_game,
)
from neuroloop.models import AEGame, AESession, Difficulty, PlanId, SessionAggregates
from neuroloop.plans import PLANS

LIGHT = PLANS[PlanId.LIGHT]
EXPERT = PLANS[PlanId.EXPERT]
SUPERHUMAN = PLANS[PlanId.SUPERHUMAN]


def _make_agg(**kwargs) -> SessionAggregates:
    defaults = {"session_count": 5}
    defaults.update(kwargs)
    return SessionAggregates(**defaults)


def _pick(agg: SessionAggregates) -> tuple[AEGame, str]:
    return select_game(agg, compute_deficit_indices(agg))


# ---------------------------------------------------------------------------
# Game selection
# ---------------------------------------------------------------------------


def test_rotation_with_few_sessions():
    assert _pick(_make_agg(session_count=2, last_game=AEGame.ORBIT_LOCK)) == (AEGame.TRIAGE_SPRINT, "Precision")
    assert _pick(_make_agg(session_count=0))[0] == AEGame.ORBIT_LOCK
    assert _pick(_make_agg(session_count=1, last_game=AEGame.FOCUS_SWITCH))[0] == AEGame.ORBIT_LOCK


def test_all_neutral_defaults_to_precision():
    assert _pick(_make_agg()) == (AEGame.TRIAGE_SPRINT, "Precision")


def test_near_tie_stays_on_precision():
    # PDI 0.5, SDI 0.54: within epsilon
    agg = _make_agg(false_alarm_rate=0.5, hit_rate=0.5, degradation_slope_norm=0.54, rt_variability_norm=0.54)
    assert _pick(agg)[0] == AEGame.TRIAGE_SPRINT


def test_clear_stability_deficit():
    agg = _make_agg(false_alarm_rate=0.5, hit_rate=0.5, degradation_slope_norm=0.6, rt_variability_norm=0.6)
    assert _pick(agg) == (AEGame.ORBIT_LOCK, "Stability")


def test_clear_flexibility_deficit():
    agg = _make_agg(switch_latency_norm=0.9, perseveration_rate=0.9)
    assert _pick(agg) == (AEGame.FOCUS_SWITCH, "Flexibility")


def test_time_in_band_changes_stability_weights():
    indices = compute_deficit_indices(_make_agg(degradation_slope_norm=0.5, rt_variability_norm=0.5, time_in_band=1.0))
    assert indices.sdi == pytest.approx(0.35)


# ---------------------------------------------------------------------------
# Difficulty
# ---------------------------------------------------------------------------


def test_locked_plan():
    difficulty, reasons, _ = force_difficulty(_make_agg(false_alarm_rate=0.9), EXPERT, 150, 10)
    assert difficulty == Difficulty.MEDIUM
    assert reasons == ["Plan"]


def test_capacity_bands_clamped_to_plan():
    assert force_difficulty(_make_agg(), LIGHT, 40, 80)[0] == Difficulty.EASY
    assert force_difficulty(_make_agg(), LIGHT, 100, 80)[0] == Difficulty.MEDIUM
    assert force_difficulty(_make_agg(), SUPERHUMAN, 200, 80)[:2] == (Difficulty.HARD, ["Capacity"])
    assert force_difficulty(_make_agg(), SUPERHUMAN, 50, 80)[0] == Difficulty.MEDIUM


def test_missing_tc_uses_neutral_ratio():
    difficulty, _, ratio = force_difficulty(_make_agg(), LIGHT, None, 80)
    assert ratio == 0.5
    assert difficulty == Difficulty.EASY


def test_low_recovery_downgrades_hard():
    difficulty, reasons, _ = force_difficulty(_make_agg(), SUPERHUMAN, 200, 40)
    assert difficulty == Difficulty.MEDIUM
    assert reasons == ["Capacity", "Recovery"]


def test_poor_performance_downgrades():
    difficulty, reasons, _ = force_difficulty(_make_agg(false_alarm_rate=0.4), SUPERHUMAN, 200, 80)
    assert difficulty == Difficulty.MEDIUM
    assert reasons == ["Capacity", "Performance"]


def test_performance_rule_only_recorded_when_it_changes_tier():
    # Superhuman has no easy tier, so medium stays medium
    difficulty, reasons, _ = force_difficulty(_make_agg(degradation_slope_norm=0.9), SUPERHUMAN, 50, 80)
    assert difficulty == Difficulty.MEDIUM
    assert reasons == ["Capacity"]


# ---------------------------------------------------------------------------
# Upgrade signal
# ---------------------------------------------------------------------------


def _ready_agg(**kwargs) -> SessionAggregates:
    data = {
        "sessions_at_current_difficulty": 5,
        "false_alarm_rate": 0.1,
        "degradation_slope_norm": 0.2,
        "current_difficulty": Difficulty.EASY,
    }
    data.update(kwargs)
    return _make_agg(**data)


def test_can_upgrade(now):
    assert can_upgrade(_ready_agg(), Difficulty.EASY, LIGHT, now) is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"sessions_at_current_difficulty": 4},
        {"false_alarm_rate": 0.2},
        {"degradation_slope_norm": 0.31},
    ],
)
def test_upgrade_blocked(now, overrides):
    assert can_upgrade(_ready_agg(**overrides), Difficulty.EASY, LIGHT, now) is False


def test_upgrade_cooldown(now):
    agg = _ready_agg(last_upgrade_at=now - timedelta(days=3))
    assert can_upgrade(agg, Difficulty.EASY, LIGHT, now) is False
    agg = _ready_agg(last_upgrade_at=now - timedelta(days=7))
    assert can_upgrade(agg, Difficulty.EASY, LIGHT, now) is True


def test_no_upgrade_beyond_plan(now):
    assert can_upgrade(_ready_agg(), Difficulty.MEDIUM, LIGHT, now) is False


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _make_session(days_ago: float, now, difficulty=Difficulty.EASY, game=AEGame.ORBIT_LOCK, **kwargs) -> AESession:
    return AESession(game=game, played_at=now - timedelta(days=days_ago), difficulty=difficulty, **kwargs)


def test_aggregate_sessions(now):
    sessions = [
        _make_session(10, now, false_alarm_rate=0.9),
        _make_session(9, now),
        _make_session(8, now),
        _make_session(2, now, Difficulty.MEDIUM, false_alarm_rate=0.1, rt_variability_ms=250),
        _make_session(1, now, Difficulty.MEDIUM, AEGame.FOCUS_SWITCH, false_alarm_rate=0.3, rt_variability_ms=250),
    ]
    agg = aggregate_sessions(list(reversed(sessions)), now)
    assert agg.session_count == 2
    assert agg.last_game == AEGame.FOCUS_SWITCH
    assert agg.false_alarm_rate == pytest.approx(0.2)
    assert agg.rt_variability_norm == pytest.approx(0.5)
    assert agg.hit_rate is None
    assert agg.current_difficulty == Difficulty.MEDIUM
    assert agg.sessions_at_current_difficulty == 2
    assert agg.last_upgrade_at == now - timedelta(days=2)


def test_aggregate_window_is_exact_seven_days(now):
    sessions = [_make_session(7, now), _make_session(7.01, now)]
    assert aggregate_sessions(sessions, now).session_count == 1


def test_aggregate_empty(now):
    agg = aggregate_sessions([], now)
    assert agg.session_count == 0
    assert agg.last_game is None
    assert agg.current_difficulty is None


def test_only_negative_slope_counts():
    assert normalize_degradation_slope(-0.4) == pytest.approx(0.4)
    assert normalize_degradation_slope(0.3) == 0
    assert normalize_degradation_slope(-3) == 1
    assert normalize_degradation_slope(None) is None


# ---------------------------------------------------------------------------
# Full guidance
# ---------------------------------------------------------------------------


def test_compute_guidance(now):
    result = compute_guidance(_make_agg(session_count=2, last_game=AEGame.ORBIT_LOCK), LIGHT, 40, 80, now)
    assert result.suggested_game == AEGame.TRIAGE_SPRINT
    assert result.reason == "Precision"
    assert result.forced_difficulty == Difficulty.EASY
    assert result.difficulty_reasons == ["Capacity"]
    assert result.computed_date == "2026-10-19"
    assert set(result.debug) == {"pdi", "sdi", "fdi", "capacity_ratio", "session_count"}
    assert result.debug["capacity_ratio"] == 0.4
