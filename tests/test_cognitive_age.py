"""Tests for the live cognitive-age formula and the daily batch computation."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from neuroloop.cognitive_age import (
    calculate_cognitive_age,
    compute_for_user,
    daily_performance,
    pace_of_aging,
    regression_risk,
    rolling_performance,
)
from neuroloop.models import (
    CognitiveAgeBaseline,
    CognitiveAgeState,
    DailySnapshot,
    RegressionRisk,
    SkillVector,
)

TODAY = date(2026, 10, 19)


def _make_snapshots(value: float, days: int, start_offset: int = 0, rq: float = 50, sessions: int = 1) -> list[DailySnapshot]:
    return [
        DailySnapshot(
            snapshot_date=TODAY - timedelta(days=start_offset + i),
            ae=value, ra=value, ct=value, in_=value,
            reasoning_quality=rq,
            sessions=sessions,
        )
        for i in range(days)
    ]


def _make_baseline(perf: float = 60, age: float = 35, onboarded_at: date | None = None) -> CognitiveAgeBaseline:
    return CognitiveAgeBaseline(chronological_age=age, baseline_perf=perf, onboarded_at=onboarded_at)


# ---------------------------------------------------------------------------
# Live formula
# ---------------------------------------------------------------------------


def test_improvement_lowers_age(skills):
    baseline = SkillVector(ae=60, ra=55, ct=65, in_=50)  # performance_avg 57.5
    assert calculate_cognitive_age(skills, baseline, 35, rq=100) == pytest.approx(34.3)


def test_unknown_rq_uses_lowest_multiplier(skills):
    baseline = SkillVector(ae=60, ra=55, ct=65, in_=50)
    assert calculate_cognitive_age(skills, baseline, 35, rq=None) == pytest.approx(34.4)


def test_decline_raises_age(skills):
    baseline = SkillVector(ae=90, ra=90, ct=90, in_=90)
    assert calculate_cognitive_age(skills, baseline, 35, rq=100) > 35


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_daily_performance_needs_two_skills():
    assert daily_performance(DailySnapshot(snapshot_date=TODAY, ae=60)) is None
    assert daily_performance(DailySnapshot(snapshot_date=TODAY, ae=60, ct=80)) == 70


def test_rolling_performance_requires_enough_days():
    assert rolling_performance(_make_snapshots(60, 5), 30, TODAY) is None
    assert rolling_performance(_make_snapshots(60, 10), 30, TODAY) == 60


def test_rolling_performance_window_edges():
    snaps = _make_snapshots(80, 7) + _make_snapshots(40, 14, start_offset=21)
    # Days 21+ fall outside the 21-day window
    assert rolling_performance(snaps, 21, TODAY) == 80


@pytest.mark.parametrize(
    "p30, p180, pace",
    [(None, 60, 1.0), (60, 60, 1.0), (70, 50, 0.5), (30, 60, 2.5)],
)
def test_pace_of_aging(p30, p180, pace):
    assert pace_of_aging(p30, p180) == pytest.approx(pace)


@pytest.mark.parametrize("streak, risk", [(0, RegressionRisk.LOW), (14, RegressionRisk.MEDIUM), (21, RegressionRisk.HIGH)])
def test_regression_risk(streak, risk):
    assert regression_risk(streak) == risk


# ---------------------------------------------------------------------------
# Batch computation
# ---------------------------------------------------------------------------


def test_too_few_snapshots_returns_none():
    assert compute_for_user(_make_baseline(), _make_snapshots(60, 9), None, TODAY) is None


def test_steady_user_matches_chronological_age():
    result, state = compute_for_user(_make_baseline(), _make_snapshots(60, 30), None, TODAY)
    assert result.cognitive_age == 35
    assert result.delta == 0
    assert result.pace == 1.0
    assert result.regression_risk == RegressionRisk.LOW
    assert result.engagement_index == 1.0
    assert state.last_computed_date == TODAY
    assert state.regression_streak_days == 0


def test_long_run_improvement():
    result, _ = compute_for_user(_make_baseline(), _make_snapshots(70, 30), None, TODAY)
    # 10 points over baseline x RQ multiplier 0.925
    assert result.cognitive_age == pytest.approx(34.1)


def test_pace_rounded_to_two_decimals():
    snaps = _make_snapshots(62, 30) + _make_snapshots(60, 150, start_offset=30)
    result, _ = compute_for_user(_make_baseline(), snaps, None, TODAY)
    assert result.pace == pytest.approx(0.83)


def test_chronological_age_advances_from_onboarding():
    baseline = _make_baseline(onboarded_at=TODAY - timedelta(days=730))
    result, _ = compute_for_user(baseline, _make_snapshots(60, 30), None, TODAY)
    assert result.chronological_age == pytest.approx(37.0)


def test_regression_year_after_21_days():
    previous = CognitiveAgeState(regression_streak_days=20, last_computed_date=TODAY - timedelta(days=1))
    result, state = compute_for_user(_make_baseline(), _make_snapshots(48, 30), previous, TODAY)
    assert result.regression_triggered is True
    assert result.regression_streak_days == 21
    assert result.regression_penalty_years == 1
    assert result.regression_risk == RegressionRisk.HIGH
    assert state.last_regression_trigger == TODAY
    # -12 points x 0.925 -> +1.11, plus one penalty year
    assert result.cognitive_age == pytest.approx(37.1)


def test_same_day_rerun_is_idempotent():
    previous = CognitiveAgeState(regression_streak_days=20, last_computed_date=TODAY - timedelta(days=1))
    snaps = _make_snapshots(48, 30)
    first, state = compute_for_user(_make_baseline(), snaps, previous, TODAY)
    second, state2 = compute_for_user(_make_baseline(), snaps, state, TODAY)
    assert second.regression_triggered is False
    assert second.regression_penalty_years == first.regression_penalty_years
    assert second.regression_streak_days == first.regression_streak_days
    assert second.cognitive_age == first.cognitive_age
    assert state2 == state


def test_cooldown_blocks_second_trigger():
    previous = CognitiveAgeState(
        regression_streak_days=25,
        cumulative_regression_years=1,
        last_regression_trigger=TODAY - timedelta(days=10),
        last_computed_date=TODAY - timedelta(days=1),
    )
    result, _ = compute_for_user(_make_baseline(), _make_snapshots(48, 30), previous, TODAY)
    assert result.regression_triggered is False
    assert result.regression_streak_days == 26
    assert result.regression_penalty_years == 1


def test_pre_warning_before_regression():
    previous = CognitiveAgeState(regression_streak_days=13, last_computed_date=TODAY - timedelta(days=1))
    result, _ = compute_for_user(_make_baseline(), _make_snapshots(48, 30), previous, TODAY)
    assert result.regression_risk == RegressionRisk.MEDIUM
    assert result.warning is not None
    assert "7 more days" in result.warning


def test_recovered_performance_resets_streak():
    previous = CognitiveAgeState(regression_streak_days=18, last_computed_date=TODAY - timedelta(days=1))
    result, state = compute_for_user(_make_baseline(), _make_snapshots(58, 30), previous, TODAY)
    assert state.regression_streak_days == 0
    assert result.warning is None


def test_cognitive_age_clamped_to_fifteen_years():
    previous = CognitiveAgeState(cumulative_regression_years=20, last_computed_date=TODAY - timedelta(days=1))
    result, _ = compute_for_user(_make_baseline(), _make_snapshots(48, 30), previous, TODAY)
    assert result.cognitive_age == 50
    assert result.delta == 15


def test_rq_taken_from_latest_snapshot():
    snaps = _make_snapshots(70, 29, start_offset=1, rq=10) + _make_snapshots(70, 1, rq=100)
    result, _ = compute_for_user(_make_baseline(), snaps, None, TODAY)
    assert result.rq == 100
    # 10 points over baseline x RQ multiplier 1.0
    assert result.cognitive_age == pytest.approx(34.0)


def test_latest_snapshot_without_rq_is_neutral():
    snaps = _make_snapshots(60, 29, start_offset=1, rq=90)
    snaps.append(DailySnapshot(snapshot_date=TODAY, ae=60, ra=60, ct=60, in_=60))
    result, _ = compute_for_user(_make_baseline(), snaps, None, TODAY)
    assert result.rq == 50


def test_no_age_without_long_window_average():
    # One skill per day: every daily performance is missing
    snaps = [DailySnapshot(snapshot_date=TODAY - timedelta(days=i), ae=60) for i in range(12)]
    previous = CognitiveAgeState(regression_streak_days=5, last_computed_date=TODAY - timedelta(days=1))
    result, state = compute_for_user(_make_baseline(), snaps, previous, TODAY)
    assert result.perf_180 is None
    assert result.cognitive_age is None
    assert result.delta is None
    assert state.regression_streak_days == 0
    assert state.last_computed_date == TODAY
