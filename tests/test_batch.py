"""Tests for the daily batch runners."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from neuroloop.batch import run_cognitive_age_batch, run_daily_refresh_batch
from neuroloop.config import BatchConfig, Config
from neuroloop.models import CognitiveAgeBaseline, DailySnapshot
from neuroloop.repository import ActivityEntry, InMemoryMetricsRepository

TODAY = date(2026, 10, 19)


def _make_snapshots(value: float, days: int) -> list[DailySnapshot]:
    return [
        DailySnapshot(snapshot_date=TODAY - timedelta(days=i), ae=value, ra=value, ct=value, in_=value, sessions=1)
        for i in range(days)
    ]


class _BrokenSnapshotsRepository(InMemoryMetricsRepository):
    def get_daily_snapshots(self, user_id: str):
        if user_id == "bad":
            raise RuntimeError("snapshot table unavailable")
        return super().get_daily_snapshots(user_id)


@pytest.fixture
def batch_repo(make_user) -> InMemoryMetricsRepository:
    repo = _BrokenSnapshotsRepository()
    baseline = CognitiveAgeBaseline(chronological_age=35, baseline_perf=60)
    repo.add_user(make_user("ok", cognitive_age_baseline=baseline, daily_snapshots=_make_snapshots(60, 30)))
    repo.add_user(make_user("no_baseline"))
    repo.add_user(make_user("sparse", cognitive_age_baseline=baseline, daily_snapshots=_make_snapshots(60, 5)))
    return repo


def test_cognitive_age_batch_processes_and_skips(batch_repo):
    summary = run_cognitive_age_batch(batch_repo, TODAY)
    assert summary["job"] == "cognitive_age"
    assert summary["processed"] == 1
    assert summary["skipped"] == 2
    assert summary["errors"] == 0
    assert len(summary["job_id"]) == 12

    saved = batch_repo.user("ok").cognitive_age_results[TODAY]
    assert saved["cognitive_age"] == 35
    assert saved["regression_risk"] == "low"
    assert batch_repo.get_cognitive_age_state("ok").last_computed_date == TODAY


def test_min_snapshots_configurable(batch_repo):
    config = Config(batch=BatchConfig(min_snapshots=5))
    assert run_cognitive_age_batch(batch_repo, TODAY, config)["processed"] == 2


def test_one_failure_does_not_stop_the_run(batch_repo, make_user, caplog):
    batch_repo.add_user(make_user("bad", cognitive_age_baseline=CognitiveAgeBaseline(chronological_age=30, baseline_perf=50)))
    summary = run_cognitive_age_batch(batch_repo, TODAY)
    assert summary["errors"] == 1
    assert summary["failed_users"] == ["bad"]
    assert summary["processed"] == 1
    assert "bad" in caplog.text


def test_fail_fast_reraises(batch_repo, make_user):
    batch_repo.add_user(make_user("bad", cognitive_age_baseline=CognitiveAgeBaseline(chronological_age=30, baseline_perf=50)))
    with pytest.raises(RuntimeError):
        run_cognitive_age_batch(batch_repo, TODAY, Config(batch=BatchConfig(fail_fast=True)))


def test_daily_refresh_batch(make_user, now):
    repo = InMemoryMetricsRepository()
    repo.add_user(make_user("a"))
    repo.add_user(make_user("b", plan_id="light"))
    summary = run_daily_refresh_batch(repo, now)
    assert summary["processed"] == 2
    assert summary["errors"] == 0
    assert now.date() in repo.user("b").metric_snapshots


def test_daily_refresh_batch_prunes_old_activity(make_user, now):
    repo = InMemoryMetricsRepository()
    repo.add_user(make_user("a"))
    repo.add_activity("a", ActivityEntry(at=now - timedelta(days=60), walk_minutes=30))
    summary = run_daily_refresh_batch(repo, now, Config(batch=BatchConfig(activity_retention_days=30)))
    assert summary["pruned"] == 1
    assert len(repo.user("a").activity) == 2
