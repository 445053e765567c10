"""Tests for CLI commands using Typer's CliRunner against local state files."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
import yaml
from typer.testing import CliRunner

from neuroloop.cli import app
from neuroloop.cli._state import read_state_file
from neuroloop.config import Config
from neuroloop.errors import ErrorCode, NeuroloopError

runner = CliRunner()

TODAY = date(2026, 10, 19)


# --- Helpers ---

def _make_state_file(tmp_path, with_snapshots: bool = True):
    user = {
        "profile": {"user_id": "u1", "plan_id": "expert", "onboarded_at": "2026-10-01", "chronological_age": 35},
        "skills": {"AE": 70, "RA": 60, "CT": 80, "IN": 50},
        "baseline_skills": {"AE": 60, "RA": 55, "CT": 65, "IN": 50},
        "activity": [
            {"at": "2026-10-18T09:00:00", "detox_minutes": 420, "s1_xp": 60, "s2_xp": 40},
            {"at": "2026-10-16T09:00:00", "walk_minutes": 120, "s1_xp": 20, "s2_xp": 30},
        ],
    }
    if with_snapshots:
        user["cognitive_age_baseline"] = {"chronological_age": 35, "baseline_perf": 60}
        user["daily_snapshots"] = [
            {"snapshot_date": (TODAY - timedelta(days=i)).isoformat(), "ae": 60, "ra": 60, "ct": 60, "in_": 60}
            for i in range(12)
        ]
    path = tmp_path / "state.yaml"
    path.write_text(yaml.safe_dump({"users": [user]}))
    return path


# --- Fixtures ---

@pytest.fixture(autouse=True)
def default_config(monkeypatch):
    """Keep CLI commands off the developer's real ~/.neuroloop config."""
    monkeypatch.setattr("neuroloop.cli._config", Config())


# --- plans / calc ---

def test_plans_table():
    result = runner.invoke(app, ["plans"])
    assert result.exit_code == 0
    assert "superhuman" in result.output
    assert "1680" in result.output


def test_calc_recovery():
    result = runner.invoke(app, ["calc", "recovery", "--detox", "420"])
    assert result.exit_code == 0
    assert "Recovery = 50.0" in result.output


def test_calc_readiness():
    result = runner.invoke(
        app, ["calc", "readiness", "--ae", "70", "--ra", "60", "--ct", "80", "--in", "50", "--recovery", "80"]
    )
    assert result.exit_code == 0
    assert "Readiness = 72 (moderate)" in result.output


def test_calc_sharpness_formulas():
    result = runner.invoke(app, ["calc", "sharpness", "--ae", "80", "--ra", "80", "--ct", "80", "--in", "80",
                                 "--formula", "legacy"])
    assert result.exit_code == 0
    assert "Sharpness = 80" in result.output

    result = runner.invoke(app, ["calc", "sharpness", "--formula", "bogus"])
    assert result.exit_code == 1


def test_calc_rri():
    result = runner.invoke(app, ["calc", "rri", "--sleep", "7.5", "--detox", "90", "--mental", "clear"])
    assert result.exit_code == 0
    assert "RRI = 53" in result.output


# --- score ---

def test_score_table(tmp_path):
    path = _make_state_file(tmp_path)
    result = runner.invoke(app, ["score", str(path), "--now", "2026-10-19T09:00:00"])
    assert result.exit_code == 0
    assert "u1 (expert)" in result.output
    assert "sharpness" in result.output
    assert "orbit_lock" in result.output


def test_score_json(tmp_path):
    path = _make_state_file(tmp_path)
    result = runner.invoke(app, ["score", str(path), "--now", "2026-10-19T09:00:00", "--json"])
    assert result.exit_code == 0
    assert '"user_id": "u1"' in result.output
    assert '"sharpness": 58' in result.output


def test_score_unknown_user(tmp_path):
    path = _make_state_file(tmp_path)
    result = runner.invoke(app, ["score", str(path), "--user", "ghost", "--now", "2026-10-19T09:00:00"])
    assert result.exit_code == 1
    assert "NOT_FOUND" in result.output


def test_score_unknown_user_json_error(tmp_path):
    path = _make_state_file(tmp_path)
    result = runner.invoke(app, ["score", str(path), "--user", "ghost", "--now", "2026-10-19T09:00:00", "--json"])
    assert result.exit_code == 1
    assert '"code": "NOT_FOUND"' in result.output
    assert '"user_id": "ghost"' in result.output


def test_score_missing_file(tmp_path):
    result = runner.invoke(app, ["score", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_score_invalid_file(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump({"users": [{"skills": {"AE": 50}}]}))
    result = runner.invoke(app, ["score", str(path)])
    assert result.exit_code == 1
    assert "VALIDATION_ERROR" in result.output
    assert "Invalid user #0" in result.output


def test_score_invalid_file_json_error(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump({"users": [{"skills": {"AE": 50}}]}))
    result = runner.invoke(app, ["score", str(path), "--json"])
    assert result.exit_code == 1
    assert '"code": "VALIDATION_ERROR"' in result.output
    assert '"index": 0' in result.output


@pytest.mark.parametrize("content", ["users: [\n", "users: 5\n", "- just\n- a list\n"])
def test_unreadable_state_file(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content)
    with pytest.raises(NeuroloopError) as exc_info:
        read_state_file(path)
    assert exc_info.value.code == ErrorCode.VALIDATION_ERROR


def test_missing_state_file_is_not_found(tmp_path):
    with pytest.raises(NeuroloopError) as exc_info:
        read_state_file(tmp_path / "nope.yaml")
    assert exc_info.value.code == ErrorCode.NOT_FOUND


def test_score_invalid_timestamp(tmp_path):
    path = _make_state_file(tmp_path)
    result = runner.invoke(app, ["score", str(path), "--now", "yesterday"])
    assert result.exit_code == 1


# --- batch ---

def test_batch_cognitive_age(tmp_path):
    path = _make_state_file(tmp_path)
    result = runner.invoke(app, ["batch", "cognitive-age", str(path), "--now", "2026-10-19T09:00:00"])
    assert result.exit_code == 0
    assert "processed=1" in result.output


def test_batch_refresh(tmp_path):
    path = _make_state_file(tmp_path, with_snapshots=False)
    result = runner.invoke(app, ["batch", "refresh", str(path), "--now", "2026-10-19T09:00:00"])
    assert result.exit_code == 0
    assert "processed=1" in result.output
    assert "errors=0" in result.output


# --- config ---

def test_config_get():
    result = runner.invoke(app, ["config", "get", "engine.sharpness_formula"])
    assert result.exit_code == 0
    assert "engine.sharpness_formula = modulated" in result.output


def test_config_get_unknown_key_fails():
    result = runner.invoke(app, ["config", "get", "engine.nope"])
    assert result.exit_code == 1
    assert "Unknown config key" in result.output


def test_config_show_json():
    result = runner.invoke(app, ["config", "show", "--json"])
    assert result.exit_code == 0
    assert '"default_plan": "light"' in result.output


def test_config_show_table():
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    assert "light" in result.output


def test_config_init_writes_file(tmp_path):
    target = tmp_path / "config.yaml"
    result = runner.invoke(app, ["config", "init", "--path", str(target)])
    assert result.exit_code == 0
    assert "default_plan: light" in target.read_text()


def test_config_init_keeps_existing_file(tmp_path):
    target = tmp_path / "config.yaml"
    target.write_text("engine:\n  default_plan: expert\n")
    result = runner.invoke(app, ["config", "init", "--path", str(target)])
    assert result.exit_code == 1
    assert "default_plan: expert" in target.read_text()

    result = runner.invoke(app, ["config", "init", "--path", str(target), "--force"])
    assert result.exit_code == 0
    assert "default_plan: light" in target.read_text()


def test_config_set(tmp_path, monkeypatch):
    config_file = tmp_path / "config.yaml"
    monkeypatch.setattr("neuroloop.config.get_config_path", lambda: config_file)
    result = runner.invoke(app, ["config", "set", "recovery.model", "weekly"])
    assert result.exit_code == 0
    assert "recovery.model = weekly" in result.output
    assert "model: weekly" in config_file.read_text()


def test_config_set_rejects_invalid_value(tmp_path, monkeypatch):
    config_file = tmp_path / "config.yaml"
    monkeypatch.setattr("neuroloop.config.get_config_path", lambda: config_file)
    result = runner.invoke(app, ["config", "set", "batch.min_snapshots", "lots"])
    assert result.exit_code == 1
    assert "Rejected" in result.output
    assert not config_file.exists()
