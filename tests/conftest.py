"""Shared pytest fixtures for the neuroloop test suite."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from neuroloop.models import SkillVector, UserProfile
from neuroloop.repository import ActivityEntry, InMemoryMetricsRepository, UserData

# A Monday, so the current week starts today
NOW = datetime(2026, 10, 19, 9, 0)


def _make_user(user_id: str = "u1", plan_id: str = "expert", **overrides) -> UserData:
    """Expert-plan user onboarded 20 days ago with a week of moderate activity."""
    data = {
        "profile": UserProfile(
            user_id=user_id,
            plan_id=plan_id,
            onboarded_at=(NOW - timedelta(days=20)).date(),
            chronological_age=35,
        ),
        "skills": SkillVector(ae=70, ra=60, ct=80, in_=50),
        "baseline_skills": SkillVector(ae=60, ra=55, ct=65, in_=50),
        "activity": [
            ActivityEntry(at=NOW - timedelta(days=1), detox_minutes=420, s1_xp=60, s2_xp=40),
            ActivityEntry(at=NOW - timedelta(days=3), walk_minutes=120, s1_xp=20, s2_xp=30),
        ],
    }
    data.update(overrides)
    return UserData(**data)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def skills() -> SkillVector:
    """AE=70, RA=60, CT=80, IN=50 -> S1=65, S2=65."""
    return SkillVector(ae=70, ra=60, ct=80, in_=50)


@pytest.fixture
def make_user():
    """Factory for UserData records; keyword overrides replace whole fields."""
    return _make_user


@pytest.fixture
def repo() -> InMemoryMetricsRepository:
    """In-memory repository holding one expert-plan user 'u1'."""
    repository = InMemoryMetricsRepository()
    repository.add_user(_make_user())
    return repository
