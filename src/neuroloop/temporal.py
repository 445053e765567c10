"""Rolling period boundaries used by every metric.

All windows are rolling ("last N days"), never calendar weeks. The one
exception is the decay accumulator tag, which is the Monday of the current
week so weekly decay caps reset on a fixed boundary.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum

# TC, SCI, RQ priming, weekly XP and AE guidance use an exact 7x24h window
MEDIUM_PERIOD_DAYS = 7
# Cognitive-age averaging windows
LONG_PERIOD_DAYS = (14, 21, 30, 90, 180)


class DecayWindow(int, Enum):
    SKILL = 30
    RQ = 14
    SCI = 7
    COGNITIVE_AGE = 21


def as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def medium_period_start(now: datetime) -> datetime:
    """Exactly 7 x 24h before now."""
    return now - timedelta(days=MEDIUM_PERIOD_DAYS)


def long_period_start(days: int, now: date | datetime) -> date | datetime:
    """`days` before now; works on dates (daily snapshots) and datetimes."""
    if days not in LONG_PERIOD_DAYS:
        raise ValueError(f"Unsupported long window: {days} (expected one of {LONG_PERIOD_DAYS})")
    return now - timedelta(days=days)


def week_start(value: date | datetime) -> date:
    """Monday of the week containing value."""
    d = as_date(value)
    return d - timedelta(days=d.weekday())


def days_between(earlier: date | datetime, later: date | datetime) -> int:
    """Whole days from earlier to later. Datetimes compare by calendar day."""
    return (as_date(later) - as_date(earlier)).days
