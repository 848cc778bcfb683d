"""At-risk classification.

Compares actual progress against the progress expected after the time
already spent enrolled, given the course's estimated duration.
"""

import math
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from coursetrack.config.settings import Settings

from .models import RiskLevel


DURATION_PATTERN = re.compile(r"(\d+)\s*(day|week|month)", re.IGNORECASE)

UNIT_DAYS = {
    "day": 1,
    "week": 7,
    "month": 30,
}

SECONDS_PER_DAY = 86400


class Trackable(Protocol):
    progress: int
    enrolled_at: datetime


@dataclass(frozen=True)
class RiskThresholds:
    default_estimated_days: int = 30
    low_gap: float = 25
    medium_gap: float = 50
    medium_overdue_days: int = 30
    high_overdue_days: int = 60

    @classmethod
    def from_settings(cls, settings: Settings) -> "RiskThresholds":
        return cls(
            default_estimated_days=settings.risk_default_estimated_days,
            low_gap=settings.risk_low_gap,
            medium_gap=settings.risk_medium_gap,
            medium_overdue_days=settings.risk_medium_overdue_days,
            high_overdue_days=settings.risk_high_overdue_days,
        )


DEFAULT_THRESHOLDS = RiskThresholds()


def parse_duration_days(duration: str | None, default: int = 30) -> int:
    """Estimate a course length in days from free text like "6 weeks".

    The first "<number> <day|week|month>" match wins; anything else, and a
    zero estimate, falls back to ``default``.
    """
    if not duration:
        return default

    match = DURATION_PATTERN.search(duration)
    if not match:
        return default

    days = int(match.group(1)) * UNIT_DAYS[match.group(2).lower()]
    return days if days > 0 else default


def days_enrolled(enrolled_at: datetime, now: datetime) -> int:
    """Whole days elapsed since enrollment."""
    return math.floor((now - enrolled_at).total_seconds() / SECONDS_PER_DAY)


def classify_risk(
    enrollment: Trackable,
    duration: str | None,
    now: datetime | None = None,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
) -> RiskLevel:
    """Classify how far an enrollment has fallen behind.

    Rules are checked in order and the first match wins: overdue by more
    than ``high_overdue_days`` is high, overdue by more than
    ``medium_overdue_days`` is medium, then the gap between expected and
    actual progress decides medium, low or none.
    """
    now = now or datetime.now(UTC)
    estimated_days = parse_duration_days(duration, thresholds.default_estimated_days)
    elapsed = days_enrolled(enrollment.enrolled_at, now)

    expected = min(100.0, (elapsed / estimated_days) * 100)
    gap = expected - enrollment.progress
    overdue = elapsed - estimated_days

    if overdue > thresholds.high_overdue_days:
        return RiskLevel.HIGH
    if overdue > thresholds.medium_overdue_days:
        return RiskLevel.MEDIUM
    if gap > thresholds.medium_gap:
        return RiskLevel.MEDIUM
    if gap > thresholds.low_gap:
        return RiskLevel.LOW
    return RiskLevel.NONE
