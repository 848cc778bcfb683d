"""Learner progress module.

Provides:
- Enrollment management
- Weighted progress aggregation over modules, assignments and project
- Risk classification against the course's estimated duration
"""

from .aggregation import ProgressResult, ProgressWeights, calculate_course_progress
from .models import (
    PROGRESS_TABLES_CQL,
    Enrollment,
    EnrollmentStatus,
    RiskLevel,
)
from .risk import RiskThresholds, classify_risk, parse_duration_days


__all__ = [
    "PROGRESS_TABLES_CQL",
    "Enrollment",
    "EnrollmentStatus",
    "ProgressResult",
    "ProgressWeights",
    "RiskLevel",
    "RiskThresholds",
    "calculate_course_progress",
    "classify_risk",
    "parse_duration_days",
]
