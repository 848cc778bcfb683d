"""Database models for learner progress.

Cassandra table definitions for:
- Enrollments: one row per (course, learner) with the aggregated progress
- Enrollments by user: lookup table for "my courses" and the overview
- Component progress: modules, assignments, project, quizzes, sections,
  each partitioned by (user_id, course_id)

The enrollment row carries a ``revision`` column used as the condition of
lightweight-transaction updates, so concurrent recalculations cannot
silently overwrite each other. The by-user lookup and section rows copy
that revision and only accept writes carrying a newer one.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from coursetrack.courses.models import ensure_utc_aware


class EnrollmentStatus(str, Enum):
    """Enrollment lifecycle status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RiskLevel(str, Enum):
    """How far behind schedule a learner appears to be."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {
    RiskLevel.NONE: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
}


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    user_id UUID,
    status TEXT,
    progress INT,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    enrolled_at TIMESTAMP,
    time_spent INT,
    last_accessed_at TIMESTAMP,
    revision INT,
    PRIMARY KEY (course_id, user_id)
)
"""

ENROLLMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_user (
    user_id UUID,
    course_id UUID,
    status TEXT,
    progress INT,
    completed BOOLEAN,
    enrolled_at TIMESTAMP,
    time_spent INT,
    last_accessed_at TIMESTAMP,
    revision INT,
    PRIMARY KEY (user_id, course_id)
)
"""

MODULE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_progress (
    user_id UUID,
    course_id UUID,
    module_id UUID,
    section_id UUID,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    time_spent INT,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), module_id)
)
"""

ASSIGNMENT_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.assignment_progress (
    user_id UUID,
    course_id UUID,
    assignment_id UUID,
    submitted BOOLEAN,
    submitted_at TIMESTAMP,
    submission_type TEXT,
    submission TEXT,
    score INT,
    graded BOOLEAN,
    graded_at TIMESTAMP,
    feedback TEXT,
    PRIMARY KEY ((user_id, course_id), assignment_id)
)
"""

PROJECT_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.project_progress (
    user_id UUID,
    course_id UUID,
    submitted BOOLEAN,
    submitted_at TIMESTAMP,
    submission_type TEXT,
    submission TEXT,
    score INT,
    reviewed BOOLEAN,
    reviewed_at TIMESTAMP,
    feedback TEXT,
    PRIMARY KEY ((user_id, course_id))
)
"""

QUIZ_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_progress (
    user_id UUID,
    course_id UUID,
    quiz_id UUID,
    score INT,
    best_score INT,
    attempts INT,
    completed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), quiz_id)
)
"""

SECTION_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.section_progress (
    user_id UUID,
    course_id UUID,
    section_id UUID,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    modules_completed INT,
    total_modules INT,
    revision INT,
    PRIMARY KEY ((user_id, course_id), section_id)
)
"""

PROGRESS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_USER_TABLE_CQL,
    MODULE_PROGRESS_TABLE_CQL,
    ASSIGNMENT_PROGRESS_TABLE_CQL,
    PROJECT_PROGRESS_TABLE_CQL,
    QUIZ_PROGRESS_TABLE_CQL,
    SECTION_PROGRESS_TABLE_CQL,
]

# Child tables removed together with an enrollment
PROGRESS_CHILD_TABLES = [
    "module_progress",
    "assignment_progress",
    "project_progress",
    "quiz_progress",
    "section_progress",
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class ModuleProgress:
    """Completion state of one module for one learner."""

    module_id: UUID
    section_id: UUID | None = None
    completed: bool = False
    completed_at: datetime | None = None
    time_spent: int = 0
    last_accessed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "ModuleProgress":
        """Create ModuleProgress from Cassandra row."""
        return cls(
            module_id=row.module_id,
            section_id=row.section_id,
            completed=bool(row.completed),
            completed_at=ensure_utc_aware(row.completed_at),
            time_spent=row.time_spent or 0,
            last_accessed_at=ensure_utc_aware(row.last_accessed_at),
        )


@dataclass
class AssignmentProgress:
    """Submission and grade of one assignment."""

    assignment_id: UUID
    submitted: bool = False
    submitted_at: datetime | None = None
    submission_type: str | None = None
    submission: str | None = None
    score: int | None = None
    graded: bool = False
    graded_at: datetime | None = None
    feedback: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "AssignmentProgress":
        """Create AssignmentProgress from Cassandra row."""
        return cls(
            assignment_id=row.assignment_id,
            submitted=bool(row.submitted),
            submitted_at=ensure_utc_aware(row.submitted_at),
            submission_type=row.submission_type,
            submission=row.submission,
            score=row.score,
            graded=bool(row.graded),
            graded_at=ensure_utc_aware(row.graded_at),
            feedback=row.feedback,
        )


@dataclass
class ProjectProgress:
    """Submission and review of the course project."""

    submitted: bool = False
    submitted_at: datetime | None = None
    submission_type: str | None = None
    submission: str | None = None
    score: int | None = None
    reviewed: bool = False
    reviewed_at: datetime | None = None
    feedback: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "ProjectProgress":
        """Create ProjectProgress from Cassandra row."""
        return cls(
            submitted=bool(row.submitted),
            submitted_at=ensure_utc_aware(row.submitted_at),
            submission_type=row.submission_type,
            submission=row.submission,
            score=row.score,
            reviewed=bool(row.reviewed),
            reviewed_at=ensure_utc_aware(row.reviewed_at),
            feedback=row.feedback,
        )


@dataclass
class QuizProgress:
    """Attempts on one quiz module."""

    quiz_id: UUID
    score: int = 0
    best_score: int = 0
    attempts: int = 0
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "QuizProgress":
        """Create QuizProgress from Cassandra row."""
        return cls(
            quiz_id=row.quiz_id,
            score=row.score or 0,
            best_score=row.best_score or 0,
            attempts=row.attempts or 0,
            completed_at=ensure_utc_aware(row.completed_at),
        )


@dataclass
class SectionProgress:
    """Derived per-section completion (rewritten on every recalculation)."""

    section_id: UUID
    completed: bool = False
    completed_at: datetime | None = None
    modules_completed: int = 0
    total_modules: int = 0

    @classmethod
    def from_row(cls, row: Any) -> "SectionProgress":
        """Create SectionProgress from Cassandra row."""
        return cls(
            section_id=row.section_id,
            completed=bool(row.completed),
            completed_at=ensure_utc_aware(row.completed_at),
            modules_completed=row.modules_completed or 0,
            total_modules=row.total_modules or 0,
        )


@dataclass
class Enrollment:
    """Learner enrollment with aggregated and per-component progress.

    ``progress`` and ``completed`` are only ever written by the
    aggregator; component lists are loaded on demand and stay empty when
    only the enrollment row was read.
    """

    course_id: UUID
    user_id: UUID
    status: str = EnrollmentStatus.ACTIVE.value
    progress: int = 0
    completed: bool = False
    completed_at: datetime | None = None
    enrolled_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    time_spent: int = 0
    last_accessed_at: datetime | None = None
    revision: int = 0
    module_progress: list[ModuleProgress] = field(default_factory=list)
    assignment_progress: list[AssignmentProgress] = field(default_factory=list)
    project_progress: ProjectProgress | None = None
    quiz_progress: list[QuizProgress] = field(default_factory=list)
    section_progress: list[SectionProgress] = field(default_factory=list)

    @property
    def is_cancelled(self) -> bool:
        return self.status == EnrollmentStatus.CANCELLED.value

    def find_module(self, module_id: UUID) -> ModuleProgress | None:
        return next(
            (m for m in self.module_progress if m.module_id == module_id), None
        )

    def find_assignment(self, assignment_id: UUID) -> AssignmentProgress | None:
        return next(
            (a for a in self.assignment_progress if a.assignment_id == assignment_id),
            None,
        )

    def find_quiz(self, quiz_id: UUID) -> QuizProgress | None:
        return next((q for q in self.quiz_progress if q.quiz_id == quiz_id), None)

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment from an ``enrollments`` or lookup-table row."""
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            status=row.status or EnrollmentStatus.ACTIVE.value,
            progress=row.progress or 0,
            completed=bool(row.completed),
            completed_at=ensure_utc_aware(getattr(row, "completed_at", None)),
            enrolled_at=ensure_utc_aware(row.enrolled_at) or datetime.now(UTC),
            time_spent=row.time_spent or 0,
            last_accessed_at=ensure_utc_aware(row.last_accessed_at),
            revision=getattr(row, "revision", None) or 0,
        )

    def __repr__(self) -> str:
        return (
            f"<Enrollment user={self.user_id} course={self.course_id} "
            f"{self.progress}% completed={self.completed} rev={self.revision}>"
        )
