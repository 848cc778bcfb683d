"""Pydantic schemas for learner progress.

Request and response models for:
- Enrollment and time tracking
- Module access and completion
- Assignment, project and quiz submissions
- Grading and admin completion
- Progress queries and the at-risk overview
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursetrack.courses.models import SubmissionType

from .models import Enrollment, RiskLevel


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class UpdateEnrollmentRequest(BaseModel):
    """Report time spent in a course.

    ``progress`` is accepted by the parser only so that a client trying to
    set it gets a clear rejection instead of a silent drop.
    """

    time_spent: int = Field(..., ge=0, le=24 * 60, description="Minutes to add")
    progress: int | None = Field(
        default=None, description="Not writable; always computed server-side"
    )


class EnrollmentResponse(BaseModel):
    """Enrollment summary."""

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    user_id: UUID
    status: str
    progress: int = Field(ge=0, le=100)
    completed: bool
    completed_at: datetime | None = None
    enrolled_at: datetime
    time_spent: int = Field(description="Minutes")
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentResponse":
        return cls(
            course_id=entity.course_id,
            user_id=entity.user_id,
            status=entity.status,
            progress=entity.progress,
            completed=entity.completed,
            completed_at=entity.completed_at,
            enrolled_at=entity.enrolled_at,
            time_spent=entity.time_spent,
            last_accessed_at=entity.last_accessed_at,
        )


class EnrollmentListResponse(BaseModel):
    """List of enrollments."""

    items: list[EnrollmentResponse]
    total: int


# ==============================================================================
# Component Progress Schemas
# ==============================================================================


class ModuleProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    module_id: UUID
    section_id: UUID | None = None
    completed: bool
    completed_at: datetime | None = None
    time_spent: int = 0
    last_accessed_at: datetime | None = None


class AssignmentProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    assignment_id: UUID
    submitted: bool
    submitted_at: datetime | None = None
    submission_type: str | None = None
    submission: str | None = None
    score: int | None = None
    graded: bool = False
    graded_at: datetime | None = None
    feedback: str | None = None


class ProjectProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    submitted: bool
    submitted_at: datetime | None = None
    submission_type: str | None = None
    submission: str | None = None
    score: int | None = None
    reviewed: bool = False
    reviewed_at: datetime | None = None
    feedback: str | None = None


class QuizProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quiz_id: UUID
    score: int
    best_score: int
    attempts: int
    completed_at: datetime | None = None


class SectionProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    section_id: UUID
    completed: bool
    completed_at: datetime | None = None
    modules_completed: int
    total_modules: int


class CourseProgressResponse(EnrollmentResponse):
    """Full progress of one enrollment, component by component."""

    module_progress: list[ModuleProgressResponse] = Field(default_factory=list)
    assignment_progress: list[AssignmentProgressResponse] = Field(default_factory=list)
    project_progress: ProjectProgressResponse | None = None
    quiz_progress: list[QuizProgressResponse] = Field(default_factory=list)
    section_progress: list[SectionProgressResponse] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "CourseProgressResponse":
        base = EnrollmentResponse.from_entity(entity).model_dump()
        return cls(
            **base,
            module_progress=[
                ModuleProgressResponse.model_validate(m) for m in entity.module_progress
            ],
            assignment_progress=[
                AssignmentProgressResponse.model_validate(a)
                for a in entity.assignment_progress
            ],
            project_progress=(
                ProjectProgressResponse.model_validate(entity.project_progress)
                if entity.project_progress
                else None
            ),
            quiz_progress=[
                QuizProgressResponse.model_validate(q) for q in entity.quiz_progress
            ],
            section_progress=[
                SectionProgressResponse.model_validate(s)
                for s in entity.section_progress
            ],
        )


class ProgressUpdateResponse(BaseModel):
    """Result of an event that re-ran the aggregation."""

    message: str
    progress: int
    completed: bool

    @classmethod
    def from_entity(cls, message: str, entity: Enrollment) -> "ProgressUpdateResponse":
        return cls(message=message, progress=entity.progress, completed=entity.completed)


class ModuleAccessResponse(BaseModel):
    message: str
    last_accessed_at: datetime


class TimeTrackedResponse(BaseModel):
    message: str
    module_time_spent: int
    total_time_spent: int


# ==============================================================================
# Submission Schemas
# ==============================================================================


class TrackTimeRequest(BaseModel):
    """Minutes spent on a module since the last report."""

    time_spent: int = Field(..., ge=0, le=24 * 60)


class SubmissionRequest(BaseModel):
    """Assignment or project submission."""

    submission_type: SubmissionType
    submission: str = Field(..., min_length=1, max_length=10000)


class QuizSubmissionRequest(BaseModel):
    """Answers in question order."""

    answers: list[str] = Field(default_factory=list)


class QuizSubmissionResponse(BaseModel):
    score: int
    correct_answers: int
    total_questions: int
    passed: bool
    best_score: int
    attempts: int
    progress: int
    completed: bool


class GradeRequest(BaseModel):
    score: int = Field(..., ge=0, le=100)
    feedback: str | None = Field(default=None, max_length=5000)


class MarkCompleteScope(str, Enum):
    """What an admin marks as complete."""

    ALL = "all"
    SECTIONS = "sections"
    MODULES = "modules"


class MarkCompleteRequest(BaseModel):
    type: MarkCompleteScope = MarkCompleteScope.ALL
    section_ids: list[UUID] = Field(default_factory=list)
    module_ids: list[UUID] = Field(default_factory=list)


# ==============================================================================
# Overview Schemas
# ==============================================================================


class CourseOverviewItem(BaseModel):
    """One course in the learner's overview."""

    course_id: UUID
    name: str
    percentage: int
    risk_level: RiskLevel
    time_spent: int = Field(description="Hours, rounded")
    enrolled_at: datetime
    estimated_duration: str


class OverviewStats(BaseModel):
    at_risk: int = 0
    on_track: int = 0
    completed: int = 0
    total: int = 0


class ProgressOverviewResponse(BaseModel):
    courses: list[CourseOverviewItem]
    stats: OverviewStats
