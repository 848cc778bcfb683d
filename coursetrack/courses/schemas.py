"""Pydantic schemas for course structure.

A course is authored in one request: sections with their modules,
assignments and the optional project travel together.
"""

from datetime import datetime
from typing import Self
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from coursetrack.courses.models import (
    Course,
    CourseStatus,
    ModuleType,
    SubmissionType,
)


# ==============================================================================
# Request Schemas
# ==============================================================================


class QuizQuestionIn(BaseModel):
    """Quiz question definition."""

    question: str = Field(..., min_length=1)
    options: list[str] = Field(default_factory=list)
    correct_answer: str


class ModuleIn(BaseModel):
    """Module definition inside a section."""

    type: ModuleType
    title: str = Field(..., min_length=1, max_length=200)
    content_url: str | None = None
    duration: str | None = None
    questions: list[QuizQuestionIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_quiz(self) -> Self:
        """Quiz modules need at least one question."""
        if self.type == ModuleType.QUIZ and not self.questions:
            msg = "Quiz modules require at least one question"
            raise ValueError(msg)
        return self


class SectionIn(BaseModel):
    """Section definition."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    modules: list[ModuleIn] = Field(default_factory=list)


class AssignmentIn(BaseModel):
    """Assignment definition."""

    title: str = Field(..., min_length=1, max_length=200)
    instructions: str | None = None
    submission_types: list[SubmissionType] = Field(
        default_factory=lambda: [SubmissionType.TEXT]
    )
    due_date: datetime


class ProjectIn(BaseModel):
    """Final project definition."""

    title: str = Field(..., min_length=1, max_length=200)
    instructions: str | None = None
    submission_types: list[SubmissionType] = Field(
        default_factory=lambda: [SubmissionType.FILE_UPLOAD]
    )
    due_date: datetime | None = None


class CreateCourseRequest(BaseModel):
    """Course creation request."""

    title: str = Field(..., min_length=3, max_length=200, description="Course title")
    description: str | None = Field(None, max_length=5000)
    duration: str | None = Field(
        None, max_length=50, description='Free text such as "6 weeks" or "2 months"'
    )
    status: CourseStatus = CourseStatus.DRAFT
    sections: list[SectionIn] = Field(default_factory=list)
    assignments: list[AssignmentIn] = Field(default_factory=list)
    project: ProjectIn | None = None


# ==============================================================================
# Response Schemas
# ==============================================================================


class ModuleOut(BaseModel):
    """Module as seen by learners (quiz answers are never returned)."""

    id: UUID
    type: ModuleType
    title: str
    content_url: str | None = None
    duration: str | None = None
    question_count: int = 0


class SectionOut(BaseModel):
    id: UUID
    title: str
    description: str | None = None
    modules: list[ModuleOut] = []


class AssignmentOut(BaseModel):
    id: UUID
    title: str
    instructions: str | None = None
    submission_types: list[str]
    due_date: datetime


class ProjectOut(BaseModel):
    title: str
    instructions: str | None = None
    submission_types: list[str]
    due_date: datetime | None = None


class CourseResponse(BaseModel):
    """Course with its structure."""

    id: UUID
    title: str
    description: str | None = None
    duration: str | None = None
    status: CourseStatus
    creator_id: UUID
    created_at: datetime
    updated_at: datetime | None = None
    sections: list[SectionOut] = []
    assignments: list[AssignmentOut] = []
    project: ProjectOut | None = None
    module_count: int = 0

    @classmethod
    def from_entity(cls, course: Course) -> "CourseResponse":
        """Create response from entity."""
        return cls(
            id=course.id,
            title=course.title,
            description=course.description,
            duration=course.duration,
            status=course.status,
            creator_id=course.creator_id,
            created_at=course.created_at,
            updated_at=course.updated_at,
            sections=[
                SectionOut(
                    id=s.section_id,
                    title=s.title,
                    description=s.description,
                    modules=[
                        ModuleOut(
                            id=m.module_id,
                            type=m.type,
                            title=m.title,
                            content_url=m.content_url,
                            duration=m.duration,
                            question_count=len(m.questions),
                        )
                        for m in s.modules
                    ],
                )
                for s in course.sections
            ],
            assignments=[
                AssignmentOut(
                    id=a.assignment_id,
                    title=a.title,
                    instructions=a.instructions,
                    submission_types=a.submission_types,
                    due_date=a.due_date,
                )
                for a in course.assignments
            ],
            project=(
                ProjectOut(
                    title=course.project.title,
                    instructions=course.project.instructions,
                    submission_types=course.project.submission_types,
                    due_date=course.project.due_date,
                )
                if course.project
                else None
            ),
            module_count=len(course.modules),
        )


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
    success: bool = True
