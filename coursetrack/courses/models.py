"""Database models for course structure.

Cassandra table definitions for:
- Courses: main row, including the optional final project
- Sections: ordered sections of a course
- Modules: ordered learning units inside each section (video, pdf, quiz)
- Assignments: ordered graded assignments of a course

A course is always read as a whole (row + its three child partitions),
so every child table is partitioned by ``course_id``.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class CourseStatus(str, Enum):
    """Course publication status."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ModuleType(str, Enum):
    """Module content type."""

    VIDEO = "video"
    PDF = "pdf"
    QUIZ = "quiz"


class SubmissionType(str, Enum):
    """Accepted ways of handing in an assignment or project."""

    TEXT = "text"
    FILE_UPLOAD = "file_upload"
    LINK = "link"


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    duration TEXT,
    status TEXT,
    creator_id UUID,
    project_title TEXT,
    project_instructions TEXT,
    project_submission_types LIST<TEXT>,
    project_due_date TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

COURSE_SECTIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_sections (
    course_id UUID,
    position INT,
    section_id UUID,
    title TEXT,
    description TEXT,
    PRIMARY KEY (course_id, position, section_id)
) WITH CLUSTERING ORDER BY (position ASC, section_id ASC)
"""

# quiz_questions holds the JSON-encoded question list for quiz modules
COURSE_MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_modules (
    course_id UUID,
    section_id UUID,
    position INT,
    module_id UUID,
    type TEXT,
    title TEXT,
    content_url TEXT,
    duration TEXT,
    quiz_questions TEXT,
    PRIMARY KEY (course_id, section_id, position, module_id)
)
"""

COURSE_ASSIGNMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_assignments (
    course_id UUID,
    position INT,
    assignment_id UUID,
    title TEXT,
    instructions TEXT,
    submission_types LIST<TEXT>,
    due_date TIMESTAMP,
    PRIMARY KEY (course_id, position, assignment_id)
) WITH CLUSTERING ORDER BY (position ASC, assignment_id ASC)
"""

COURSES_TABLES_CQL = [
    COURSES_TABLE_CQL,
    COURSE_SECTIONS_TABLE_CQL,
    COURSE_MODULES_TABLE_CQL,
    COURSE_ASSIGNMENTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class QuizQuestion:
    """Single multiple-choice question; answers are compared as strings."""

    question: str
    options: list[str]
    correct_answer: str


@dataclass
class CourseModule:
    """Learning unit within a section."""

    module_id: UUID
    section_id: UUID
    position: int
    type: ModuleType
    title: str
    content_url: str | None = None
    duration: str | None = None
    questions: list[QuizQuestion] = field(default_factory=list)

    @property
    def is_quiz(self) -> bool:
        return self.type == ModuleType.QUIZ

    @classmethod
    def from_row(cls, row: Any) -> "CourseModule":
        """Create CourseModule from Cassandra row."""
        questions = [
            QuizQuestion(
                question=q.get("question", ""),
                options=q.get("options") or [],
                correct_answer=q.get("correct_answer", ""),
            )
            for q in json.loads(row.quiz_questions or "[]")
        ]
        return cls(
            module_id=row.module_id,
            section_id=row.section_id,
            position=row.position,
            type=ModuleType(row.type),
            title=row.title,
            content_url=row.content_url,
            duration=row.duration,
            questions=questions,
        )

    def questions_json(self) -> str | None:
        """Serialize quiz questions for the ``quiz_questions`` column."""
        if not self.questions:
            return None
        return json.dumps(
            [
                {
                    "question": q.question,
                    "options": q.options,
                    "correct_answer": q.correct_answer,
                }
                for q in self.questions
            ]
        )


@dataclass
class Section:
    """Ordered group of modules."""

    section_id: UUID
    position: int
    title: str
    description: str | None = None
    modules: list[CourseModule] = field(default_factory=list)

    @property
    def module_ids(self) -> set[UUID]:
        return {m.module_id for m in self.modules}


@dataclass
class Assignment:
    """Graded assignment attached to a course."""

    assignment_id: UUID
    position: int
    title: str
    due_date: datetime
    instructions: str | None = None
    submission_types: list[str] = field(
        default_factory=lambda: [SubmissionType.TEXT.value]
    )

    @classmethod
    def from_row(cls, row: Any) -> "Assignment":
        """Create Assignment from Cassandra row."""
        return cls(
            assignment_id=row.assignment_id,
            position=row.position,
            title=row.title,
            due_date=ensure_utc_aware(row.due_date),
            instructions=row.instructions,
            submission_types=list(row.submission_types or [SubmissionType.TEXT.value]),
        )


@dataclass
class Project:
    """Optional final project of a course."""

    title: str
    instructions: str | None = None
    submission_types: list[str] = field(
        default_factory=lambda: [SubmissionType.FILE_UPLOAD.value]
    )
    due_date: datetime | None = None


@dataclass
class Course:
    """Course with its full structure loaded."""

    id: UUID
    title: str
    creator_id: UUID
    created_at: datetime
    description: str | None = None
    duration: str | None = None
    status: CourseStatus = CourseStatus.DRAFT
    updated_at: datetime | None = None
    project: Project | None = None
    sections: list[Section] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)

    @property
    def modules(self) -> list[CourseModule]:
        """All modules in section order."""
        return [m for section in self.sections for m in section.modules]

    @property
    def module_ids(self) -> set[UUID]:
        return {m.module_id for m in self.modules}

    @property
    def assignment_ids(self) -> set[UUID]:
        return {a.assignment_id for a in self.assignments}

    @property
    def has_project(self) -> bool:
        return self.project is not None

    def find_module(self, module_id: UUID) -> CourseModule | None:
        return next((m for m in self.modules if m.module_id == module_id), None)

    def find_assignment(self, assignment_id: UUID) -> Assignment | None:
        return next(
            (a for a in self.assignments if a.assignment_id == assignment_id), None
        )

    @classmethod
    def from_row(
        cls,
        row: Any,
        sections: list[Section] | None = None,
        assignments: list[Assignment] | None = None,
    ) -> "Course":
        """Create Course from the main row plus its loaded children."""
        project = None
        if row.project_title:
            project = Project(
                title=row.project_title,
                instructions=row.project_instructions,
                submission_types=list(
                    row.project_submission_types or [SubmissionType.FILE_UPLOAD.value]
                ),
                due_date=ensure_utc_aware(row.project_due_date),
            )
        return cls(
            id=row.id,
            title=row.title,
            creator_id=row.creator_id,
            created_at=ensure_utc_aware(row.created_at),
            description=row.description,
            duration=row.duration,
            status=CourseStatus(row.status or CourseStatus.DRAFT.value),
            updated_at=ensure_utc_aware(row.updated_at),
            project=project,
            sections=sections or [],
            assignments=assignments or [],
        )

    def __repr__(self) -> str:
        return (
            f"<Course {self.id} {self.title!r} sections={len(self.sections)} "
            f"assignments={len(self.assignments)} project={self.has_project}>"
        )
