"""Course structure service layer.

Business logic for:
- Creating a course with its sections, modules, assignments and project
- Loading the full structure consumed by progress aggregation
- Deleting a course and its child partitions
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import structlog

from .models import (
    Assignment,
    Course,
    CourseModule,
    Project,
    QuizQuestion,
    Section,
)
from .schemas import CreateCourseRequest


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseError(Exception):
    """Base course error."""

    def __init__(self, message: str, code: str = "course_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CourseNotFoundError(CourseError):
    """Course does not exist."""

    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


# ==============================================================================
# Course Service
# ==============================================================================


class CourseService:
    """Service for course structure."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses
            (id, title, description, duration, status, creator_id,
             project_title, project_instructions, project_submission_types,
             project_due_date, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_section = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_sections
            (course_id, position, section_id, title, description)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._insert_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_modules
            (course_id, section_id, position, module_id, type, title,
             content_url, duration, quiz_questions)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_assignment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_assignments
            (course_id, position, assignment_id, title, instructions,
             submission_types, due_date)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses WHERE id = ?
        """)

        self._get_sections = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_sections WHERE course_id = ?
        """)

        self._get_modules = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_modules WHERE course_id = ?
        """)

        self._get_assignments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_assignments WHERE course_id = ?
        """)

        self._delete_statements = [
            self.session.prepare(
                f"DELETE FROM {self.keyspace}.{table} WHERE {key} = ?"
            )
            for table, key in (
                ("course_modules", "course_id"),
                ("course_sections", "course_id"),
                ("course_assignments", "course_id"),
                ("courses", "id"),
            )
        ]

    # ==========================================================================
    # Write Operations
    # ==========================================================================

    async def create_course(self, data: CreateCourseRequest, creator_id: UUID) -> Course:
        """Create a course and its whole structure.

        Ids are generated here for every section, module and assignment.
        """
        now = datetime.now(UTC)
        course_id = uuid4()

        sections = []
        for s_pos, s in enumerate(data.sections):
            section_id = uuid4()
            modules = [
                CourseModule(
                    module_id=uuid4(),
                    section_id=section_id,
                    position=m_pos,
                    type=m.type,
                    title=m.title,
                    content_url=m.content_url,
                    duration=m.duration,
                    questions=[
                        QuizQuestion(
                            question=q.question,
                            options=q.options,
                            correct_answer=q.correct_answer,
                        )
                        for q in m.questions
                    ],
                )
                for m_pos, m in enumerate(s.modules)
            ]
            sections.append(
                Section(
                    section_id=section_id,
                    position=s_pos,
                    title=s.title,
                    description=s.description,
                    modules=modules,
                )
            )

        assignments = [
            Assignment(
                assignment_id=uuid4(),
                position=pos,
                title=a.title,
                due_date=a.due_date,
                instructions=a.instructions,
                submission_types=[t.value for t in a.submission_types],
            )
            for pos, a in enumerate(data.assignments)
        ]

        project = None
        if data.project:
            project = Project(
                title=data.project.title,
                instructions=data.project.instructions,
                submission_types=[t.value for t in data.project.submission_types],
                due_date=data.project.due_date,
            )

        course = Course(
            id=course_id,
            title=data.title,
            creator_id=creator_id,
            created_at=now,
            description=data.description,
            duration=data.duration,
            status=data.status,
            updated_at=now,
            project=project,
            sections=sections,
            assignments=assignments,
        )

        await self.session.aexecute(
            self._insert_course,
            [
                course.id,
                course.title,
                course.description,
                course.duration,
                course.status.value,
                course.creator_id,
                project.title if project else None,
                project.instructions if project else None,
                project.submission_types if project else None,
                project.due_date if project else None,
                course.created_at,
                course.updated_at,
            ],
        )

        for section in sections:
            await self.session.aexecute(
                self._insert_section,
                [
                    course_id,
                    section.position,
                    section.section_id,
                    section.title,
                    section.description,
                ],
            )
            for module in section.modules:
                await self.session.aexecute(
                    self._insert_module,
                    [
                        course_id,
                        section.section_id,
                        module.position,
                        module.module_id,
                        module.type.value,
                        module.title,
                        module.content_url,
                        module.duration,
                        module.questions_json(),
                    ],
                )

        for assignment in assignments:
            await self.session.aexecute(
                self._insert_assignment,
                [
                    course_id,
                    assignment.position,
                    assignment.assignment_id,
                    assignment.title,
                    assignment.instructions,
                    assignment.submission_types,
                    assignment.due_date,
                ],
            )

        logger.info(
            "course_created",
            course_id=str(course_id),
            sections=len(sections),
            modules=len(course.modules),
            assignments=len(assignments),
            has_project=course.has_project,
        )
        return course

    async def delete_course(self, course_id: UUID) -> None:
        """Delete a course and all of its structure.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        result = await self.session.aexecute(self._get_course, [course_id])
        if not result.one():
            raise CourseNotFoundError

        for statement in self._delete_statements:
            await self.session.aexecute(statement, [course_id])

        logger.info("course_deleted", course_id=str(course_id))

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_course(self, course_id: UUID) -> Course | None:
        """Load a course with sections, modules and assignments."""
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        if not row:
            return None

        module_rows = await self.session.aexecute(self._get_modules, [course_id])
        modules_by_section: dict[UUID, list[CourseModule]] = {}
        for module_row in module_rows:
            module = CourseModule.from_row(module_row)
            modules_by_section.setdefault(module.section_id, []).append(module)

        section_rows = await self.session.aexecute(self._get_sections, [course_id])
        sections = [
            Section(
                section_id=s.section_id,
                position=s.position,
                title=s.title,
                description=s.description,
                modules=sorted(
                    modules_by_section.get(s.section_id, []),
                    key=lambda m: m.position,
                ),
            )
            for s in section_rows
        ]

        assignment_rows = await self.session.aexecute(
            self._get_assignments, [course_id]
        )
        assignments = [Assignment.from_row(a) for a in assignment_rows]

        return Course.from_row(row, sections=sections, assignments=assignments)

    async def require_course(self, course_id: UUID) -> Course:
        """Load a course or raise.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        course = await self.get_course(course_id)
        if course is None:
            raise CourseNotFoundError
        return course
