"""Learner progress service layer.

Business logic for:
- Enrollment management
- Module access, completion and time tracking
- Assignment, project and quiz submissions, grading
- Progress recalculation with conditional (LWT) writes
- The per-learner overview with risk levels

Every event that can change the percentage ends in
``recalculate_progress``; nothing else writes ``progress`` or ``completed``.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from coursetrack.courses.models import Course, CourseModule, ensure_utc_aware

from .aggregation import (
    DEFAULT_WEIGHTS,
    ProgressWeights,
    calculate_course_progress,
    round_half_up,
)
from .models import (
    PROGRESS_CHILD_TABLES,
    AssignmentProgress,
    Enrollment,
    EnrollmentStatus,
    ModuleProgress,
    ProjectProgress,
    QuizProgress,
    RiskLevel,
    SectionProgress,
)
from .risk import DEFAULT_THRESHOLDS, RiskThresholds, classify_risk
from .schemas import (
    CourseOverviewItem,
    MarkCompleteScope,
    OverviewStats,
    ProgressOverviewResponse,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from coursetrack.courses.service import CourseService

logger = structlog.get_logger(__name__)

ADMIN_COMPLETION_FEEDBACK = "Manually marked as complete by admin"
DEFAULT_ESTIMATED_DURATION = "1 month"


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotEnrolledError(ProgressError):
    """User not enrolled in course."""

    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message, "not_enrolled")


class AlreadyEnrolledError(ProgressError):
    """User already enrolled."""

    def __init__(self, message: str = "Already enrolled in this course"):
        super().__init__(message, "already_enrolled")


class CourseNotFoundError(ProgressError):
    """Course of the enrollment does not exist."""

    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class ModuleNotFoundError(ProgressError):
    """Module is not part of the course."""

    def __init__(self, message: str = "Module not found in this course"):
        super().__init__(message, "module_not_found")


class AssignmentNotFoundError(ProgressError):
    """Assignment is not part of the course."""

    def __init__(self, message: str = "Assignment not found"):
        super().__init__(message, "assignment_not_found")


class QuizNotFoundError(ProgressError):
    """No quiz module with this id in the course."""

    def __init__(self, message: str = "Quiz not found"):
        super().__init__(message, "quiz_not_found")


class ModuleAlreadyCompletedError(ProgressError):
    def __init__(self, message: str = "Module already completed"):
        super().__init__(message, "module_already_completed")


class InvalidSubmissionError(ProgressError):
    """Submission type not accepted, or nothing to submit to."""

    def __init__(self, message: str = "Invalid submission"):
        super().__init__(message, "invalid_submission")


class DeadlinePassedError(ProgressError):
    def __init__(self, message: str = "Submission deadline has passed"):
        super().__init__(message, "deadline_passed")


class DuplicateSubmissionError(ProgressError):
    def __init__(self, message: str = "Already submitted"):
        super().__init__(message, "duplicate_submission")


class NotSubmittedError(ProgressError):
    """Grading something that was never submitted."""

    def __init__(self, message: str = "Nothing has been submitted yet"):
        super().__init__(message, "not_submitted")


class ClientProgressRejectedError(ProgressError):
    def __init__(
        self,
        message: str = "Progress is calculated by the server and cannot be set",
    ):
        super().__init__(message, "progress_not_writable")


class ConcurrentUpdateError(ProgressError):
    """Conditional enrollment write kept losing to other writers."""

    def __init__(self, message: str = "Enrollment was modified concurrently, retry"):
        super().__init__(message, "concurrent_update")


@dataclass
class QuizOutcome:
    """Graded quiz attempt plus the enrollment state after it."""

    score: int
    correct_answers: int
    total_questions: int
    passed: bool
    quiz: QuizProgress
    enrollment: Enrollment


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for learner progress."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        course_service: "CourseService",
        weights: ProgressWeights = DEFAULT_WEIGHTS,
        thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
        max_write_attempts: int = 3,
    ):
        """Initialize with Cassandra session and the course lookups."""
        self.session = session
        self.keyspace = keyspace
        self.course_service = course_service
        self.weights = weights
        self.thresholds = thresholds
        self.max_write_attempts = max(1, max_write_attempts)
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace

        # Enrollments
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {ks}.enrollments
            WHERE course_id = ? AND user_id = ?
        """)

        self._get_course_enrollments = self.session.prepare(f"""
            SELECT * FROM {ks}.enrollments WHERE course_id = ?
        """)

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {ks}.enrollments
            (course_id, user_id, status, progress, completed, completed_at,
             enrolled_at, time_spent, last_accessed_at, revision)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_enrollment_progress = self.session.prepare(f"""
            UPDATE {ks}.enrollments
            SET status = ?, progress = ?, completed = ?, completed_at = ?,
                revision = ?
            WHERE course_id = ? AND user_id = ?
            IF revision = ?
        """)

        self._update_enrollment_activity = self.session.prepare(f"""
            UPDATE {ks}.enrollments
            SET time_spent = ?, last_accessed_at = ?, revision = ?
            WHERE course_id = ? AND user_id = ?
            IF revision = ?
        """)

        self._delete_course_enrollments = self.session.prepare(f"""
            DELETE FROM {ks}.enrollments WHERE course_id = ?
        """)

        # Enrollments by user (lookup), stamped with the enrollment revision
        self._insert_user_enrollment = self.session.prepare(f"""
            INSERT INTO {ks}.enrollments_by_user
            (user_id, course_id, status, progress, completed, enrolled_at,
             time_spent, last_accessed_at, revision)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_user_enrollment = self.session.prepare(f"""
            UPDATE {ks}.enrollments_by_user
            SET status = ?, progress = ?, completed = ?, enrolled_at = ?,
                time_spent = ?, last_accessed_at = ?, revision = ?
            WHERE user_id = ? AND course_id = ?
            IF revision < ?
        """)

        self._get_user_enrollments = self.session.prepare(f"""
            SELECT * FROM {ks}.enrollments_by_user WHERE user_id = ?
        """)

        self._delete_user_enrollment = self.session.prepare(f"""
            DELETE FROM {ks}.enrollments_by_user
            WHERE user_id = ? AND course_id = ?
        """)

        # Module progress
        self._get_module_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.module_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ?
        """)

        self._get_course_module_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.module_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._insert_module_progress = self.session.prepare(f"""
            INSERT INTO {ks}.module_progress
            (user_id, course_id, module_id, section_id, completed, completed_at,
             time_spent, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._complete_module_if_open = self.session.prepare(f"""
            UPDATE {ks}.module_progress
            SET completed = true, completed_at = ?, last_accessed_at = ?
            WHERE user_id = ? AND course_id = ? AND module_id = ?
            IF completed = false
        """)

        self._touch_module_progress = self.session.prepare(f"""
            UPDATE {ks}.module_progress
            SET time_spent = ?, last_accessed_at = ?
            WHERE user_id = ? AND course_id = ? AND module_id = ?
        """)

        # Assignment progress
        self._get_assignment_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.assignment_progress
            WHERE user_id = ? AND course_id = ? AND assignment_id = ?
        """)

        self._get_course_assignment_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.assignment_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_assignment_progress = self.session.prepare(f"""
            INSERT INTO {ks}.assignment_progress
            (user_id, course_id, assignment_id, submitted, submitted_at,
             submission_type, submission, score, graded, graded_at, feedback)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Project progress
        self._get_project_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.project_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_project_progress = self.session.prepare(f"""
            INSERT INTO {ks}.project_progress
            (user_id, course_id, submitted, submitted_at, submission_type,
             submission, score, reviewed, reviewed_at, feedback)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Quiz progress
        self._get_quiz_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.quiz_progress
            WHERE user_id = ? AND course_id = ? AND quiz_id = ?
        """)

        self._get_course_quiz_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.quiz_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_quiz_progress = self.session.prepare(f"""
            INSERT INTO {ks}.quiz_progress
            (user_id, course_id, quiz_id, score, best_score, attempts, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        # Section progress
        self._get_course_section_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.section_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._insert_section_progress = self.session.prepare(f"""
            INSERT INTO {ks}.section_progress
            (user_id, course_id, section_id, completed, completed_at,
             modules_completed, total_modules, revision)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_section_progress = self.session.prepare(f"""
            UPDATE {ks}.section_progress
            SET completed = ?, completed_at = ?, modules_completed = ?,
                total_modules = ?, revision = ?
            WHERE user_id = ? AND course_id = ? AND section_id = ?
            IF revision < ?
        """)

        self._delete_child_progress = [
            self.session.prepare(
                f"DELETE FROM {ks}.{table} WHERE user_id = ? AND course_id = ?"
            )
            for table in PROGRESS_CHILD_TABLES
        ]

    async def _execute_conditional(self, statement: Any, params: list[Any]) -> bool:
        """Run a lightweight transaction and report whether it was applied."""
        result = await self.session.aexecute(statement, params)
        return bool(result.was_applied)

    async def _write_if_newer(
        self,
        update: Any,
        insert: Any,
        key: list[Any],
        values: list[Any],
        revision: int,
    ) -> bool:
        """Write a revision-stamped derived row unless a newer one is stored.

        ``update`` is conditioned on ``IF revision < ?`` and takes
        ``[*values, revision, *key, revision]``; ``insert`` is
        ``IF NOT EXISTS`` and takes ``[*key, *values, revision]``. A failed
        update whose row carries no revision means the row is missing.

        Returns:
            False if a write from a later revision is already stored
        """
        for _ in range(2):
            result = await self.session.aexecute(
                update, [*values, revision, *key, revision]
            )
            if result.was_applied:
                return True
            if getattr(result.one(), "revision", None) is not None:
                logger.debug(
                    "stale_revision_write_skipped",
                    key=[str(k) for k in key],
                    revision=revision,
                )
                return False
            if await self._execute_conditional(insert, [*key, *values, revision]):
                return True
        return False

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def _require_course(self, course_id: UUID) -> Course:
        course = await self.course_service.get_course(course_id)
        if course is None:
            raise CourseNotFoundError
        return course

    @staticmethod
    def _require_module(course: Course, module_id: UUID) -> CourseModule:
        module = course.find_module(module_id)
        if module is None:
            raise ModuleNotFoundError
        return module

    async def get_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        """Get the enrollment row without component progress."""
        result = await self.session.aexecute(self._get_enrollment, [course_id, user_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def _require_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment:
        enrollment = await self.get_enrollment(user_id, course_id)
        if enrollment is None:
            raise NotEnrolledError
        return enrollment

    async def load_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment:
        """Get an enrollment together with all of its component progress.

        Raises:
            NotEnrolledError: If the user is not enrolled in the course
        """
        enrollment = await self._require_enrollment(user_id, course_id)
        key = [user_id, course_id]

        rows = await self.session.aexecute(self._get_course_module_progress, key)
        enrollment.module_progress = [ModuleProgress.from_row(r) for r in rows]

        rows = await self.session.aexecute(self._get_course_assignment_progress, key)
        enrollment.assignment_progress = [AssignmentProgress.from_row(r) for r in rows]

        result = await self.session.aexecute(self._get_project_progress, key)
        row = result.one()
        enrollment.project_progress = ProjectProgress.from_row(row) if row else None

        rows = await self.session.aexecute(self._get_course_quiz_progress, key)
        enrollment.quiz_progress = [QuizProgress.from_row(r) for r in rows]

        rows = await self.session.aexecute(self._get_course_section_progress, key)
        enrollment.section_progress = [SectionProgress.from_row(r) for r in rows]

        return enrollment

    async def get_user_enrollments(self, user_id: UUID) -> list[Enrollment]:
        """Get a user's enrollments, most recently accessed first."""
        rows = await self.session.aexecute(self._get_user_enrollments, [user_id])
        enrollments = [Enrollment.from_row(row) for row in rows]
        enrollments.sort(
            key=lambda e: e.last_accessed_at or e.enrolled_at,
            reverse=True,
        )
        return enrollments

    async def get_course_enrollments(self, course_id: UUID) -> list[Enrollment]:
        """Get every enrollment of a course."""
        rows = await self.session.aexecute(self._get_course_enrollments, [course_id])
        return [Enrollment.from_row(row) for row in rows]

    async def get_course_progress(self, user_id: UUID, course_id: UUID) -> Enrollment:
        """Get the full progress of one enrollment."""
        return await self.load_enrollment(user_id, course_id)

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll_user(self, user_id: UUID, course_id: UUID) -> Enrollment:
        """Enroll a user in a course.

        Raises:
            CourseNotFoundError: If the course does not exist
            AlreadyEnrolledError: If an enrollment already exists
        """
        await self._require_course(course_id)

        now = datetime.now(UTC)
        enrollment = Enrollment(
            course_id=course_id,
            user_id=user_id,
            status=EnrollmentStatus.ACTIVE.value,
            enrolled_at=now,
            last_accessed_at=now,
        )

        applied = await self._execute_conditional(
            self._insert_enrollment,
            [
                enrollment.course_id,
                enrollment.user_id,
                enrollment.status,
                enrollment.progress,
                enrollment.completed,
                enrollment.completed_at,
                enrollment.enrolled_at,
                enrollment.time_spent,
                enrollment.last_accessed_at,
                enrollment.revision,
            ],
        )
        if not applied:
            raise AlreadyEnrolledError

        await self._sync_user_enrollment(enrollment)

        logger.info(
            "user_enrolled",
            user_id=str(user_id),
            course_id=str(course_id),
        )
        return enrollment

    async def _sync_user_enrollment(self, enrollment: Enrollment) -> None:
        """Mirror the enrollment row into the by-user lookup table."""
        await self._write_if_newer(
            self._update_user_enrollment,
            self._insert_user_enrollment,
            [enrollment.user_id, enrollment.course_id],
            [
                enrollment.status,
                enrollment.progress,
                enrollment.completed,
                enrollment.enrolled_at,
                enrollment.time_spent,
                enrollment.last_accessed_at,
            ],
            enrollment.revision,
        )

    async def record_time_spent(
        self,
        user_id: UUID,
        course_id: UUID,
        minutes: int,
        progress: int | None = None,
    ) -> Enrollment:
        """Add minutes to an enrollment.

        Raises:
            ClientProgressRejectedError: If a progress value is supplied
            NotEnrolledError: If the user is not enrolled
        """
        if progress is not None:
            raise ClientProgressRejectedError
        return await self._record_activity(user_id, course_id, minutes)

    async def _record_activity(
        self, user_id: UUID, course_id: UUID, minutes: int = 0
    ) -> Enrollment:
        """Bump time spent and last access under the revision condition."""
        for attempt in range(1, self.max_write_attempts + 1):
            enrollment = await self._require_enrollment(user_id, course_id)
            now = datetime.now(UTC)
            time_spent = enrollment.time_spent + minutes
            revision = enrollment.revision + 1

            applied = await self._execute_conditional(
                self._update_enrollment_activity,
                [time_spent, now, revision, course_id, user_id, enrollment.revision],
            )
            if applied:
                enrollment.time_spent = time_spent
                enrollment.last_accessed_at = now
                enrollment.revision = revision
                await self._sync_user_enrollment(enrollment)
                return enrollment

            logger.warning(
                "enrollment_write_conflict",
                user_id=str(user_id),
                course_id=str(course_id),
                attempt=attempt,
                operation="activity",
            )

        raise ConcurrentUpdateError

    async def remove_course_enrollments(self, course_id: UUID) -> int:
        """Delete every enrollment of a course with its component progress.

        Returns:
            Number of enrollments removed
        """
        enrollments = await self.get_course_enrollments(course_id)
        for enrollment in enrollments:
            key = [enrollment.user_id, course_id]
            for statement in self._delete_child_progress:
                await self.session.aexecute(statement, key)
            await self.session.aexecute(self._delete_user_enrollment, key)

        await self.session.aexecute(self._delete_course_enrollments, [course_id])

        logger.info(
            "course_enrollments_removed",
            course_id=str(course_id),
            count=len(enrollments),
        )
        return len(enrollments)

    # ==========================================================================
    # Progress Recalculation
    # ==========================================================================

    @staticmethod
    def _status_for(enrollment: Enrollment, completed: bool) -> str:
        if enrollment.is_cancelled:
            return enrollment.status
        if completed:
            return EnrollmentStatus.COMPLETED.value
        return EnrollmentStatus.ACTIVE.value

    async def recalculate_progress(
        self,
        user_id: UUID,
        course_id: UUID,
        course: Course | None = None,
    ) -> Enrollment:
        """Recompute and persist the aggregated progress of an enrollment.

        The enrollment row is written with ``IF revision = ?``; when another
        writer got there first the enrollment is reloaded and recomputed,
        up to ``max_write_attempts`` times.

        Raises:
            CourseNotFoundError: If the course does not exist
            NotEnrolledError: If the user is not enrolled
            ConcurrentUpdateError: If every attempt lost the race
        """
        if course is None:
            course = await self._require_course(course_id)

        for attempt in range(1, self.max_write_attempts + 1):
            enrollment = await self.load_enrollment(user_id, course_id)
            now = datetime.now(UTC)
            result = calculate_course_progress(enrollment, course, self.weights, now)

            completed_at = (enrollment.completed_at or now) if result.completed else None
            status = self._status_for(enrollment, result.completed)
            revision = enrollment.revision + 1

            applied = await self._execute_conditional(
                self._update_enrollment_progress,
                [
                    status,
                    result.progress,
                    result.completed,
                    completed_at,
                    revision,
                    course_id,
                    user_id,
                    enrollment.revision,
                ],
            )
            if not applied:
                logger.warning(
                    "enrollment_write_conflict",
                    user_id=str(user_id),
                    course_id=str(course_id),
                    attempt=attempt,
                    operation="recalculate",
                )
                continue

            enrollment.status = status
            enrollment.progress = result.progress
            enrollment.completed = result.completed
            enrollment.completed_at = completed_at
            enrollment.revision = revision
            enrollment.section_progress = result.section_progress

            for section in result.section_progress:
                await self._write_if_newer(
                    self._update_section_progress,
                    self._insert_section_progress,
                    [user_id, course_id, section.section_id],
                    [
                        section.completed,
                        section.completed_at,
                        section.modules_completed,
                        section.total_modules,
                    ],
                    revision,
                )
            await self._sync_user_enrollment(enrollment)

            logger.info(
                "progress_recalculated",
                user_id=str(user_id),
                course_id=str(course_id),
                progress=result.progress,
                completed=result.completed,
                modules=f"{result.modules_completed}/{result.modules_total}",
                assignments=f"{result.assignments_passed}/{result.assignments_total}",
                project_passed=result.project_passed,
            )
            return enrollment

        logger.error(
            "enrollment_write_exhausted",
            user_id=str(user_id),
            course_id=str(course_id),
            attempts=self.max_write_attempts,
        )
        raise ConcurrentUpdateError

    async def _refresh_after_replay(
        self, user_id: UUID, course_id: UUID, course: Course
    ) -> None:
        """Recalculate before rejecting a repeated component event.

        A component write is committed before the enrollment write, so a
        request that failed in between leaves the aggregate behind until
        the next recalculation; the client's retry is that recalculation.
        """
        enrollment = await self.recalculate_progress(user_id, course_id, course)
        logger.debug(
            "progress_refreshed_on_replay",
            user_id=str(user_id),
            course_id=str(course_id),
            progress=enrollment.progress,
        )

    # ==========================================================================
    # Module Operations
    # ==========================================================================

    async def _get_module_progress_row(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> ModuleProgress | None:
        result = await self.session.aexecute(
            self._get_module_progress, [user_id, course_id, module_id]
        )
        row = result.one()
        return ModuleProgress.from_row(row) if row else None

    async def _ensure_module_progress(
        self, user_id: UUID, course_id: UUID, module: CourseModule, now: datetime
    ) -> ModuleProgress:
        """Get the module progress row, creating an open one if missing."""
        existing = await self._get_module_progress_row(
            user_id, course_id, module.module_id
        )
        if existing:
            return existing

        progress = ModuleProgress(
            module_id=module.module_id,
            section_id=module.section_id,
            completed=False,
            time_spent=0,
            last_accessed_at=now,
        )
        applied = await self._execute_conditional(
            self._insert_module_progress,
            [
                user_id,
                course_id,
                progress.module_id,
                progress.section_id,
                progress.completed,
                progress.completed_at,
                progress.time_spent,
                progress.last_accessed_at,
            ],
        )
        if applied:
            return progress

        # Created concurrently by another request
        existing = await self._get_module_progress_row(
            user_id, course_id, module.module_id
        )
        return existing or progress

    async def _complete_module(
        self, user_id: UUID, course_id: UUID, module: CourseModule, now: datetime
    ) -> bool:
        """Mark a module complete; False if it already was."""
        progress = await self._ensure_module_progress(user_id, course_id, module, now)
        if progress.completed:
            return False
        return await self._execute_conditional(
            self._complete_module_if_open,
            [now, now, user_id, course_id, module.module_id],
        )

    async def track_module_access(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> ModuleProgress:
        """Record that a learner opened a module."""
        course = await self._require_course(course_id)
        module = self._require_module(course, module_id)
        await self._require_enrollment(user_id, course_id)

        now = datetime.now(UTC)
        progress = await self._ensure_module_progress(user_id, course_id, module, now)
        if progress.last_accessed_at != now:
            await self.session.aexecute(
                self._touch_module_progress,
                [progress.time_spent, now, user_id, course_id, module_id],
            )
            progress.last_accessed_at = now

        await self._record_activity(user_id, course_id)

        logger.debug(
            "module_accessed",
            user_id=str(user_id),
            course_id=str(course_id),
            module_id=str(module_id),
        )
        return progress

    async def mark_module_complete(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> Enrollment:
        """Complete a module and recalculate the enrollment.

        Raises:
            CourseNotFoundError: If the course does not exist
            ModuleNotFoundError: If the module is not in the course
            NotEnrolledError: If the user is not enrolled
            ModuleAlreadyCompletedError: If the module was already completed
        """
        course = await self._require_course(course_id)
        module = self._require_module(course, module_id)
        await self._require_enrollment(user_id, course_id)

        if not await self._complete_module(
            user_id, course_id, module, datetime.now(UTC)
        ):
            await self._refresh_after_replay(user_id, course_id, course)
            raise ModuleAlreadyCompletedError

        logger.info(
            "module_completed",
            user_id=str(user_id),
            course_id=str(course_id),
            module_id=str(module_id),
        )
        return await self.recalculate_progress(user_id, course_id, course)

    async def track_module_time(
        self, user_id: UUID, course_id: UUID, module_id: UUID, minutes: int
    ) -> tuple[ModuleProgress, Enrollment]:
        """Add minutes to a module and to the enrollment total.

        Returns:
            Tuple of (module progress, enrollment) after the update
        """
        course = await self._require_course(course_id)
        module = self._require_module(course, module_id)
        await self._require_enrollment(user_id, course_id)

        now = datetime.now(UTC)
        progress = await self._ensure_module_progress(user_id, course_id, module, now)
        progress.time_spent += minutes
        progress.last_accessed_at = now
        await self.session.aexecute(
            self._touch_module_progress,
            [progress.time_spent, now, user_id, course_id, module_id],
        )

        enrollment = await self._record_activity(user_id, course_id, minutes)
        return progress, enrollment

    # ==========================================================================
    # Submissions
    # ==========================================================================

    @staticmethod
    def _check_submission(
        submission_type: str,
        accepted_types: list[str],
        due_date: datetime | None,
        now: datetime,
    ) -> None:
        if submission_type not in accepted_types:
            raise InvalidSubmissionError(
                f"Submission type '{submission_type}' is not accepted; "
                f"expected one of: {', '.join(accepted_types)}"
            )
        due = ensure_utc_aware(due_date)
        if due is not None and now > due:
            raise DeadlinePassedError

    async def _save_assignment(
        self, user_id: UUID, course_id: UUID, progress: AssignmentProgress
    ) -> None:
        await self.session.aexecute(
            self._upsert_assignment_progress,
            [
                user_id,
                course_id,
                progress.assignment_id,
                progress.submitted,
                progress.submitted_at,
                progress.submission_type,
                progress.submission,
                progress.score,
                progress.graded,
                progress.graded_at,
                progress.feedback,
            ],
        )

    async def _save_project(
        self, user_id: UUID, course_id: UUID, progress: ProjectProgress
    ) -> None:
        await self.session.aexecute(
            self._upsert_project_progress,
            [
                user_id,
                course_id,
                progress.submitted,
                progress.submitted_at,
                progress.submission_type,
                progress.submission,
                progress.score,
                progress.reviewed,
                progress.reviewed_at,
                progress.feedback,
            ],
        )

    async def _get_assignment_row(
        self, user_id: UUID, course_id: UUID, assignment_id: UUID
    ) -> AssignmentProgress | None:
        result = await self.session.aexecute(
            self._get_assignment_progress, [user_id, course_id, assignment_id]
        )
        row = result.one()
        return AssignmentProgress.from_row(row) if row else None

    async def _get_project_row(
        self, user_id: UUID, course_id: UUID
    ) -> ProjectProgress | None:
        result = await self.session.aexecute(
            self._get_project_progress, [user_id, course_id]
        )
        row = result.one()
        return ProjectProgress.from_row(row) if row else None

    async def submit_assignment(
        self,
        user_id: UUID,
        course_id: UUID,
        assignment_id: UUID,
        submission_type: str,
        submission: str,
    ) -> Enrollment:
        """Submit an assignment and recalculate.

        Raises:
            AssignmentNotFoundError: If the assignment is not in the course
            InvalidSubmissionError: If the submission type is not accepted
            DeadlinePassedError: If the due date is in the past
            DuplicateSubmissionError: If it was already submitted
        """
        course = await self._require_course(course_id)
        assignment = course.find_assignment(assignment_id)
        if assignment is None:
            raise AssignmentNotFoundError
        await self._require_enrollment(user_id, course_id)

        now = datetime.now(UTC)
        self._check_submission(
            submission_type, assignment.submission_types, assignment.due_date, now
        )

        existing = await self._get_assignment_row(user_id, course_id, assignment_id)
        if existing and existing.submitted:
            await self._refresh_after_replay(user_id, course_id, course)
            raise DuplicateSubmissionError("Assignment already submitted")

        await self._save_assignment(
            user_id,
            course_id,
            AssignmentProgress(
                assignment_id=assignment_id,
                submitted=True,
                submitted_at=now,
                submission_type=submission_type,
                submission=submission,
            ),
        )

        logger.info(
            "assignment_submitted",
            user_id=str(user_id),
            course_id=str(course_id),
            assignment_id=str(assignment_id),
            submission_type=submission_type,
        )
        return await self.recalculate_progress(user_id, course_id, course)

    async def submit_project(
        self,
        user_id: UUID,
        course_id: UUID,
        submission_type: str,
        submission: str,
    ) -> Enrollment:
        """Submit the course project and recalculate.

        Raises:
            InvalidSubmissionError: If the course has no project or the type
                is not accepted
            DeadlinePassedError: If the due date is in the past
            DuplicateSubmissionError: If it was already submitted
        """
        course = await self._require_course(course_id)
        if course.project is None:
            raise InvalidSubmissionError("This course has no project")
        await self._require_enrollment(user_id, course_id)

        now = datetime.now(UTC)
        self._check_submission(
            submission_type,
            course.project.submission_types,
            course.project.due_date,
            now,
        )

        existing = await self._get_project_row(user_id, course_id)
        if existing and existing.submitted:
            await self._refresh_after_replay(user_id, course_id, course)
            raise DuplicateSubmissionError("Project already submitted")

        await self._save_project(
            user_id,
            course_id,
            ProjectProgress(
                submitted=True,
                submitted_at=now,
                submission_type=submission_type,
                submission=submission,
            ),
        )

        logger.info(
            "project_submitted",
            user_id=str(user_id),
            course_id=str(course_id),
            submission_type=submission_type,
        )
        return await self.recalculate_progress(user_id, course_id, course)

    async def submit_quiz(
        self,
        user_id: UUID,
        course_id: UUID,
        quiz_id: UUID,
        answers: list[str],
    ) -> QuizOutcome:
        """Grade a quiz attempt; a passing score completes the quiz module.

        Answers are matched to questions by position; missing answers count
        as wrong. Passing a quiz whose module is already complete is not an
        error.
        """
        course = await self._require_course(course_id)
        module = course.find_module(quiz_id)
        if module is None or not module.is_quiz:
            raise QuizNotFoundError
        await self._require_enrollment(user_id, course_id)

        total = len(module.questions)
        correct = sum(
            1
            for i, question in enumerate(module.questions)
            if i < len(answers) and answers[i] == question.correct_answer
        )
        score = round_half_up(correct / total * 100) if total else 0
        passed = score >= self.weights.passing_score

        now = datetime.now(UTC)
        result = await self.session.aexecute(
            self._get_quiz_progress, [user_id, course_id, quiz_id]
        )
        row = result.one()
        previous = QuizProgress.from_row(row) if row else QuizProgress(quiz_id=quiz_id)

        quiz = QuizProgress(
            quiz_id=quiz_id,
            score=score,
            best_score=max(previous.best_score, score),
            attempts=previous.attempts + 1,
            completed_at=now,
        )
        await self.session.aexecute(
            self._upsert_quiz_progress,
            [
                user_id,
                course_id,
                quiz_id,
                quiz.score,
                quiz.best_score,
                quiz.attempts,
                quiz.completed_at,
            ],
        )

        if passed:
            await self._complete_module(user_id, course_id, module, now)

        logger.info(
            "quiz_submitted",
            user_id=str(user_id),
            course_id=str(course_id),
            quiz_id=str(quiz_id),
            score=score,
            passed=passed,
            attempts=quiz.attempts,
        )

        enrollment = await self.recalculate_progress(user_id, course_id, course)
        return QuizOutcome(
            score=score,
            correct_answers=correct,
            total_questions=total,
            passed=passed,
            quiz=quiz,
            enrollment=enrollment,
        )

    # ==========================================================================
    # Grading
    # ==========================================================================

    async def grade_assignment(
        self,
        user_id: UUID,
        course_id: UUID,
        assignment_id: UUID,
        score: int,
        feedback: str | None = None,
    ) -> Enrollment:
        """Grade a submitted assignment and recalculate.

        Raises:
            AssignmentNotFoundError: If the assignment is not in the course
            NotSubmittedError: If the learner has not submitted it
        """
        course = await self._require_course(course_id)
        if course.find_assignment(assignment_id) is None:
            raise AssignmentNotFoundError
        await self._require_enrollment(user_id, course_id)

        progress = await self._get_assignment_row(user_id, course_id, assignment_id)
        if progress is None or not progress.submitted:
            raise NotSubmittedError

        progress.score = score
        progress.graded = True
        progress.graded_at = datetime.now(UTC)
        progress.feedback = feedback
        await self._save_assignment(user_id, course_id, progress)

        logger.info(
            "assignment_graded",
            user_id=str(user_id),
            course_id=str(course_id),
            assignment_id=str(assignment_id),
            score=score,
        )
        return await self.recalculate_progress(user_id, course_id, course)

    async def grade_project(
        self,
        user_id: UUID,
        course_id: UUID,
        score: int,
        feedback: str | None = None,
    ) -> Enrollment:
        """Review a submitted project and recalculate."""
        course = await self._require_course(course_id)
        if not course.has_project:
            raise InvalidSubmissionError("This course has no project")
        await self._require_enrollment(user_id, course_id)

        progress = await self._get_project_row(user_id, course_id)
        if progress is None or not progress.submitted:
            raise NotSubmittedError

        progress.score = score
        progress.reviewed = True
        progress.reviewed_at = datetime.now(UTC)
        progress.feedback = feedback
        await self._save_project(user_id, course_id, progress)

        logger.info(
            "project_graded",
            user_id=str(user_id),
            course_id=str(course_id),
            score=score,
        )
        return await self.recalculate_progress(user_id, course_id, course)

    async def admin_mark_complete(
        self,
        user_id: UUID,
        course_id: UUID,
        scope: MarkCompleteScope = MarkCompleteScope.ALL,
        section_ids: list[UUID] | None = None,
        module_ids: list[UUID] | None = None,
    ) -> Enrollment:
        """Mark parts of a course complete on behalf of a learner.

        ``all`` also grades every assignment and the project at 100, keeping
        feedback an instructor already wrote. Unknown section or module ids
        are ignored.
        """
        course = await self._require_course(course_id)
        enrollment = await self.load_enrollment(user_id, course_id)
        now = datetime.now(UTC)

        if scope == MarkCompleteScope.SECTIONS:
            wanted = set(section_ids or [])
            modules = [
                m for s in course.sections if s.section_id in wanted for m in s.modules
            ]
        elif scope == MarkCompleteScope.MODULES:
            wanted = set(module_ids or [])
            modules = [m for m in course.modules if m.module_id in wanted]
        else:
            modules = course.modules

        newly_completed = 0
        for module in modules:
            if await self._complete_module(user_id, course_id, module, now):
                newly_completed += 1

        if scope == MarkCompleteScope.ALL:
            for assignment in course.assignments:
                existing = enrollment.find_assignment(assignment.assignment_id)
                await self._save_assignment(
                    user_id,
                    course_id,
                    AssignmentProgress(
                        assignment_id=assignment.assignment_id,
                        submitted=True,
                        submitted_at=(existing.submitted_at if existing else None) or now,
                        submission_type=existing.submission_type if existing else None,
                        submission=existing.submission if existing else None,
                        score=100,
                        graded=True,
                        graded_at=now,
                        feedback=(existing.feedback if existing else None)
                        or ADMIN_COMPLETION_FEEDBACK,
                    ),
                )

            if course.has_project:
                existing = enrollment.project_progress
                await self._save_project(
                    user_id,
                    course_id,
                    ProjectProgress(
                        submitted=True,
                        submitted_at=(existing.submitted_at if existing else None) or now,
                        submission_type=existing.submission_type if existing else None,
                        submission=existing.submission if existing else None,
                        score=100,
                        reviewed=True,
                        reviewed_at=now,
                        feedback=(existing.feedback if existing else None)
                        or ADMIN_COMPLETION_FEEDBACK,
                    ),
                )

        logger.info(
            "admin_marked_complete",
            user_id=str(user_id),
            course_id=str(course_id),
            scope=scope.value,
            modules_completed=newly_completed,
        )
        return await self.recalculate_progress(user_id, course_id, course)

    # ==========================================================================
    # Overview
    # ==========================================================================

    async def get_progress_overview(
        self, user_id: UUID, now: datetime | None = None
    ) -> ProgressOverviewResponse:
        """Summarise every open enrollment of a user with its risk level.

        Cancelled enrollments and enrollments whose course no longer exists
        are left out.
        """
        now = now or datetime.now(UTC)
        enrollments = await self.get_user_enrollments(user_id)

        courses: list[CourseOverviewItem] = []
        for enrollment in enrollments:
            if enrollment.is_cancelled:
                continue
            course = await self.course_service.get_course(enrollment.course_id)
            if course is None:
                continue

            courses.append(
                CourseOverviewItem(
                    course_id=course.id,
                    name=course.title,
                    percentage=enrollment.progress,
                    risk_level=classify_risk(
                        enrollment, course.duration, now, self.thresholds
                    ),
                    time_spent=round_half_up(enrollment.time_spent / 60),
                    enrolled_at=enrollment.enrolled_at,
                    estimated_duration=course.duration or DEFAULT_ESTIMATED_DURATION,
                )
            )

        stats = OverviewStats(
            at_risk=sum(1 for c in courses if c.risk_level != RiskLevel.NONE),
            on_track=sum(
                1
                for c in courses
                if c.risk_level == RiskLevel.NONE and c.percentage < 100
            ),
            completed=sum(1 for c in courses if c.percentage == 100),
            total=len(courses),
        )
        return ProgressOverviewResponse(courses=courses, stats=stats)
