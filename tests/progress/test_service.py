"""Tests for ProgressService with a mocked Cassandra session."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from coursetrack.courses.models import ModuleType, Project, QuizQuestion
from coursetrack.courses.service import CourseService
from coursetrack.progress.models import (
    AssignmentProgress,
    Enrollment,
    EnrollmentStatus,
    ModuleProgress,
    RiskLevel,
)
from coursetrack.progress.schemas import MarkCompleteScope
from coursetrack.progress.service import (
    AlreadyEnrolledError,
    AssignmentNotFoundError,
    ClientProgressRejectedError,
    ConcurrentUpdateError,
    CourseNotFoundError,
    DeadlinePassedError,
    DuplicateSubmissionError,
    InvalidSubmissionError,
    ModuleAlreadyCompletedError,
    ModuleNotFoundError,
    NotEnrolledError,
    NotSubmittedError,
    ProgressService,
    QuizNotFoundError,
)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def course_service() -> AsyncMock:
    return AsyncMock(spec=CourseService)


@pytest.fixture
def service(mock_session, cql, course_service) -> ProgressService:
    return ProgressService(
        session=mock_session,
        keyspace="test_keyspace",
        course_service=course_service,
        max_write_attempts=3,
    )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


def enrollment_row(user_id: UUID, course_id: UUID, **overrides) -> SimpleNamespace:
    values = {
        "course_id": course_id,
        "user_id": user_id,
        "status": EnrollmentStatus.ACTIVE.value,
        "progress": 0,
        "completed": False,
        "completed_at": None,
        "enrolled_at": datetime.now(UTC) - timedelta(days=2),
        "time_spent": 0,
        "last_accessed_at": None,
        "revision": 4,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def module_row(module_id: UUID, completed: bool) -> SimpleNamespace:
    return SimpleNamespace(
        module_id=module_id,
        section_id=uuid4(),
        completed=completed,
        completed_at=None,
        time_spent=5,
        last_accessed_at=None,
    )


def assignment_row(assignment_id: UUID, submitted: bool = True) -> SimpleNamespace:
    return SimpleNamespace(
        assignment_id=assignment_id,
        submitted=submitted,
        submitted_at=datetime.now(UTC),
        submission_type="text",
        submission="answer",
        score=None,
        graded=False,
        graded_at=None,
        feedback=None,
    )


# ==============================================================================
# Enrollment
# ==============================================================================


class TestEnrollUser:
    @pytest.mark.asyncio
    async def test_unknown_course(self, service, course_service, user_id) -> None:
        course_service.get_course.return_value = None

        with pytest.raises(CourseNotFoundError):
            await service.enroll_user(user_id, uuid4())

    @pytest.mark.asyncio
    async def test_already_enrolled(
        self, service, course_service, cql, course_factory, user_id
    ) -> None:
        course = course_factory()
        course_service.get_course.return_value = course
        cql.applied(service._insert_enrollment, False)

        with pytest.raises(AlreadyEnrolledError):
            await service.enroll_user(user_id, course.id)

        assert cql.calls_to(service._update_user_enrollment) == []
        assert cql.calls_to(service._insert_user_enrollment) == []

    @pytest.mark.asyncio
    async def test_enroll_writes_both_tables(
        self, service, course_service, cql, course_factory, user_id
    ) -> None:
        course = course_factory()
        course_service.get_course.return_value = course
        cql.applied(service._update_user_enrollment, False)

        enrollment = await service.enroll_user(user_id, course.id)

        assert enrollment.progress == 0
        assert enrollment.completed is False
        assert enrollment.revision == 0
        assert len(cql.calls_to(service._insert_enrollment)) == 1
        lookup = cql.calls_to(service._insert_user_enrollment)
        assert lookup[0][:2] == [user_id, course.id]
        assert lookup[0][-1] == 0


class TestRecordTimeSpent:
    @pytest.mark.asyncio
    async def test_client_progress_is_rejected(self, service, cql, user_id) -> None:
        with pytest.raises(ClientProgressRejectedError):
            await service.record_time_spent(user_id, uuid4(), 10, progress=100)

        assert cql.calls == []

    @pytest.mark.asyncio
    async def test_adds_minutes(self, service, cql, user_id) -> None:
        course_id = uuid4()
        cql.rows(
            service._get_enrollment,
            [enrollment_row(user_id, course_id, time_spent=30)],
        )

        enrollment = await service.record_time_spent(user_id, course_id, 15)

        assert enrollment.time_spent == 45
        assert enrollment.revision == 5
        params = cql.calls_to(service._update_enrollment_activity)[0]
        assert params[0] == 45
        assert params[-1] == 4  # expected revision

    @pytest.mark.asyncio
    async def test_not_enrolled(self, service, user_id) -> None:
        with pytest.raises(NotEnrolledError):
            await service.record_time_spent(user_id, uuid4(), 15)


# ==============================================================================
# Recalculation
# ==============================================================================


class TestRecalculateProgress:
    @pytest.fixture
    def course(self, course_factory, section_factory, assignment_factory):
        return course_factory(
            sections=[section_factory(4)],
            assignments=[assignment_factory(0), assignment_factory(1)],
        )

    @pytest.fixture
    def enrollment(self, course, user_id) -> Enrollment:
        modules = course.modules
        return Enrollment(
            course_id=course.id,
            user_id=user_id,
            revision=7,
            module_progress=[
                ModuleProgress(module_id=m.module_id, completed=True)
                for m in modules[:2]
            ],
            assignment_progress=[
                AssignmentProgress(
                    assignment_id=course.assignments[0].assignment_id,
                    submitted=True,
                    score=80,
                )
            ],
        )

    @pytest.mark.asyncio
    async def test_writes_with_revision_condition(
        self, service, cql, course, enrollment, user_id
    ) -> None:
        service.load_enrollment = AsyncMock(return_value=enrollment)

        result = await service.recalculate_progress(user_id, course.id, course)

        assert result.progress == 35
        assert result.completed is False
        assert result.revision == 8
        params = cql.calls_to(service._update_enrollment_progress)[0]
        assert params[1] == 35
        assert params[4] == 8
        assert params[-1] == 7
        assert len(cql.calls_to(service._update_section_progress)) == 1
        mirror = cql.calls_to(service._update_user_enrollment)
        assert mirror[0][1] == 35
        assert mirror[0][-1] == 8

    @pytest.mark.asyncio
    async def test_late_lookup_write_keeps_newer_revision(
        self, service, cql, course, enrollment, user_id
    ) -> None:
        """Rows already stamped by a later recalculation are left alone."""
        service.load_enrollment = AsyncMock(return_value=enrollment)
        newer = SimpleNamespace(revision=9)
        cql.conflict(service._update_user_enrollment, newer)
        cql.conflict(service._update_section_progress, newer)

        result = await service.recalculate_progress(user_id, course.id, course)

        assert result.revision == 8
        mirror = cql.calls_to(service._update_user_enrollment)
        assert len(mirror) == 1
        assert mirror[0][-1] == 8
        assert cql.calls_to(service._insert_user_enrollment) == []
        assert cql.calls_to(service._insert_section_progress) == []

    @pytest.mark.asyncio
    async def test_missing_lookup_rows_are_inserted(
        self, service, cql, course, enrollment, user_id
    ) -> None:
        service.load_enrollment = AsyncMock(return_value=enrollment)
        cql.applied(service._update_user_enrollment, False)
        cql.applied(service._update_section_progress, False)

        await service.recalculate_progress(user_id, course.id, course)

        inserted = cql.calls_to(service._insert_user_enrollment)
        assert len(inserted) == 1
        assert inserted[0][:2] == [user_id, course.id]
        assert inserted[0][3] == 35
        assert inserted[0][-1] == 8
        sections = cql.calls_to(service._insert_section_progress)
        assert len(sections) == 1
        assert sections[0][-1] == 8

    @pytest.mark.asyncio
    async def test_interleaved_recalculations_keep_newest_lookup_row(
        self, service, cql, course, user_id
    ) -> None:
        """The lookup row ends at the later revision whatever order writes land in."""
        modules = course.modules
        stored: dict[str, SimpleNamespace] = {}

        def update_lookup(params):
            current = stored.get("row")
            if current is None:
                return cql.result(applied=False)
            if current.revision >= params[-1]:
                return cql.result([current], applied=False)
            stored["row"] = SimpleNamespace(progress=params[1], revision=params[6])
            return cql.result()

        def insert_lookup(params):
            if "row" in stored:
                return cql.result([stored["row"]], applied=False)
            stored["row"] = SimpleNamespace(progress=params[3], revision=params[-1])
            return cql.result()

        cql.handle(service._update_user_enrollment, update_lookup)
        cql.handle(service._insert_user_enrollment, insert_lookup)
        slow = Enrollment(
            course_id=course.id,
            user_id=user_id,
            revision=5,
            module_progress=[
                ModuleProgress(module_id=modules[0].module_id, completed=True)
            ],
        )
        fast = Enrollment(
            course_id=course.id,
            user_id=user_id,
            revision=6,
            module_progress=[
                ModuleProgress(module_id=m.module_id, completed=True)
                for m in modules[:2]
            ],
            assignment_progress=[
                AssignmentProgress(
                    assignment_id=course.assignments[0].assignment_id,
                    submitted=True,
                    score=80,
                )
            ],
        )
        # The revision 7 lookup write lands before the older revision 6 one
        service.load_enrollment = AsyncMock(side_effect=[fast, slow])

        await service.recalculate_progress(user_id, course.id, course)
        await service.recalculate_progress(user_id, course.id, course)

        assert stored["row"].revision == 7
        assert stored["row"].progress == 35

    @pytest.mark.asyncio
    async def test_retries_after_conflict(
        self, service, cql, course, enrollment, user_id
    ) -> None:
        service.load_enrollment = AsyncMock(return_value=enrollment)
        cql.applied(service._update_enrollment_progress, False, True)

        result = await service.recalculate_progress(user_id, course.id, course)

        assert result.progress == 35
        assert service.load_enrollment.await_count == 2
        assert len(cql.calls_to(service._update_enrollment_progress)) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(
        self, service, cql, course, enrollment, user_id
    ) -> None:
        service.load_enrollment = AsyncMock(return_value=enrollment)
        cql.applied(service._update_enrollment_progress, False)

        with pytest.raises(ConcurrentUpdateError):
            await service.recalculate_progress(user_id, course.id, course)

        assert service.load_enrollment.await_count == 3
        assert cql.calls_to(service._update_user_enrollment) == []

    @pytest.mark.asyncio
    async def test_completion_sets_status_and_timestamp(
        self, service, cql, course_factory, user_id
    ) -> None:
        course = course_factory()
        service.load_enrollment = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id)
        )

        result = await service.recalculate_progress(user_id, course.id, course)

        assert result.completed is True
        assert result.status == EnrollmentStatus.COMPLETED.value
        assert result.completed_at is not None

    @pytest.mark.asyncio
    async def test_missing_course(self, service, course_service, user_id) -> None:
        course_service.get_course.return_value = None

        with pytest.raises(CourseNotFoundError):
            await service.recalculate_progress(user_id, uuid4())


# ==============================================================================
# Modules
# ==============================================================================


class TestMarkModuleComplete:
    @pytest.fixture
    def course(self, course_factory, section_factory):
        return course_factory(sections=[section_factory(2)])

    @pytest.mark.asyncio
    async def test_module_not_in_course(
        self, service, course_service, course, user_id
    ) -> None:
        course_service.get_course.return_value = course

        with pytest.raises(ModuleNotFoundError):
            await service.mark_module_complete(user_id, course.id, uuid4())

    @pytest.mark.asyncio
    async def test_not_enrolled(
        self, service, course_service, course, user_id
    ) -> None:
        course_service.get_course.return_value = course

        with pytest.raises(NotEnrolledError):
            await service.mark_module_complete(
                user_id, course.id, course.modules[0].module_id
            )

    @pytest.mark.asyncio
    async def test_already_completed_refreshes_progress(
        self, service, course_service, cql, course, user_id
    ) -> None:
        module = course.modules[0]
        course_service.get_course.return_value = course
        cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])
        cql.rows(service._get_module_progress, [module_row(module.module_id, True)])

        with pytest.raises(ModuleAlreadyCompletedError):
            await service.mark_module_complete(user_id, course.id, module.module_id)

        assert cql.calls_to(service._complete_module_if_open) == []
        assert len(cql.calls_to(service._update_enrollment_progress)) == 1

    @pytest.mark.asyncio
    async def test_retry_after_conflict_catches_progress_up(
        self, service, course_service, cql, course, user_id
    ) -> None:
        """A completion stored before a 409 shows up in progress on the retry."""
        module = course.modules[0]
        course_service.get_course.return_value = course
        cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])
        cql.rows(
            service._get_module_progress, [], [module_row(module.module_id, True)]
        )
        cql.rows(
            service._get_course_module_progress, [module_row(module.module_id, True)]
        )
        cql.applied(service._update_enrollment_progress, False, False, False, True)

        with pytest.raises(ConcurrentUpdateError):
            await service.mark_module_complete(user_id, course.id, module.module_id)
        with pytest.raises(ModuleAlreadyCompletedError):
            await service.mark_module_complete(user_id, course.id, module.module_id)

        assert len(cql.calls_to(service._complete_module_if_open)) == 1
        writes = cql.calls_to(service._update_enrollment_progress)
        assert len(writes) == 4
        assert writes[-1][1] == 20

    @pytest.mark.asyncio
    async def test_lost_completion_race(
        self, service, course_service, cql, course, user_id
    ) -> None:
        module = course.modules[0]
        course_service.get_course.return_value = course
        cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])
        cql.rows(service._get_module_progress, [module_row(module.module_id, False)])
        cql.applied(service._complete_module_if_open, False)

        with pytest.raises(ModuleAlreadyCompletedError):
            await service.mark_module_complete(user_id, course.id, module.module_id)

    @pytest.mark.asyncio
    async def test_first_completion_recalculates(
        self, service, course_service, cql, course, user_id
    ) -> None:
        module = course.modules[0]
        course_service.get_course.return_value = course
        cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])
        service.recalculate_progress = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id, progress=20)
        )

        result = await service.mark_module_complete(
            user_id, course.id, module.module_id
        )

        assert result.progress == 20
        assert len(cql.calls_to(service._insert_module_progress)) == 1
        assert len(cql.calls_to(service._complete_module_if_open)) == 1
        service.recalculate_progress.assert_awaited_once_with(
            user_id, course.id, course
        )


class TestTrackModuleTime:
    @pytest.mark.asyncio
    async def test_adds_to_module_and_enrollment(
        self, service, course_service, cql, course_factory, section_factory, user_id
    ) -> None:
        course = course_factory(sections=[section_factory(1)])
        module = course.modules[0]
        course_service.get_course.return_value = course
        cql.rows(
            service._get_enrollment,
            [enrollment_row(user_id, course.id, time_spent=100)],
        )
        cql.rows(service._get_module_progress, [module_row(module.module_id, False)])

        progress, enrollment = await service.track_module_time(
            user_id, course.id, module.module_id, 20
        )

        assert progress.time_spent == 25
        assert enrollment.time_spent == 120


# ==============================================================================
# Submissions
# ==============================================================================


class TestSubmitAssignment:
    @pytest.fixture
    def enrolled_course(self, service, course_service, cql, course_factory, user_id):
        def build(assignment):
            course = course_factory(assignments=[assignment])
            course_service.get_course.return_value = course
            cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])
            return course

        return build

    @pytest.mark.asyncio
    async def test_unknown_assignment(
        self, service, enrolled_course, assignment_factory, user_id
    ) -> None:
        course = enrolled_course(assignment_factory())

        with pytest.raises(AssignmentNotFoundError):
            await service.submit_assignment(user_id, course.id, uuid4(), "text", "x")

    @pytest.mark.asyncio
    async def test_rejects_unaccepted_type(
        self, service, enrolled_course, assignment_factory, user_id
    ) -> None:
        assignment = assignment_factory()
        course = enrolled_course(assignment)

        with pytest.raises(InvalidSubmissionError, match="file_upload"):
            await service.submit_assignment(
                user_id, course.id, assignment.assignment_id, "file_upload", "a.pdf"
            )

    @pytest.mark.asyncio
    async def test_rejects_after_due_date(
        self, service, enrolled_course, assignment_factory, user_id
    ) -> None:
        assignment = assignment_factory(due_in_days=-1)
        course = enrolled_course(assignment)

        with pytest.raises(DeadlinePassedError):
            await service.submit_assignment(
                user_id, course.id, assignment.assignment_id, "text", "late"
            )

    @pytest.mark.asyncio
    async def test_rejects_duplicate(
        self, service, cql, enrolled_course, assignment_factory, user_id
    ) -> None:
        assignment = assignment_factory()
        course = enrolled_course(assignment)
        cql.rows(
            service._get_assignment_progress,
            [assignment_row(assignment.assignment_id)],
        )

        with pytest.raises(DuplicateSubmissionError):
            await service.submit_assignment(
                user_id, course.id, assignment.assignment_id, "text", "again"
            )

        assert cql.calls_to(service._upsert_assignment_progress) == []
        assert len(cql.calls_to(service._update_enrollment_progress)) == 1

    @pytest.mark.asyncio
    async def test_saves_and_recalculates(
        self, service, cql, enrolled_course, assignment_factory, user_id
    ) -> None:
        assignment = assignment_factory()
        course = enrolled_course(assignment)
        service.recalculate_progress = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id)
        )

        await service.submit_assignment(
            user_id, course.id, assignment.assignment_id, "link", "https://x.test"
        )

        saved = cql.calls_to(service._upsert_assignment_progress)[0]
        assert saved[2] == assignment.assignment_id
        assert saved[3] is True
        assert saved[5] == "link"
        assert saved[7] is None  # not graded yet
        service.recalculate_progress.assert_awaited_once()


class TestSubmitProject:
    @pytest.mark.asyncio
    async def test_course_without_project(
        self, service, course_service, course_factory, user_id
    ) -> None:
        course = course_factory()
        course_service.get_course.return_value = course

        with pytest.raises(InvalidSubmissionError, match="no project"):
            await service.submit_project(user_id, course.id, "link", "https://x.test")

    @pytest.mark.asyncio
    async def test_submits_project(
        self, service, course_service, cql, course_factory, user_id
    ) -> None:
        course = course_factory(
            project=Project(title="Capstone", submission_types=["link"])
        )
        course_service.get_course.return_value = course
        cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])
        service.recalculate_progress = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id)
        )

        await service.submit_project(user_id, course.id, "link", "https://x.test")

        saved = cql.calls_to(service._upsert_project_progress)[0]
        assert saved[2] is True
        assert saved[4] == "link"


class TestSubmitQuiz:
    @pytest.fixture
    def quiz_course(self, course_factory, section_factory, module_factory):
        section = section_factory(0)
        quiz = module_factory(
            section.section_id,
            module_type=ModuleType.QUIZ,
            questions=[
                QuizQuestion(question=f"Q{i}", options=["a", "b"], correct_answer="a")
                for i in range(3)
            ],
        )
        section.modules.append(quiz)
        return course_factory(sections=[section]), quiz

    @pytest.fixture
    def ready(self, service, course_service, cql, quiz_course, user_id):
        course, _ = quiz_course
        course_service.get_course.return_value = course
        cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])
        service.recalculate_progress = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id, progress=40)
        )
        return service

    @pytest.mark.asyncio
    async def test_failing_attempt(self, ready, cql, quiz_course, user_id) -> None:
        course, quiz = quiz_course

        outcome = await ready.submit_quiz(
            user_id, course.id, quiz.module_id, ["a", "a", "b"]
        )

        assert outcome.score == 67
        assert outcome.correct_answers == 2
        assert outcome.passed is False
        assert outcome.quiz.attempts == 1
        assert cql.calls_to(ready._complete_module_if_open) == []

    @pytest.mark.asyncio
    async def test_passing_attempt_completes_module(
        self, ready, cql, quiz_course, user_id
    ) -> None:
        course, quiz = quiz_course
        cql.rows(
            ready._get_quiz_progress,
            [
                SimpleNamespace(
                    quiz_id=quiz.module_id,
                    score=33,
                    best_score=33,
                    attempts=2,
                    completed_at=None,
                )
            ],
        )

        outcome = await ready.submit_quiz(
            user_id, course.id, quiz.module_id, ["a", "a", "a"]
        )

        assert outcome.score == 100
        assert outcome.passed is True
        assert outcome.quiz.best_score == 100
        assert outcome.quiz.attempts == 3
        assert outcome.enrollment.progress == 40
        assert len(cql.calls_to(ready._complete_module_if_open)) == 1

    @pytest.mark.asyncio
    async def test_missing_answers_count_as_wrong(
        self, ready, quiz_course, user_id
    ) -> None:
        course, quiz = quiz_course

        outcome = await ready.submit_quiz(user_id, course.id, quiz.module_id, ["a"])

        assert outcome.score == 33

    @pytest.mark.asyncio
    async def test_non_quiz_module(
        self, service, course_service, course_factory, section_factory, user_id
    ) -> None:
        course = course_factory(sections=[section_factory(1)])
        course_service.get_course.return_value = course

        with pytest.raises(QuizNotFoundError):
            await service.submit_quiz(
                user_id, course.id, course.modules[0].module_id, ["a"]
            )


# ==============================================================================
# Grading and admin completion
# ==============================================================================


class TestGrading:
    @pytest.mark.asyncio
    async def test_grade_requires_submission(
        self, service, course_service, cql, course_factory, assignment_factory, user_id
    ) -> None:
        assignment = assignment_factory()
        course = course_factory(assignments=[assignment])
        course_service.get_course.return_value = course
        cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])

        with pytest.raises(NotSubmittedError):
            await service.grade_assignment(
                user_id, course.id, assignment.assignment_id, 90
            )

    @pytest.mark.asyncio
    async def test_grade_assignment(
        self, service, course_service, cql, course_factory, assignment_factory, user_id
    ) -> None:
        assignment = assignment_factory()
        course = course_factory(assignments=[assignment])
        course_service.get_course.return_value = course
        cql.rows(service._get_enrollment, [enrollment_row(user_id, course.id)])
        cql.rows(
            service._get_assignment_progress,
            [assignment_row(assignment.assignment_id)],
        )
        service.recalculate_progress = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id, progress=30)
        )

        result = await service.grade_assignment(
            user_id, course.id, assignment.assignment_id, 90, "Nice work"
        )

        assert result.progress == 30
        saved = cql.calls_to(service._upsert_assignment_progress)[0]
        assert saved[7] == 90
        assert saved[8] is True
        assert saved[10] == "Nice work"


class TestAdminMarkComplete:
    @pytest.mark.asyncio
    async def test_all_grades_everything(
        self,
        service,
        course_service,
        cql,
        course_factory,
        section_factory,
        assignment_factory,
        user_id,
    ) -> None:
        course = course_factory(
            sections=[section_factory(2)],
            assignments=[assignment_factory()],
            project=Project(title="Capstone"),
        )
        course_service.get_course.return_value = course
        service.load_enrollment = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id)
        )
        service.recalculate_progress = AsyncMock(
            return_value=Enrollment(
                course_id=course.id, user_id=user_id, progress=100, completed=True
            )
        )

        result = await service.admin_mark_complete(user_id, course.id)

        assert result.completed is True
        assert len(cql.calls_to(service._complete_module_if_open)) == 2
        assignment = cql.calls_to(service._upsert_assignment_progress)[0]
        assert assignment[7] == 100
        project = cql.calls_to(service._upsert_project_progress)[0]
        assert project[6] == 100

    @pytest.mark.asyncio
    async def test_all_keeps_instructor_feedback(
        self, service, course_service, cql, course_factory, assignment_factory, user_id
    ) -> None:
        assignment = assignment_factory()
        course = course_factory(assignments=[assignment])
        course_service.get_course.return_value = course
        service.load_enrollment = AsyncMock(
            return_value=Enrollment(
                course_id=course.id,
                user_id=user_id,
                assignment_progress=[
                    AssignmentProgress(
                        assignment_id=assignment.assignment_id,
                        submitted=True,
                        score=55,
                        graded=True,
                        feedback="Cite your sources",
                    )
                ],
            )
        )
        service.recalculate_progress = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id)
        )

        await service.admin_mark_complete(user_id, course.id)

        saved = cql.calls_to(service._upsert_assignment_progress)[0]
        assert saved[7] == 100
        assert saved[10] == "Cite your sources"

    @pytest.mark.asyncio
    async def test_sections_only_touch_modules(
        self, service, course_service, cql, course_factory, section_factory, user_id
    ) -> None:
        first, second = section_factory(2, 0), section_factory(3, 1)
        course = course_factory(sections=[first, second])
        course_service.get_course.return_value = course
        service.load_enrollment = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id)
        )
        service.recalculate_progress = AsyncMock(
            return_value=Enrollment(course_id=course.id, user_id=user_id)
        )

        await service.admin_mark_complete(
            user_id,
            course.id,
            scope=MarkCompleteScope.SECTIONS,
            section_ids=[second.section_id, uuid4()],
        )

        completed = cql.calls_to(service._complete_module_if_open)
        assert {params[4] for params in completed} == second.module_ids
        assert cql.calls_to(service._upsert_assignment_progress) == []


# ==============================================================================
# Overview and cascade
# ==============================================================================


class TestProgressOverview:
    @pytest.mark.asyncio
    async def test_overview_stats(
        self, service, course_service, course_factory, user_id
    ) -> None:
        now = datetime(2026, 5, 1, tzinfo=UTC)
        behind = course_factory(duration="1 month")
        done = course_factory(duration=None)
        fresh = course_factory(duration="2 months")
        courses = {c.id: c for c in (behind, done, fresh)}
        course_service.get_course.side_effect = lambda cid: courses.get(cid)

        service.get_user_enrollments = AsyncMock(
            return_value=[
                Enrollment(
                    course_id=behind.id,
                    user_id=user_id,
                    progress=10,
                    enrolled_at=now - timedelta(days=95),
                    time_spent=150,
                ),
                Enrollment(
                    course_id=done.id,
                    user_id=user_id,
                    progress=100,
                    completed=True,
                    status=EnrollmentStatus.COMPLETED.value,
                    enrolled_at=now - timedelta(days=10),
                ),
                Enrollment(
                    course_id=fresh.id,
                    user_id=user_id,
                    progress=5,
                    enrolled_at=now - timedelta(days=1),
                ),
                Enrollment(
                    course_id=uuid4(),
                    user_id=user_id,
                    enrolled_at=now - timedelta(days=1),
                ),
                Enrollment(
                    course_id=fresh.id,
                    user_id=user_id,
                    status=EnrollmentStatus.CANCELLED.value,
                    enrolled_at=now - timedelta(days=300),
                ),
            ]
        )

        overview = await service.get_progress_overview(user_id, now=now)

        by_id = {c.course_id: c for c in overview.courses}
        assert by_id[behind.id].risk_level == RiskLevel.HIGH
        assert by_id[behind.id].time_spent == 3
        assert by_id[done.id].estimated_duration == "1 month"
        assert by_id[fresh.id].risk_level == RiskLevel.NONE
        assert overview.stats.total == 3
        assert overview.stats.at_risk == 1
        assert overview.stats.on_track == 1
        assert overview.stats.completed == 1


class TestRemoveCourseEnrollments:
    @pytest.mark.asyncio
    async def test_cascade(self, service, cql) -> None:
        course_id = uuid4()
        learners = [uuid4(), uuid4()]
        cql.rows(
            service._get_course_enrollments,
            [enrollment_row(u, course_id) for u in learners],
        )

        removed = await service.remove_course_enrollments(course_id)

        assert removed == 2
        assert len(cql.calls_to(service._delete_user_enrollment)) == 2
        for statement in service._delete_child_progress:
            assert len(cql.calls_to(statement)) == 2
        assert cql.calls_to(service._delete_course_enrollments) == [[course_id]]
