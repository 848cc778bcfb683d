"""Shared fixtures: mocked Cassandra session, course builders, API client."""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections.abc import Callable, Iterator  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import AsyncMock, Mock  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from cassandra.cluster import Session  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from coursetrack.auth.permissions import UserRole  # noqa: E402
from coursetrack.auth.security import create_access_token  # noqa: E402
from coursetrack.courses.models import (  # noqa: E402
    Assignment,
    Course,
    CourseModule,
    ModuleType,
    Project,
    QuizQuestion,
    Section,
)
from coursetrack.courses.service import CourseService  # noqa: E402
from coursetrack.main import app  # noqa: E402
from coursetrack.progress.service import ProgressService  # noqa: E402


# ==============================================================================
# Cassandra
# ==============================================================================


class ResultStub:
    """Minimal stand-in for a driver ResultSet."""

    def __init__(self, rows: list[Any] | None = None, applied: bool = True):
        self._rows = list(rows or [])
        self.was_applied = applied

    def one(self) -> Any:
        return self._rows[0] if self._rows else None

    def __iter__(self):
        return iter(self._rows)


class StatementRouter:
    """Answers ``aexecute`` calls by prepared statement.

    ``prepare`` is mocked to return the query text, so the service's
    prepared-statement attributes double as keys here. When several results
    are queued for a statement they are handed out in order and the last
    one repeats.
    """

    def __init__(self) -> None:
        self.responses: dict[Any, list[ResultStub]] = {}
        self.handlers: dict[Any, Callable[[Any], ResultStub]] = {}
        self.calls: list[tuple[Any, Any]] = []

    def rows(self, statement: Any, *batches: list[Any]) -> "StatementRouter":
        """Queue result rows, one batch per execution."""
        self.responses[statement] = [ResultStub(batch) for batch in batches]
        return self

    def applied(self, statement: Any, *flags: bool) -> "StatementRouter":
        """Queue lightweight-transaction outcomes, one per execution."""
        self.responses[statement] = [ResultStub(applied=flag) for flag in flags]
        return self

    def conflict(self, statement: Any, *stored: Any) -> "StatementRouter":
        """Queue failed lightweight transactions that report the stored row."""
        self.responses[statement] = [ResultStub([row], applied=False) for row in stored]
        return self

    def handle(
        self, statement: Any, handler: Callable[[Any], ResultStub]
    ) -> "StatementRouter":
        """Answer ``statement`` by calling ``handler(params)``."""
        self.handlers[statement] = handler
        return self

    @staticmethod
    def result(rows: list[Any] | None = None, applied: bool = True) -> ResultStub:
        return ResultStub(rows, applied)

    def __call__(self, statement: Any, params: Any = None) -> ResultStub:
        self.calls.append((statement, params))
        if statement in self.handlers:
            return self.handlers[statement](params)
        queue = self.responses.get(statement)
        if not queue:
            return ResultStub()
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def calls_to(self, statement: Any) -> list[Any]:
        return [params for s, params in self.calls if s == statement]


@pytest.fixture
def mock_session() -> Mock:
    """Mock Cassandra session whose prepared statements are their query text."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: query)
    return session


@pytest.fixture
def cql(mock_session: Mock) -> StatementRouter:
    """Route ``session.aexecute`` through a StatementRouter."""
    router = StatementRouter()
    mock_session.aexecute = AsyncMock(side_effect=router)
    return router


# ==============================================================================
# Course builders
# ==============================================================================


def make_module(
    section_id: UUID,
    position: int = 0,
    module_type: ModuleType = ModuleType.VIDEO,
    questions: list[QuizQuestion] | None = None,
) -> CourseModule:
    return CourseModule(
        module_id=uuid4(),
        section_id=section_id,
        position=position,
        type=module_type,
        title=f"Module {position + 1}",
        questions=questions or [],
    )


def make_section(module_count: int, position: int = 0) -> Section:
    section_id = uuid4()
    return Section(
        section_id=section_id,
        position=position,
        title=f"Section {position + 1}",
        modules=[make_module(section_id, i) for i in range(module_count)],
    )


def make_assignment(position: int = 0, due_in_days: int = 7) -> Assignment:
    return Assignment(
        assignment_id=uuid4(),
        position=position,
        title=f"Assignment {position + 1}",
        due_date=datetime.now(UTC) + timedelta(days=due_in_days),
        submission_types=["text", "link"],
    )


def make_course(
    sections: list[Section] | None = None,
    assignments: list[Assignment] | None = None,
    project: Project | None = None,
    duration: str | None = "1 month",
) -> Course:
    return Course(
        id=uuid4(),
        title="Pharmacology 101",
        creator_id=uuid4(),
        created_at=datetime.now(UTC),
        duration=duration,
        project=project,
        sections=sections or [],
        assignments=assignments or [],
    )


@pytest.fixture
def course_factory() -> Callable[..., Course]:
    return make_course


@pytest.fixture
def section_factory() -> Callable[..., Section]:
    return make_section


@pytest.fixture
def module_factory() -> Callable[..., CourseModule]:
    return make_module


@pytest.fixture
def assignment_factory() -> Callable[..., Assignment]:
    return make_assignment


# ==============================================================================
# API client
# ==============================================================================


@pytest.fixture
def course_service_mock() -> AsyncMock:
    return AsyncMock(spec=CourseService)


@pytest.fixture
def progress_service_mock() -> AsyncMock:
    return AsyncMock(spec=ProgressService)


@pytest.fixture
def client(
    course_service_mock: AsyncMock, progress_service_mock: AsyncMock
) -> Iterator[TestClient]:
    """Test client with mocked services (lifespan is not run)."""
    app.state.course_service = course_service_mock
    app.state.progress_service = progress_service_mock
    yield TestClient(app)
    app.state.course_service = None
    app.state.progress_service = None


def auth_headers(role: UserRole = UserRole.STUDENT, user_id: UUID | None = None) -> dict:
    token = create_access_token(
        {
            "sub": str(user_id or uuid4()),
            "email": f"{role.value}@example.com",
            "role": role.value,
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_id() -> UUID:
    return uuid4()


@pytest.fixture
def student_headers(student_id: UUID) -> dict:
    return auth_headers(UserRole.STUDENT, student_id)


@pytest.fixture
def instructor_headers() -> dict:
    return auth_headers(UserRole.INSTRUCTOR)


@pytest.fixture
def admin_headers() -> dict:
    return auth_headers(UserRole.ADMIN)
