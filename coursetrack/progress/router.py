"""Learner progress API endpoints.

Provides routes for:
- The at-risk overview and full course progress
- Module access, completion and time tracking
- Assignment, project and quiz submissions
- Grading and admin completion
- Enrollment management
"""

from uuid import UUID

from fastapi import APIRouter, status

from coursetrack.auth.dependencies import AdminUser, CurrentUser, InstructorUser

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    CourseProgressResponse,
    EnrollmentListResponse,
    EnrollmentResponse,
    GradeRequest,
    MarkCompleteRequest,
    ModuleAccessResponse,
    ProgressOverviewResponse,
    ProgressUpdateResponse,
    QuizSubmissionRequest,
    QuizSubmissionResponse,
    SubmissionRequest,
    TimeTrackedResponse,
    TrackTimeRequest,
    UpdateEnrollmentRequest,
)
from .service import ProgressError


router = APIRouter(prefix="/api/progress", tags=["progress"])
enrollments_router = APIRouter(prefix="/api/enrollments", tags=["enrollments"])


# ==============================================================================
# Progress Query Endpoints
# ==============================================================================


@router.get(
    "/overview",
    response_model=ProgressOverviewResponse,
    summary="Progress overview with risk levels",
)
async def get_progress_overview(
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressOverviewResponse:
    """Per-course percentage, risk level and time for the current user."""
    return await progress_service.get_progress_overview(user.id)


@router.get(
    "/{course_id}",
    response_model=CourseProgressResponse,
    summary="Get course progress",
)
async def get_course_progress(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> CourseProgressResponse:
    """Get the full progress of the current user in a course."""
    try:
        enrollment = await progress_service.get_course_progress(user.id, course_id)
        return CourseProgressResponse.from_entity(enrollment)
    except ProgressError as e:
        raise handle_progress_error(e) from e


# ==============================================================================
# Module Endpoints
# ==============================================================================


@router.post(
    "/{course_id}/modules/{module_id}/access",
    response_model=ModuleAccessResponse,
    summary="Track module access",
)
async def track_module_access(
    course_id: UUID,
    module_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ModuleAccessResponse:
    try:
        progress = await progress_service.track_module_access(
            user.id, course_id, module_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return ModuleAccessResponse(
        message="Module access tracked",
        last_accessed_at=progress.last_accessed_at,
    )


@router.put(
    "/{course_id}/modules/{module_id}/complete",
    response_model=ProgressUpdateResponse,
    summary="Mark module as complete",
)
async def mark_module_complete(
    course_id: UUID,
    module_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressUpdateResponse:
    """Complete a module; fails if it was already completed."""
    try:
        enrollment = await progress_service.mark_module_complete(
            user.id, course_id, module_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return ProgressUpdateResponse.from_entity("Module marked as complete", enrollment)


@router.post(
    "/{course_id}/modules/{module_id}/track-time",
    response_model=TimeTrackedResponse,
    summary="Track time spent on a module",
)
async def track_module_time(
    course_id: UUID,
    module_id: UUID,
    data: TrackTimeRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> TimeTrackedResponse:
    try:
        module_progress, enrollment = await progress_service.track_module_time(
            user.id, course_id, module_id, data.time_spent
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return TimeTrackedResponse(
        message="Time tracked",
        module_time_spent=module_progress.time_spent,
        total_time_spent=enrollment.time_spent,
    )


# ==============================================================================
# Submission Endpoints
# ==============================================================================


@router.post(
    "/{course_id}/assignments/{assignment_id}/submit",
    response_model=ProgressUpdateResponse,
    summary="Submit assignment",
)
async def submit_assignment(
    course_id: UUID,
    assignment_id: UUID,
    data: SubmissionRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressUpdateResponse:
    try:
        enrollment = await progress_service.submit_assignment(
            user.id,
            course_id,
            assignment_id,
            submission_type=data.submission_type.value,
            submission=data.submission,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return ProgressUpdateResponse.from_entity("Assignment submitted", enrollment)


@router.post(
    "/{course_id}/project/submit",
    response_model=ProgressUpdateResponse,
    summary="Submit project",
)
async def submit_project(
    course_id: UUID,
    data: SubmissionRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressUpdateResponse:
    try:
        enrollment = await progress_service.submit_project(
            user.id,
            course_id,
            submission_type=data.submission_type.value,
            submission=data.submission,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return ProgressUpdateResponse.from_entity("Project submitted", enrollment)


@router.post(
    "/{course_id}/quizzes/{quiz_id}/submit",
    response_model=QuizSubmissionResponse,
    summary="Submit quiz answers",
)
async def submit_quiz(
    course_id: UUID,
    quiz_id: UUID,
    data: QuizSubmissionRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> QuizSubmissionResponse:
    """Grade a quiz attempt. A passing score completes the quiz module."""
    try:
        outcome = await progress_service.submit_quiz(
            user.id, course_id, quiz_id, data.answers
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return QuizSubmissionResponse(
        score=outcome.score,
        correct_answers=outcome.correct_answers,
        total_questions=outcome.total_questions,
        passed=outcome.passed,
        best_score=outcome.quiz.best_score,
        attempts=outcome.quiz.attempts,
        progress=outcome.enrollment.progress,
        completed=outcome.enrollment.completed,
    )


# ==============================================================================
# Grading Endpoints
# ==============================================================================


@router.post(
    "/{course_id}/students/{user_id}/assignments/{assignment_id}/grade",
    response_model=ProgressUpdateResponse,
    summary="Grade assignment",
)
async def grade_assignment(
    course_id: UUID,
    user_id: UUID,
    assignment_id: UUID,
    data: GradeRequest,
    progress_service: ProgressServiceDep,
    user: InstructorUser,
) -> ProgressUpdateResponse:
    try:
        enrollment = await progress_service.grade_assignment(
            user_id, course_id, assignment_id, data.score, data.feedback
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return ProgressUpdateResponse.from_entity("Assignment graded", enrollment)


@router.post(
    "/{course_id}/students/{user_id}/project/grade",
    response_model=ProgressUpdateResponse,
    summary="Grade project",
)
async def grade_project(
    course_id: UUID,
    user_id: UUID,
    data: GradeRequest,
    progress_service: ProgressServiceDep,
    user: InstructorUser,
) -> ProgressUpdateResponse:
    try:
        enrollment = await progress_service.grade_project(
            user_id, course_id, data.score, data.feedback
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return ProgressUpdateResponse.from_entity("Project graded", enrollment)


@router.post(
    "/admin/{user_id}/{course_id}/mark-complete",
    response_model=ProgressUpdateResponse,
    summary="Mark course content complete for a learner",
)
async def admin_mark_complete(
    user_id: UUID,
    course_id: UUID,
    data: MarkCompleteRequest,
    progress_service: ProgressServiceDep,
    user: AdminUser,
) -> ProgressUpdateResponse:
    """Complete all content, or selected sections or modules (admin)."""
    try:
        enrollment = await progress_service.admin_mark_complete(
            user_id,
            course_id,
            scope=data.type,
            section_ids=data.section_ids,
            module_ids=data.module_ids,
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return ProgressUpdateResponse.from_entity(
        f"Marked {data.type.value} as complete", enrollment
    )


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@enrollments_router.post(
    "/{course_id}",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in course",
)
async def enroll_in_course(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    try:
        enrollment = await progress_service.enroll_user(user.id, course_id)
        return EnrollmentResponse.from_entity(enrollment)
    except ProgressError as e:
        raise handle_progress_error(e) from e


@enrollments_router.get(
    "/my",
    response_model=EnrollmentListResponse,
    summary="Get my enrollments",
)
async def get_my_enrollments(
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    """Enrollments of the current user, most recently accessed first."""
    enrollments = await progress_service.get_user_enrollments(user.id)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


@enrollments_router.get(
    "/course/{course_id}",
    response_model=EnrollmentListResponse,
    summary="Get course enrollments",
)
async def get_course_enrollments(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: AdminUser,
) -> EnrollmentListResponse:
    enrollments = await progress_service.get_course_enrollments(course_id)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


@enrollments_router.put(
    "/{course_id}/progress",
    response_model=EnrollmentResponse,
    summary="Report time spent",
)
async def update_enrollment_progress(
    course_id: UUID,
    data: UpdateEnrollmentRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Add time spent. The progress percentage cannot be set by clients."""
    try:
        enrollment = await progress_service.record_time_spent(
            user.id, course_id, data.time_spent, progress=data.progress
        )
        return EnrollmentResponse.from_entity(enrollment)
    except ProgressError as e:
        raise handle_progress_error(e) from e
