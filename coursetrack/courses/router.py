"""Course structure API endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from coursetrack.auth.dependencies import AdminUser, CurrentUser
from coursetrack.progress.dependencies import ProgressServiceDep

from .dependencies import CourseServiceDep, handle_course_error
from .schemas import CourseResponse, CreateCourseRequest, MessageResponse
from .service import CourseError


router = APIRouter(prefix="/api/courses", tags=["courses"])


@router.post(
    "",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create course",
)
async def create_course(
    data: CreateCourseRequest,
    course_service: CourseServiceDep,
    user: AdminUser,
) -> CourseResponse:
    """Create a course with its sections, assignments and project (admin)."""
    course = await course_service.create_course(data, creator_id=user.id)
    return CourseResponse.from_entity(course)


@router.get(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Get course",
)
async def get_course(
    course_id: UUID,
    course_service: CourseServiceDep,
    user: CurrentUser,
) -> CourseResponse:
    """Get a course and its structure."""
    course = await course_service.get_course(course_id)
    if course is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Course not found",
        )
    return CourseResponse.from_entity(course)


@router.delete(
    "/{course_id}",
    response_model=MessageResponse,
    summary="Delete course",
)
async def delete_course(
    course_id: UUID,
    course_service: CourseServiceDep,
    progress_service: ProgressServiceDep,
    user: AdminUser,
) -> MessageResponse:
    """Delete a course together with every enrollment in it (admin)."""
    try:
        course = await course_service.require_course(course_id)
        removed = await progress_service.remove_course_enrollments(course.id)
        await course_service.delete_course(course.id)
    except CourseError as e:
        raise handle_course_error(e) from e

    return MessageResponse(
        message=f"Course deleted along with {removed} enrollment(s)",
    )
