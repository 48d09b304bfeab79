"""Course catalog API endpoints.

Provides routes for:
- Catalog: published listing with filters, course details
- Courses: create, update, delete (instructor or admin)
- Lessons: append
"""

from uuid import UUID

from fastapi import APIRouter, Response, status

from src.auth.dependencies import CurrentUser, InstructorUser
from src.auth.models import User
from src.auth.router import AuthServiceDep
from src.auth.service import AuthService
from src.courses.dependencies import CourseServiceDep
from src.courses.models import Course, CourseLevel
from src.courses.schemas import (
    CourseListResponse,
    CourseResponse,
    CourseSummaryResponse,
    CreateCourseRequest,
    CreateLessonRequest,
    LessonResponse,
    UpdateCourseRequest,
)


router = APIRouter(prefix="/v1/courses", tags=["courses"])


async def _instructors(
    auth_service: AuthService, courses: list[Course]
) -> dict[UUID, User]:
    return await auth_service.get_users_by_ids({c.instructor_id for c in courses})


# ==============================================================================
# Catalog (Public)
# ==============================================================================


@router.get(
    "",
    response_model=CourseListResponse,
    summary="List published courses",
)
async def list_published_courses(
    course_service: CourseServiceDep,
    auth_service: AuthServiceDep,
    category: str | None = None,
    level: CourseLevel | None = None,
    search: str | None = None,
) -> CourseListResponse:
    """Published courses, newest first.

    ``search`` matches title, description and tags case-insensitively.
    """
    courses = await course_service.list_published(
        category=category,
        level=level.value if level else None,
        search=search,
    )
    instructors = await _instructors(auth_service, courses)
    items = [
        CourseSummaryResponse.from_course(c, instructors.get(c.instructor_id))
        for c in courses
    ]
    return CourseListResponse(items=items, total=len(items))


@router.get(
    "/my/instructor",
    response_model=CourseListResponse,
    summary="List my authored courses",
)
async def list_my_authored_courses(
    course_service: CourseServiceDep,
    auth_service: AuthServiceDep,
    user: InstructorUser,
) -> CourseListResponse:
    """Courses authored by the caller, drafts included."""
    courses = await course_service.list_by_instructor(user.id)
    instructors = await _instructors(auth_service, courses)
    items = [
        CourseSummaryResponse.from_course(c, instructors.get(c.instructor_id))
        for c in courses
    ]
    return CourseListResponse(items=items, total=len(items))


@router.get(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Get course details",
    responses={404: {"description": "Course not found"}},
)
async def get_course(
    course_id: UUID,
    course_service: CourseServiceDep,
    auth_service: AuthServiceDep,
) -> CourseResponse:
    """Course with ordered lessons. Unpublished courses are reachable by id."""
    course = await course_service.get_course(course_id)
    instructors = await _instructors(auth_service, [course])
    return CourseResponse.from_course(course, instructors.get(course.instructor_id))


# ==============================================================================
# Course Management
# ==============================================================================


@router.post(
    "",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create course",
)
async def create_course(
    data: CreateCourseRequest,
    course_service: CourseServiceDep,
    auth_service: AuthServiceDep,
    user: InstructorUser,
) -> CourseResponse:
    """Create a course owned by the caller (instructor or admin)."""
    course = await course_service.create_course(data, user.id)
    instructors = await _instructors(auth_service, [course])
    return CourseResponse.from_course(course, instructors.get(course.instructor_id))


@router.put(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Update course",
    responses={
        403: {"description": "Not the course instructor"},
        404: {"description": "Course not found"},
        422: {"description": "Unknown or invalid field"},
    },
)
async def update_course(
    course_id: UUID,
    data: UpdateCourseRequest,
    course_service: CourseServiceDep,
    auth_service: AuthServiceDep,
    user: CurrentUser,
) -> CourseResponse:
    course = await course_service.update_course(course_id, user.id, user.role, data)
    instructors = await _instructors(auth_service, [course])
    return CourseResponse.from_course(course, instructors.get(course.instructor_id))


@router.delete(
    "/{course_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete course",
    responses={
        403: {"description": "Not the course instructor"},
        404: {"description": "Course not found"},
    },
)
async def delete_course(
    course_id: UUID,
    course_service: CourseServiceDep,
    user: CurrentUser,
) -> Response:
    """Delete a course together with its lessons and enrollments."""
    await course_service.delete_course(course_id, user.id, user.role)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{course_id}/lessons",
    response_model=LessonResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Append lesson",
    responses={
        403: {"description": "Not the course instructor"},
        404: {"description": "Course not found"},
    },
)
async def add_lesson(
    course_id: UUID,
    data: CreateLessonRequest,
    course_service: CourseServiceDep,
    user: CurrentUser,
) -> LessonResponse:
    """Append a lesson; its order is the course's current lesson count."""
    lesson = await course_service.add_lesson(course_id, user.id, user.role, data)
    return LessonResponse.from_lesson(lesson)
