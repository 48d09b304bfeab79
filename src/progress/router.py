"""Enrollment and progress tracking API endpoints.

Provides routes for:
- Course enrollment and the learner's enrolled courses
- Lesson completion and quiz scores
- Progress queries
- Course roster (instructor/admin)
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.auth.dependencies import CurrentUser
from src.courses.dependencies import CourseServiceDep
from src.courses.schemas import EnrolledCourseResponse, RosterResponse

from .dependencies import EnrollmentServiceDep, ProgressServiceDep
from .schemas import (
    EnrollmentResponse,
    ProgressListResponse,
    ProgressResponse,
    ProgressWithCourseResponse,
    QuizScoreResponse,
    RecordQuizScoreRequest,
    UpdateLessonCompletionRequest,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])
enrollments_router = APIRouter(prefix="/v1/courses", tags=["enrollments"])


# ==============================================================================
# Progress Endpoints
# ==============================================================================


@router.get(
    "",
    response_model=ProgressListResponse,
    summary="List my progress",
)
async def list_my_progress(
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressListResponse:
    """Progress in every enrolled course, with course and instructor info."""
    entries = await progress_service.list_progress(user.id)
    items = [
        ProgressWithCourseResponse.build(progress, course, instructor)
        for progress, course, instructor in entries
    ]
    return ProgressListResponse(items=items, total=len(items))


@router.get(
    "/{course_id}",
    response_model=ProgressWithCourseResponse,
    summary="Get course progress",
    responses={404: {"description": "Course not found or not enrolled"}},
)
async def get_course_progress(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressWithCourseResponse:
    """Progress with quiz scores, course title and lesson count."""
    progress, course, instructor = await progress_service.get_progress_with_course(
        user.id, course_id
    )
    return ProgressWithCourseResponse.build(progress, course, instructor)


@router.put(
    "/{course_id}",
    response_model=ProgressResponse,
    summary="Mark lesson completion",
    responses={
        404: {"description": "Course not found or not enrolled"},
        409: {"description": "Concurrent update"},
        422: {"description": "Lesson index out of range"},
    },
)
async def update_lesson_completion(
    course_id: UUID,
    data: UpdateLessonCompletionRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressResponse:
    """Mark (or unmark) a lesson and return the recomputed progress."""
    progress = await progress_service.mark_lesson_completion(
        user_id=user.id,
        course_id=course_id,
        lesson_index=data.lesson_index,
        completed=data.completed,
    )
    return ProgressResponse.from_entity(progress)


@router.post(
    "/{course_id}/quiz-scores",
    response_model=QuizScoreResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record quiz score",
)
async def record_quiz_score(
    course_id: UUID,
    data: RecordQuizScoreRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> QuizScoreResponse:
    score = await progress_service.record_quiz_score(
        user_id=user.id,
        course_id=course_id,
        lesson_index=data.lesson_index,
        score=data.score,
        total_questions=data.total_questions,
    )
    return QuizScoreResponse.from_entity(score)


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@enrollments_router.get(
    "/my/enrolled",
    response_model=list[EnrolledCourseResponse],
    summary="List my enrolled courses",
)
async def list_my_enrolled_courses(
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> list[EnrolledCourseResponse]:
    """Enrolled courses with progress, completion and last access."""
    entries = await progress_service.list_enrolled_courses(user.id)
    return [
        EnrolledCourseResponse.build(course, progress, instructor)
        for course, progress, instructor in entries
    ]


@enrollments_router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in course",
    responses={
        404: {"description": "Course not found"},
        409: {"description": "Already enrolled or own course"},
    },
)
async def enroll(
    course_id: UUID,
    enrollment_service: EnrollmentServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    progress = await enrollment_service.enroll(user.id, course_id)
    return EnrollmentResponse(progress=ProgressResponse.from_entity(progress))


@enrollments_router.get(
    "/{course_id}/students",
    response_model=RosterResponse,
    summary="List enrolled students",
    responses={403: {"description": "Not the course instructor"}},
)
async def list_course_students(
    course_id: UUID,
    course_service: CourseServiceDep,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> RosterResponse:
    """Roster of a course. Course instructor or admin only."""
    await course_service.get_managed_course(course_id, user.id, user.role)
    students = await progress_service.get_course_roster(course_id)
    return RosterResponse(course_id=course_id, students=students, total=len(students))
