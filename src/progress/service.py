"""Enrollment and progress tracking service layer.

Business logic for:
- Enrollment (eligibility checks, idempotent record creation, index repair)
- Lesson completion with live progress recomputation
- Quiz score recording
- Progress queries and the course-deletion cascade
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid1

import structlog

from src.config.settings import get_settings
from src.core.exceptions import (
    BusinessRuleError,
    IntegrityError,
    NotFoundError,
    ValidationError,
)
from src.courses.service import CourseNotFoundError

from .models import Progress, QuizScore


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from src.auth.models import User
    from src.auth.service import AuthService
    from src.courses.models import Course
    from src.courses.service import CourseService

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressNotFoundError(NotFoundError):
    """No progress record, i.e. the user is not enrolled."""

    def __init__(self, message: str = "Progress not found. Please enroll first."):
        super().__init__(message, "progress_not_found")


class SelfEnrollmentError(BusinessRuleError):
    def __init__(self, message: str = "Instructors cannot enroll in their own courses"):
        super().__init__(message, "self_enrollment")


class AlreadyEnrolledError(BusinessRuleError):
    def __init__(self, message: str = "Already enrolled in this course"):
        super().__init__(message, "already_enrolled")


class InvalidLessonIndexError(ValidationError):
    def __init__(self, message: str = "Lesson index out of range"):
        super().__init__(message, "invalid_lesson_index")


class InvalidQuizScoreError(ValidationError):
    def __init__(self, message: str = "Score must be between 0 and total_questions"):
        super().__init__(message, "invalid_quiz_score")


class ConcurrentUpdateError(IntegrityError):
    """Conditional progress update kept losing to concurrent writers."""

    def __init__(self, message: str = "Progress was modified concurrently, please retry"):
        super().__init__(message, "concurrent_update")


def _check_lesson_index(lesson_index: int, total_lessons: int) -> None:
    if total_lessons == 0:
        raise InvalidLessonIndexError("Course has no lessons")
    if not 0 <= lesson_index < total_lessons:
        raise InvalidLessonIndexError(
            f"Lesson index must be between 0 and {total_lessons - 1}"
        )


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service owning progress records, their read indexes and quiz scores."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        course_service: "CourseService",
        auth_service: "AuthService | None" = None,
    ):
        """Initialize with Cassandra session and collaborating services."""
        self.session = session
        self.keyspace = keyspace
        self.course_service = course_service
        self.auth_service = auth_service
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Progress (source of truth)
        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.progress
            WHERE user_id = ? AND course_id = ?
        """)
        self._insert_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress
            (user_id, course_id, completed_lessons, last_accessed_lesson,
             progress_percent, completed, completed_at, enrolled_at,
             last_accessed_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._update_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.progress
            SET completed_lessons = ?, last_accessed_lesson = ?,
                progress_percent = ?, completed = ?, completed_at = ?,
                last_accessed_at = ?, version = ?
            WHERE user_id = ? AND course_id = ?
            IF version = ?
        """)
        self._delete_progress = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.progress
            WHERE user_id = ? AND course_id = ?
        """)

        # Read indexes
        self._upsert_by_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_by_course
            (course_id, user_id, enrolled_at)
            VALUES (?, ?, ?)
        """)
        self._upsert_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_by_user
            (user_id, enrolled_at, course_id)
            VALUES (?, ?, ?)
        """)
        self._get_by_course = self.session.prepare(f"""
            SELECT user_id, enrolled_at FROM {self.keyspace}.progress_by_course
            WHERE course_id = ?
        """)
        self._get_by_user = self.session.prepare(f"""
            SELECT course_id, enrolled_at FROM {self.keyspace}.progress_by_user
            WHERE user_id = ?
        """)
        self._delete_by_course_row = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.progress_by_course
            WHERE course_id = ? AND user_id = ?
        """)
        self._delete_by_user_row = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.progress_by_user
            WHERE user_id = ? AND enrolled_at = ? AND course_id = ?
        """)

        # Quiz scores
        self._get_quiz_scores = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.quiz_scores
            WHERE user_id = ? AND course_id = ?
        """)
        self._insert_quiz_score = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.quiz_scores
            (user_id, course_id, score_id, lesson_index, score,
             total_questions, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_quiz_scores = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.quiz_scores
            WHERE user_id = ? AND course_id = ?
        """)

    # ==========================================================================
    # Record Lifecycle
    # ==========================================================================

    async def find_progress(self, user_id: UUID, course_id: UUID) -> Progress | None:
        """Progress record or None when the user is not enrolled."""
        result = await self.session.aexecute(self._get_progress, [user_id, course_id])
        row = result.one()
        return Progress.from_row(row) if row else None

    async def ensure_progress(
        self, user_id: UUID, course_id: UUID
    ) -> tuple[Progress | None, bool]:
        """Create the progress record unless one exists.

        Safe to call repeatedly for the same pair; at most one record is
        ever created.

        Returns:
            Tuple of (record, created). The record is None when the insert
            lost to an existing row that was deleted before it could be read.
        """
        progress = Progress(user_id=user_id, course_id=course_id)
        result = await self.session.aexecute(
            self._insert_progress,
            [
                progress.user_id,
                progress.course_id,
                progress.completed_lessons,
                progress.last_accessed_lesson,
                progress.progress,
                progress.completed,
                progress.completed_at,
                progress.enrolled_at,
                progress.last_accessed,
                progress.version,
            ],
        )
        if result.was_applied:
            return progress, True

        return await self.find_progress(user_id, course_id), False

    async def write_indexes(self, progress: Progress) -> None:
        """Upsert both read-index rows for a progress record (idempotent)."""
        await self.session.aexecute(
            self._upsert_by_course,
            [progress.course_id, progress.user_id, progress.enrolled_at],
        )
        await self.session.aexecute(
            self._upsert_by_user,
            [progress.user_id, progress.enrolled_at, progress.course_id],
        )

    async def remove_enrollment(
        self, user_id: UUID, course_id: UUID, enrolled_at: datetime
    ) -> None:
        """Delete a progress record, its quiz scores and both index rows."""
        await self.session.aexecute(self._delete_progress, [user_id, course_id])
        await self.session.aexecute(self._delete_quiz_scores, [user_id, course_id])
        await self.session.aexecute(self._delete_by_user_row, [user_id, enrolled_at, course_id])
        await self.session.aexecute(self._delete_by_course_row, [course_id, user_id])

    async def delete_course_progress(self, course_id: UUID) -> int:
        """Remove every enrollment in a course. Registered as a delete cascade.

        Returns:
            Number of enrollments removed
        """
        rows = list(await self.session.aexecute(self._get_by_course, [course_id]))
        for row in rows:
            await self.remove_enrollment(row.user_id, course_id, row.enrolled_at)

        if rows:
            logger.info(
                "course_progress_deleted",
                course_id=str(course_id),
                enrollments=len(rows),
            )
        return len(rows)

    # ==========================================================================
    # Lesson Completion
    # ==========================================================================

    async def mark_lesson_completion(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_index: int,
        completed: bool,
    ) -> Progress:
        """Mark or unmark a lesson and recompute progress.

        The percentage uses the course's lesson count at the time of the
        call. The write is conditional on the version read; on conflict the
        record is re-read and the change re-applied.

        Raises:
            CourseNotFoundError: If course doesn't exist
            ProgressNotFoundError: If user is not enrolled
            InvalidLessonIndexError: If lesson_index is outside the course
            ConcurrentUpdateError: If retries are exhausted
        """
        course = await self.course_service.find_course(course_id, include_lessons=False)
        if not course:
            raise CourseNotFoundError

        progress = await self.find_progress(user_id, course_id)
        if not progress:
            raise ProgressNotFoundError

        total_lessons = await self.course_service.count_lessons(course_id)
        _check_lesson_index(lesson_index, total_lessons)

        attempts = get_settings().progress_update_max_attempts
        for attempt in range(1, attempts + 1):
            expected_version = progress.version
            progress.apply_lesson_completion(
                lesson_index, completed, total_lessons, datetime.now(UTC)
            )
            result = await self.session.aexecute(
                self._update_progress,
                [
                    progress.completed_lessons,
                    progress.last_accessed_lesson,
                    progress.progress,
                    progress.completed,
                    progress.completed_at,
                    progress.last_accessed,
                    expected_version + 1,
                    user_id,
                    course_id,
                    expected_version,
                ],
            )
            if result.was_applied:
                progress.version = expected_version + 1
                logger.info(
                    "lesson_completion_updated",
                    user_id=str(user_id),
                    course_id=str(course_id),
                    lesson_index=lesson_index,
                    completed=completed,
                    progress=progress.progress,
                    course_completed=progress.completed,
                )
                return progress

            logger.info(
                "progress_version_conflict",
                user_id=str(user_id),
                course_id=str(course_id),
                attempt=attempt,
            )
            progress = await self.find_progress(user_id, course_id)
            if not progress:
                raise ProgressNotFoundError

        raise ConcurrentUpdateError

    async def record_quiz_score(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_index: int,
        score: int,
        total_questions: int,
    ) -> QuizScore:
        """Append a quiz result to the caller's progress.

        Raises:
            CourseNotFoundError: If course doesn't exist
            ProgressNotFoundError: If user is not enrolled
            InvalidLessonIndexError: If lesson_index is outside the course
            InvalidQuizScoreError: If score is outside 0..total_questions
        """
        if total_questions <= 0 or not 0 <= score <= total_questions:
            raise InvalidQuizScoreError

        course = await self.course_service.find_course(course_id, include_lessons=False)
        if not course:
            raise CourseNotFoundError
        if not await self.find_progress(user_id, course_id):
            raise ProgressNotFoundError
        _check_lesson_index(lesson_index, await self.course_service.count_lessons(course_id))

        quiz_score = QuizScore(
            lesson_index=lesson_index,
            score=score,
            total_questions=total_questions,
            score_id=uuid1(),
        )
        await self.session.aexecute(
            self._insert_quiz_score,
            [
                user_id,
                course_id,
                quiz_score.score_id,
                quiz_score.lesson_index,
                quiz_score.score,
                quiz_score.total_questions,
                quiz_score.completed_at,
            ],
        )
        logger.info(
            "quiz_score_recorded",
            user_id=str(user_id),
            course_id=str(course_id),
            lesson_index=lesson_index,
            score=score,
            total_questions=total_questions,
        )
        return quiz_score

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_quiz_scores(self, user_id: UUID, course_id: UUID) -> list[QuizScore]:
        rows = await self.session.aexecute(self._get_quiz_scores, [user_id, course_id])
        return [QuizScore.from_row(row) for row in rows]

    async def get_progress(self, user_id: UUID, course_id: UUID) -> Progress:
        """Progress with quiz scores.

        Raises:
            ProgressNotFoundError: If user is not enrolled
        """
        progress = await self.find_progress(user_id, course_id)
        if not progress:
            raise ProgressNotFoundError
        progress.quiz_scores = await self.get_quiz_scores(user_id, course_id)
        return progress

    async def get_progress_with_course(
        self, user_id: UUID, course_id: UUID
    ) -> tuple[Progress, "Course", "User | None"]:
        """Progress with quiz scores, its course and the course instructor.

        Raises:
            CourseNotFoundError: If course doesn't exist
            ProgressNotFoundError: If user is not enrolled
        """
        course = await self.course_service.get_course(course_id)
        progress = await self.get_progress(user_id, course_id)
        instructors = await self._instructors_for([course])
        return progress, course, instructors.get(course.instructor_id)

    async def list_enrolled_course_ids(self, user_id: UUID) -> list[UUID]:
        """Course ids from the by-user index, in enrollment order."""
        rows = await self.session.aexecute(self._get_by_user, [user_id])
        return [row.course_id for row in rows]

    async def _enrolled_pairs(self, user_id: UUID) -> list[tuple["Course", Progress]]:
        """Courses joined with progress; index rows without a record are skipped."""
        pairs: list[tuple[Course, Progress]] = []
        for course_id in await self.list_enrolled_course_ids(user_id):
            progress = await self.find_progress(user_id, course_id)
            if not progress:
                continue
            course = await self.course_service.find_course(course_id)
            if not course:
                continue
            pairs.append((course, progress))
        return pairs

    async def _instructors_for(self, courses: list["Course"]) -> dict[UUID, "User"]:
        if self.auth_service is None or not courses:
            return {}
        return await self.auth_service.get_users_by_ids(
            {course.instructor_id for course in courses}
        )

    async def list_progress(
        self, user_id: UUID
    ) -> list[tuple[Progress, "Course", "User | None"]]:
        """Every progress record of a user with course and instructor."""
        pairs = await self._enrolled_pairs(user_id)
        instructors = await self._instructors_for([course for course, _ in pairs])
        return [
            (progress, course, instructors.get(course.instructor_id))
            for course, progress in pairs
        ]

    async def list_enrolled_courses(
        self, user_id: UUID
    ) -> list[tuple["Course", Progress, "User | None"]]:
        """Enrolled courses with progress, last access and instructor."""
        pairs = await self._enrolled_pairs(user_id)
        instructors = await self._instructors_for([course for course, _ in pairs])
        return [
            (course, progress, instructors.get(course.instructor_id))
            for course, progress in pairs
        ]

    async def get_course_roster(self, course_id: UUID) -> list[UUID]:
        """Ids of users enrolled in a course."""
        rows = await self.session.aexecute(self._get_by_course, [course_id])
        return [row.user_id for row in rows]


# ==============================================================================
# Enrollment Service
# ==============================================================================


class EnrollmentService:
    """Orchestrates enrollment across the course catalog and progress store."""

    def __init__(
        self,
        progress_service: ProgressService,
        course_service: "CourseService",
    ):
        self.progress_service = progress_service
        self.course_service = course_service

    async def enroll(self, user_id: UUID, course_id: UUID) -> Progress:
        """Enroll a user in a course.

        The progress record is the commit point. Index rows are upserted
        afterwards and re-written whenever an existing record is found, so a
        retry after a partial failure repairs them.

        Raises:
            CourseNotFoundError: If course doesn't exist (or was deleted
                while enrolling)
            SelfEnrollmentError: If the caller is the course instructor
            AlreadyEnrolledError: If a progress record already exists
        """
        course = await self.course_service.find_course(course_id, include_lessons=False)
        if not course:
            raise CourseNotFoundError
        if course.instructor_id == user_id:
            raise SelfEnrollmentError

        existing = await self.progress_service.find_progress(user_id, course_id)
        if existing:
            await self.progress_service.write_indexes(existing)
            raise AlreadyEnrolledError

        progress, created = await self.progress_service.ensure_progress(
            user_id, course_id
        )
        if progress is None:
            # Lost the insert to a record that a course delete has since removed
            if not await self.course_service.find_course(course_id, include_lessons=False):
                raise CourseNotFoundError
            raise AlreadyEnrolledError
        await self.progress_service.write_indexes(progress)
        if not created:
            raise AlreadyEnrolledError

        # A delete that ran its cascade before our insert would leave us orphaned
        if not await self.course_service.find_course(course_id, include_lessons=False):
            await self.progress_service.remove_enrollment(
                user_id, course_id, progress.enrolled_at
            )
            logger.info(
                "enrollment_rolled_back",
                user_id=str(user_id),
                course_id=str(course_id),
            )
            raise CourseNotFoundError

        logger.info(
            "user_enrolled",
            user_id=str(user_id),
            course_id=str(course_id),
        )
        return progress
