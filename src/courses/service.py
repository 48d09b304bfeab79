"""Course catalog service layer.

Business logic for:
- Catalog queries (published listing with filters, lookup by id)
- Course create / whitelisted update / delete with cascade
- Append-only lessons
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from src.auth.permissions import UserRole, can_manage_course
from src.config.settings import get_settings
from src.core.exceptions import (
    AuthorizationError,
    IntegrityError,
    NotFoundError,
    ValidationError,
)
from src.courses.models import Course, Lesson
from src.courses.schemas import (
    CreateCourseRequest,
    CreateLessonRequest,
    UpdateCourseRequest,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

CascadeHandler = Callable[[UUID], Awaitable[Any]]

# Base delay between cascade attempts, doubled on each retry
CASCADE_RETRY_DELAY_SECONDS = 0.05


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseNotFoundError(NotFoundError):
    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class CourseAccessDeniedError(AuthorizationError):
    """Caller is neither the course instructor nor an admin."""

    def __init__(self, message: str = "Not authorized to manage this course"):
        super().__init__(message, "course_forbidden")


class CourseValidationError(ValidationError):
    def __init__(
        self, message: str = "Title, description and category are required"
    ):
        super().__init__(message, "course_invalid")


class LessonValidationError(ValidationError):
    def __init__(self, message: str = "Lesson title and content are required"):
        super().__init__(message, "lesson_invalid")


class LessonOrderConflictError(IntegrityError):
    """Could not claim the next lesson position after repeated attempts."""

    def __init__(self, message: str = "Concurrent lesson append, please retry"):
        super().__init__(message, "lesson_order_conflict")


class CascadeDeleteError(IntegrityError):
    """Dependent records could not be removed, the course was kept."""

    def __init__(self, message: str = "Could not remove course enrollments"):
        super().__init__(message, "cascade_failed")


def _is_blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


# ==============================================================================
# Course Service
# ==============================================================================


class CourseService:
    """Service for the course catalog."""

    # Fields a course patch may touch, in the order they are written
    UPDATABLE_FIELDS = (
        "title",
        "description",
        "category",
        "level",
        "price",
        "thumbnail_url",
        "tags",
        "published",
    )

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._cascade_handlers: list[CascadeHandler] = []
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        # Course CRUD
        self._get_course_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._insert_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses
            (id, title, description, instructor_id, thumbnail_url, category,
             level, price, published, rating, tags, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_course = self.session.prepare(f"""
            UPDATE {self.keyspace}.courses
            SET title = ?, description = ?, category = ?, level = ?, price = ?,
                thumbnail_url = ?, tags = ?, published = ?, updated_at = ?
            WHERE id = ?
        """)
        self._delete_course = self.session.prepare(
            f"DELETE FROM {self.keyspace}.courses WHERE id = ?"
        )

        # Lessons
        self._get_lessons = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.course_lessons WHERE course_id = ?"
        )
        self._count_lessons = self.session.prepare(
            f"SELECT COUNT(*) AS lesson_count FROM {self.keyspace}.course_lessons "
            "WHERE course_id = ?"
        )
        self._insert_lesson = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_lessons
            (course_id, position, title, content, video_url, duration_minutes,
             resources, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._delete_lessons = self.session.prepare(
            f"DELETE FROM {self.keyspace}.course_lessons WHERE course_id = ?"
        )

        # Lookup tables
        self._get_ids_by_published = self.session.prepare(
            f"SELECT course_id FROM {self.keyspace}.courses_by_published "
            "WHERE published = ?"
        )
        self._insert_by_published = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses_by_published
            (published, created_at, course_id)
            VALUES (?, ?, ?)
        """)
        self._delete_by_published = self.session.prepare(
            f"DELETE FROM {self.keyspace}.courses_by_published "
            "WHERE published = ? AND created_at = ? AND course_id = ?"
        )
        self._get_ids_by_instructor = self.session.prepare(
            f"SELECT course_id FROM {self.keyspace}.courses_by_instructor "
            "WHERE instructor_id = ?"
        )
        self._upsert_by_instructor = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses_by_instructor
            (instructor_id, created_at, course_id, title, published)
            VALUES (?, ?, ?, ?, ?)
        """)
        self._delete_by_instructor = self.session.prepare(
            f"DELETE FROM {self.keyspace}.courses_by_instructor "
            "WHERE instructor_id = ? AND created_at = ? AND course_id = ?"
        )

    def register_delete_cascade(self, handler: CascadeHandler) -> None:
        """Register a coroutine run for every deleted course id.

        Handlers must be idempotent: they run before the course row is
        removed and once more afterwards.
        """
        self._cascade_handlers.append(handler)

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def find_course(
        self, course_id: UUID, include_lessons: bool = True
    ) -> Course | None:
        """Course by id or None."""
        result = await self.session.aexecute(self._get_course_by_id, [course_id])
        row = result.one()
        if not row:
            return None
        lessons = await self.get_lessons(course_id) if include_lessons else None
        return Course.from_row(row, lessons)

    async def get_course(self, course_id: UUID) -> Course:
        """Course by id regardless of published state.

        Raises:
            CourseNotFoundError: If course doesn't exist
        """
        course = await self.find_course(course_id)
        if not course:
            raise CourseNotFoundError
        return course

    async def get_lessons(self, course_id: UUID) -> list[Lesson]:
        """Lessons ordered by position."""
        rows = await self.session.aexecute(self._get_lessons, [course_id])
        return sorted((Lesson.from_row(row) for row in rows), key=lambda l: l.order)

    async def count_lessons(self, course_id: UUID) -> int:
        """Live lesson count used as the progress denominator."""
        result = await self.session.aexecute(self._count_lessons, [course_id])
        row = result.one()
        return int(row.lesson_count) if row else 0

    async def list_published(
        self,
        category: str | None = None,
        level: str | None = None,
        search: str | None = None,
    ) -> list[Course]:
        """Published courses, newest first, filtered in memory."""
        rows = await self.session.aexecute(self._get_ids_by_published, [True])
        courses: list[Course] = []
        for row in rows:
            course = await self.find_course(row.course_id)
            # Skip lookup rows left behind by a concurrent unpublish or delete
            if course and course.published and course.matches(category, level, search):
                courses.append(course)
        return courses

    async def list_by_instructor(self, instructor_id: UUID) -> list[Course]:
        """Courses authored by an instructor, newest first, drafts included."""
        rows = await self.session.aexecute(self._get_ids_by_instructor, [instructor_id])
        courses: list[Course] = []
        for row in rows:
            course = await self.find_course(row.course_id)
            if course:
                courses.append(course)
        return courses

    # ==========================================================================
    # Mutations
    # ==========================================================================

    def _ensure_can_manage(
        self, course: Course, caller_id: UUID, caller_role: UserRole | str
    ) -> None:
        if not can_manage_course(caller_role, caller_id, course.instructor_id):
            logger.warning(
                "course_access_denied",
                course_id=str(course.id),
                caller_id=str(caller_id),
            )
            raise CourseAccessDeniedError

    async def get_managed_course(
        self, course_id: UUID, caller_id: UUID, caller_role: UserRole | str
    ) -> Course:
        """Course the caller may manage (owner or admin).

        Raises:
            CourseNotFoundError: If course doesn't exist
            CourseAccessDeniedError: If caller is not the owner or an admin
        """
        course = await self.get_course(course_id)
        self._ensure_can_manage(course, caller_id, caller_role)
        return course

    async def create_course(
        self, data: CreateCourseRequest, owner_id: UUID
    ) -> Course:
        """Create a course owned by ``owner_id``.

        Raises:
            CourseValidationError: If title, description or category is blank
        """
        if _is_blank(data.title) or _is_blank(data.description) or _is_blank(
            data.category
        ):
            raise CourseValidationError

        course = Course(
            title=data.title,
            description=data.description.strip(),
            instructor_id=owner_id,
            thumbnail_url=data.thumbnail_url,
            category=data.category.strip(),
            level=data.level.value,
            price=data.price,
            published=data.published,
            tags=data.tags,
        )

        await self.session.aexecute(
            self._insert_course,
            [
                course.id,
                course.title,
                course.description,
                course.instructor_id,
                course.thumbnail_url,
                course.category,
                course.level,
                course.price,
                course.published,
                course.rating,
                course.tags,
                course.created_at,
                course.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_by_published,
            [course.published, course.created_at, course.id],
        )
        await self.session.aexecute(
            self._upsert_by_instructor,
            [owner_id, course.created_at, course.id, course.title, course.published],
        )

        logger.info(
            "course_created",
            course_id=str(course.id),
            instructor_id=str(owner_id),
            published=course.published,
        )
        return course

    async def update_course(
        self,
        course_id: UUID,
        caller_id: UUID,
        caller_role: UserRole | str,
        patch: UpdateCourseRequest,
    ) -> Course:
        """Apply a whitelisted patch.

        Raises:
            CourseNotFoundError: If course doesn't exist
            CourseAccessDeniedError: If caller is not the owner or an admin
        """
        course = await self.get_course(course_id)
        self._ensure_can_manage(course, caller_id, caller_role)

        was_published = course.published
        changes = patch.model_dump(include=set(self.UPDATABLE_FIELDS), exclude_unset=True)
        for field, value in changes.items():
            # Only thumbnail_url may be cleared; null elsewhere means unchanged
            if value is None and field != "thumbnail_url":
                continue
            if field == "level":
                value = patch.level.value
            setattr(course, field, value)

        course.updated_at = datetime.now(UTC)
        await self.session.aexecute(
            self._update_course,
            [
                course.title,
                course.description,
                course.category,
                course.level,
                course.price,
                course.thumbnail_url,
                course.tags,
                course.published,
                course.updated_at,
                course.id,
            ],
        )

        if course.published != was_published:
            await self.session.aexecute(
                self._insert_by_published,
                [course.published, course.created_at, course.id],
            )
            await self.session.aexecute(
                self._delete_by_published,
                [was_published, course.created_at, course.id],
            )
        await self.session.aexecute(
            self._upsert_by_instructor,
            [
                course.instructor_id,
                course.created_at,
                course.id,
                course.title,
                course.published,
            ],
        )

        logger.info(
            "course_updated",
            course_id=str(course.id),
            fields=sorted(changes),
        )
        return course

    async def _run_cascade(self, course_id: UUID) -> None:
        """Run every cascade handler, retrying the whole set on failure.

        Raises:
            CascadeDeleteError: When all attempts failed
        """
        attempts = get_settings().cascade_delete_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                for handler in self._cascade_handlers:
                    await handler(course_id)
                return
            except Exception as e:
                logger.warning(
                    "course_cascade_attempt_failed",
                    course_id=str(course_id),
                    attempt=attempt,
                    error=str(e),
                )
                if attempt == attempts:
                    raise CascadeDeleteError from e
                await asyncio.sleep(CASCADE_RETRY_DELAY_SECONDS * 2 ** (attempt - 1))

    async def delete_course(
        self, course_id: UUID, caller_id: UUID, caller_role: UserRole | str
    ) -> None:
        """Delete a course, its lessons and every enrollment in it.

        Dependent records are removed first. If that keeps failing the
        course stays in place and the error propagates. A second sweep after
        the course row is gone catches enrollments that raced the delete.

        Raises:
            CourseNotFoundError: If course doesn't exist
            CourseAccessDeniedError: If caller is not the owner or an admin
            CascadeDeleteError: If dependent records could not be removed
        """
        course = await self.get_course(course_id)
        self._ensure_can_manage(course, caller_id, caller_role)

        await self._run_cascade(course_id)

        await self.session.aexecute(self._delete_lessons, [course_id])
        await self.session.aexecute(
            self._delete_by_published,
            [course.published, course.created_at, course_id],
        )
        await self.session.aexecute(
            self._delete_by_instructor,
            [course.instructor_id, course.created_at, course_id],
        )
        await self.session.aexecute(self._delete_course, [course_id])

        try:
            await self._run_cascade(course_id)
        except CascadeDeleteError:
            # Course is already gone; leftovers are filtered on read
            logger.exception("course_cascade_sweep_failed", course_id=str(course_id))

        logger.info(
            "course_deleted",
            course_id=str(course_id),
            deleted_by=str(caller_id),
        )

    async def add_lesson(
        self,
        course_id: UUID,
        caller_id: UUID,
        caller_role: UserRole | str,
        data: CreateLessonRequest,
    ) -> Lesson:
        """Append a lesson at position = current lesson count.

        The position is claimed with IF NOT EXISTS; a concurrent append that
        took the same slot makes this call recount and try the next one.

        Raises:
            CourseNotFoundError: If course doesn't exist
            CourseAccessDeniedError: If caller is not the owner or an admin
            LessonValidationError: If title or content is blank
            LessonOrderConflictError: If no slot could be claimed
        """
        course = await self.get_course(course_id)
        self._ensure_can_manage(course, caller_id, caller_role)

        if _is_blank(data.title) or _is_blank(data.content):
            raise LessonValidationError

        resources = [r.model_dump() for r in data.resources]
        attempts = get_settings().lesson_append_max_attempts
        for _ in range(attempts):
            position = await self.count_lessons(course_id)
            lesson = Lesson(
                course_id=course_id,
                order=position,
                title=data.title.strip(),
                content=data.content,
                video_url=data.video_url,
                duration=data.duration,
                resources=resources,
            )
            result = await self.session.aexecute(
                self._insert_lesson,
                [
                    lesson.course_id,
                    lesson.order,
                    lesson.title,
                    lesson.content,
                    lesson.video_url,
                    lesson.duration,
                    lesson.resources,
                    lesson.created_at,
                ],
            )
            if result.was_applied:
                logger.info(
                    "lesson_added",
                    course_id=str(course_id),
                    order=lesson.order,
                )
                return lesson
            logger.info(
                "lesson_position_taken", course_id=str(course_id), order=position
            )

        raise LessonOrderConflictError
