"""Pydantic schemas for the course catalog.

Request and response models for:
- Courses: create, whitelisted update, catalog listing
- Lessons: append
- Learner views: enrolled courses with progress, course roster
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.auth.validators import validate_tags, validate_url
from src.courses.models import CourseLevel


if TYPE_CHECKING:
    from src.auth.models import User
    from src.courses.models import Course, Lesson
    from src.progress.models import Progress


def _checked_url(v: str | None) -> str | None:
    if v is None or v.strip() == "":
        return None
    result = validate_url(v)
    if not result.valid:
        raise ValueError(result.message or "Invalid URL")
    return result.formatted


def _checked_tags(v: list[str] | None) -> list[str] | None:
    if v is None:
        return None
    result = validate_tags(v)
    if not result.valid:
        raise ValueError(result.message or "Invalid tags")
    return list(result.tags)


# ==============================================================================
# Course Schemas
# ==============================================================================


class CreateCourseRequest(BaseModel):
    """Course creation request.

    Title, description and category are checked for blankness by the
    service so that missing values surface as a course validation error.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, max_length=200, description="Course title")
    description: str | None = Field(
        None, max_length=10000, description="Course description"
    )
    category: str | None = Field(None, max_length=100, description="Category")
    level: CourseLevel = Field(CourseLevel.BEGINNER, description="Difficulty level")
    price: Decimal = Field(Decimal(0), ge=0, description="Price, 0 = free")
    thumbnail_url: str | None = Field(None, description="Thumbnail image URL")
    tags: list[str] = Field(default_factory=list, description="Tags")
    published: bool = Field(True, description="List in the public catalog")

    @field_validator("thumbnail_url")
    @classmethod
    def validate_thumbnail_url(cls, v: str | None) -> str | None:
        return _checked_url(v)

    @field_validator("tags")
    @classmethod
    def validate_tag_list(cls, v: list[str]) -> list[str]:
        return _checked_tags(v) or []


class UpdateCourseRequest(BaseModel):
    """Whitelisted course patch.

    Any other field (instructor_id, enrolled_students, rating, lessons, ...)
    is rejected with a validation error rather than silently ignored.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, min_length=1, max_length=10000)
    category: str | None = Field(None, min_length=1, max_length=100)
    level: CourseLevel | None = None
    price: Decimal | None = Field(None, ge=0)
    thumbnail_url: str | None = None
    tags: list[str] | None = None
    published: bool | None = None

    @field_validator("title", "description", "category")
    @classmethod
    def reject_blank(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v

    @field_validator("thumbnail_url")
    @classmethod
    def validate_thumbnail_url(cls, v: str | None) -> str | None:
        return _checked_url(v)

    @field_validator("tags")
    @classmethod
    def validate_tag_list(cls, v: list[str] | None) -> list[str] | None:
        return _checked_tags(v)


# ==============================================================================
# Lesson Schemas
# ==============================================================================


class LessonResource(BaseModel):
    """Downloadable or linked material attached to a lesson."""

    title: str = Field(..., min_length=1, max_length=200)
    url: str
    type: str = Field("link", max_length=50)

    @field_validator("url")
    @classmethod
    def validate_resource_url(cls, v: str) -> str:
        checked = _checked_url(v)
        if checked is None:
            raise ValueError("URL is required")
        return checked


class CreateLessonRequest(BaseModel):
    """Lesson append request. Title and content are checked by the service."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, max_length=200)
    content: str | None = Field(None, max_length=100000)
    video_url: str | None = None
    duration: int = Field(0, ge=0, description="Duration in minutes")
    resources: list[LessonResource] = Field(default_factory=list)

    @field_validator("video_url")
    @classmethod
    def validate_video_url(cls, v: str | None) -> str | None:
        return _checked_url(v)


class LessonResponse(BaseModel):
    """Lesson response."""

    order: int
    title: str
    content: str
    video_url: str | None = None
    duration: int = 0
    resources: list[LessonResource] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_lesson(cls, lesson: "Lesson") -> "LessonResponse":
        return cls(**lesson.to_dict())


# ==============================================================================
# Course Responses
# ==============================================================================


class InstructorInfo(BaseModel):
    """Instructor details shown alongside a course."""

    id: UUID
    name: str
    email: str
    avatar_url: str | None = None
    bio: str | None = None

    @classmethod
    def from_user(cls, user: "User", include_bio: bool = False) -> "InstructorInfo":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            avatar_url=user.avatar_url,
            bio=user.bio if include_bio else None,
        )


class CourseSummaryResponse(BaseModel):
    """Course in listings (no lesson bodies)."""

    id: UUID
    title: str
    description: str
    instructor_id: UUID
    instructor: InstructorInfo | None = None
    thumbnail_url: str | None = None
    category: str
    level: CourseLevel
    price: Decimal
    published: bool
    rating: float
    tags: list[str] = Field(default_factory=list)
    total_lessons: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_course(
        cls, course: "Course", instructor: "User | None" = None
    ) -> "CourseSummaryResponse":
        data = course.to_dict()
        data.pop("lessons")
        return cls(
            **data,
            instructor=InstructorInfo.from_user(instructor) if instructor else None,
            total_lessons=course.total_lessons,
        )


class CourseResponse(CourseSummaryResponse):
    """Full course including ordered lessons and the instructor's bio."""

    lessons: list[LessonResponse] = Field(default_factory=list)

    @classmethod
    def from_course(
        cls, course: "Course", instructor: "User | None" = None
    ) -> "CourseResponse":
        summary = CourseSummaryResponse.from_course(course)
        return cls(
            **summary.model_dump(exclude={"instructor"}),
            instructor=(
                InstructorInfo.from_user(instructor, include_bio=True)
                if instructor
                else None
            ),
            lessons=[LessonResponse.from_lesson(lesson) for lesson in course.lessons],
        )


class CourseListResponse(BaseModel):
    """Course list response."""

    items: list[CourseSummaryResponse]
    total: int


class EnrolledCourseResponse(CourseSummaryResponse):
    """A course the caller is enrolled in, with their progress."""

    progress: int = 0
    completed: bool = False
    last_accessed: datetime | None = None
    enrolled_at: datetime | None = None

    @classmethod
    def build(
        cls,
        course: "Course",
        progress: "Progress",
        instructor: "User | None" = None,
    ) -> "EnrolledCourseResponse":
        summary = CourseSummaryResponse.from_course(course, instructor)
        return cls(
            **summary.model_dump(exclude={"instructor"}),
            instructor=summary.instructor,
            progress=progress.progress,
            completed=progress.completed,
            last_accessed=progress.last_accessed,
            enrolled_at=progress.enrolled_at,
        )


class RosterResponse(BaseModel):
    """Students enrolled in a course."""

    course_id: UUID
    students: list[UUID]
    total: int
