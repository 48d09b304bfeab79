"""Database models for the course catalog.

Cassandra table definitions for:
- Courses: main course table
- CourseLessons: lessons embedded in a course, clustered by position
- Lookup tables: published catalog and per-instructor listings

Lessons are append-only and belong to exactly one course. Their position is
the number of lessons the course had when the lesson was appended.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class CourseLevel(str, Enum):
    """Course difficulty level."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


RATING_MIN = 0.0


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    instructor_id UUID,
    thumbnail_url TEXT,
    category TEXT,
    level TEXT,
    price DECIMAL,
    published BOOLEAN,
    rating FLOAT,
    tags LIST<TEXT>,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# "order" is reserved in CQL, lessons are clustered by position instead
COURSE_LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_lessons (
    course_id UUID,
    position INT,
    title TEXT,
    content TEXT,
    video_url TEXT,
    duration_minutes INT,
    resources LIST<FROZEN<MAP<TEXT, TEXT>>>,
    created_at TIMESTAMP,
    PRIMARY KEY (course_id, position)
) WITH CLUSTERING ORDER BY (position ASC)
"""

COURSES_BY_PUBLISHED_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_published (
    published BOOLEAN,
    created_at TIMESTAMP,
    course_id UUID,
    PRIMARY KEY (published, created_at, course_id)
) WITH CLUSTERING ORDER BY (created_at DESC, course_id ASC)
"""

COURSES_BY_INSTRUCTOR_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_instructor (
    instructor_id UUID,
    created_at TIMESTAMP,
    course_id UUID,
    title TEXT,
    published BOOLEAN,
    PRIMARY KEY (instructor_id, created_at, course_id)
) WITH CLUSTERING ORDER BY (created_at DESC, course_id ASC)
"""

# All CQL statements for table setup
COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    COURSE_LESSONS_TABLE_CQL,
    COURSES_BY_PUBLISHED_TABLE_CQL,
    COURSES_BY_INSTRUCTOR_TABLE_CQL,
]


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _contains(haystack: str | None, needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


# ==============================================================================
# Entity Classes
# ==============================================================================


class Lesson:
    """Lesson embedded in a course.

    Attributes:
        course_id: Owning course
        order: 0-based position inside the course, never changes
        title: Lesson title
        content: Lesson body (markdown/text)
        video_url: Optional video URL
        duration: Length in minutes (>= 0)
        resources: Optional list of {"title", "url", "type"} dicts
        created_at: Append timestamp
    """

    def __init__(
        self,
        course_id: UUID,
        order: int,
        title: str = "",
        content: str = "",
        video_url: str | None = None,
        duration: int = 0,
        resources: list[dict[str, str]] | None = None,
        created_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.order = order
        self.title = title
        self.content = content
        self.video_url = video_url
        self.duration = duration or 0
        self.resources = [dict(r) for r in resources or []]
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson instance from Cassandra row."""
        return cls(
            course_id=row.course_id,
            order=row.position,
            title=row.title,
            content=row.content,
            video_url=row.video_url,
            duration=row.duration_minutes,
            resources=row.resources,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": self.order,
            "title": self.title,
            "content": self.content,
            "video_url": self.video_url,
            "duration": self.duration,
            "resources": self.resources,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"<Lesson {self.course_id}#{self.order} {self.title}>"


class Course:
    """Course entity with its ordered lessons.

    Attributes:
        id: Unique identifier (UUID)
        title: Course title
        description: Course description
        instructor_id: Owning instructor, fixed at creation
        thumbnail_url: Cover image URL
        category: Free-form category
        level: beginner, intermediate or advanced
        price: Price, 0 means free
        published: Listed in the public catalog
        rating: Average rating 0-5, maintained outside this service
        tags: Ordered tag list
        lessons: Lessons ordered by position (loaded on demand)
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: UUID | None = None,
        title: str = "",
        description: str = "",
        instructor_id: UUID | None = None,
        thumbnail_url: str | None = None,
        category: str = "",
        level: str = CourseLevel.BEGINNER.value,
        price: Decimal | None = None,
        published: bool = True,
        rating: float | None = None,
        tags: list[str] | None = None,
        lessons: list[Lesson] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.title = (title or "").strip()
        self.description = description or ""
        self.instructor_id = instructor_id
        self.thumbnail_url = thumbnail_url
        self.category = category or ""
        self.level = level or CourseLevel.BEGINNER.value
        self.price = price if price is not None else Decimal(0)
        self.published = published if published is not None else True
        self.rating = rating if rating is not None else RATING_MIN
        self.tags = list(tags or [])
        self.lessons = list(lessons or [])
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any, lessons: list[Lesson] | None = None) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title,
            description=row.description,
            instructor_id=row.instructor_id,
            thumbnail_url=row.thumbnail_url,
            category=row.category,
            level=row.level,
            price=row.price,
            published=row.published,
            rating=row.rating,
            tags=row.tags,
            lessons=lessons,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @property
    def is_free(self) -> bool:
        return self.price == 0

    @property
    def total_lessons(self) -> int:
        return len(self.lessons)

    def matches(
        self,
        category: str | None = None,
        level: str | None = None,
        search: str | None = None,
    ) -> bool:
        """Catalog filter.

        Category and level match exactly. ``search`` is a case-insensitive
        substring matched against title, description or any tag.
        """
        if category and self.category != category:
            return False
        if level and self.level != level:
            return False
        if search:
            needle = search.lower()
            return (
                _contains(self.title, needle)
                or _contains(self.description, needle)
                or any(_contains(tag, needle) for tag in self.tags)
            )
        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "instructor_id": self.instructor_id,
            "thumbnail_url": self.thumbnail_url,
            "category": self.category,
            "level": self.level,
            "price": self.price,
            "published": self.published,
            "rating": self.rating,
            "tags": self.tags,
            "lessons": [lesson.to_dict() for lesson in self.lessons],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        state = "published" if self.published else "draft"
        return f"<Course {self.title} ({state})>"
