"""Database models for enrollment and progress tracking.

Cassandra table definitions for:
- Progress: one row per (user, course), the single source of truth for
  "is enrolled" and for lesson completion
- ProgressByCourse / ProgressByUser: read indexes (course roster and a
  user's enrolled courses), written idempotently after the progress row
- QuizScores: append-only quiz results per (user, course)

Enrollment creates the progress row with INSERT ... IF NOT EXISTS; every
later mutation is a conditional UPDATE guarded by ``version``.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID


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


def compute_progress_percent(completed_lessons: set[int], total_lessons: int) -> int:
    """Percentage of lessons completed, rounded half up.

    Only indices inside ``[0, total_lessons)`` count, so the result stays in
    0..100. A course without lessons is 0% complete.

    Examples:
        >>> compute_progress_percent({0}, 3)
        33
        >>> compute_progress_percent({0, 1}, 3)
        67
        >>> compute_progress_percent({0}, 8)
        13
    """
    if total_lessons <= 0:
        return 0
    done = sum(1 for index in completed_lessons if 0 <= index < total_lessons)
    percent = (Decimal(done) * 100 / Decimal(total_lessons)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return min(int(percent), 100)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress (
    user_id UUID,
    course_id UUID,
    completed_lessons SET<INT>,
    last_accessed_lesson INT,
    progress_percent INT,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    enrolled_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    version INT,
    PRIMARY KEY ((user_id, course_id))
)
"""

# Course roster: "who is enrolled in this course?"
PROGRESS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_by_course (
    course_id UUID,
    user_id UUID,
    enrolled_at TIMESTAMP,
    PRIMARY KEY (course_id, user_id)
)
"""

# Enrolled courses per user, in enrollment order
PROGRESS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_by_user (
    user_id UUID,
    enrolled_at TIMESTAMP,
    course_id UUID,
    PRIMARY KEY (user_id, enrolled_at, course_id)
) WITH CLUSTERING ORDER BY (enrolled_at ASC, course_id ASC)
"""

QUIZ_SCORES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_scores (
    user_id UUID,
    course_id UUID,
    score_id TIMEUUID,
    lesson_index INT,
    score INT,
    total_questions INT,
    completed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), score_id)
) WITH CLUSTERING ORDER BY (score_id ASC)
"""

# All CQL statements for table setup
PROGRESS_TABLES_CQL = [
    PROGRESS_TABLE_CQL,
    PROGRESS_BY_COURSE_TABLE_CQL,
    PROGRESS_BY_USER_TABLE_CQL,
    QUIZ_SCORES_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class QuizScore:
    """A single quiz result. Retakes append a new entry."""

    def __init__(
        self,
        lesson_index: int,
        score: int,
        total_questions: int,
        completed_at: datetime | None = None,
        score_id: UUID | None = None,
    ):
        self.lesson_index = lesson_index
        self.score = score
        self.total_questions = total_questions
        self.completed_at = ensure_utc_aware(completed_at) or datetime.now(UTC)
        self.score_id = score_id

    @classmethod
    def from_row(cls, row: Any) -> "QuizScore":
        return cls(
            lesson_index=row.lesson_index,
            score=row.score,
            total_questions=row.total_questions,
            completed_at=row.completed_at,
            score_id=row.score_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_index": self.lesson_index,
            "score": self.score,
            "total_questions": self.total_questions,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        return f"<QuizScore lesson={self.lesson_index} {self.score}/{self.total_questions}>"


class Progress:
    """Per-user progress in one course; its existence means "enrolled".

    Attributes:
        user_id: Enrolled user
        course_id: Course
        completed_lessons: Set of 0-based lesson indices marked done
        last_accessed_lesson: Index of the last lesson touched
        progress: 0-100, derived from completed_lessons and the live lesson count
        completed: True exactly when progress reached 100
        completed_at: When progress last reached 100 (cleared when it drops)
        enrolled_at: Enrollment timestamp
        last_accessed: Last mutation timestamp
        version: Optimistic concurrency counter
        quiz_scores: Loaded separately from quiz_scores
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        completed_lessons: set[int] | None = None,
        last_accessed_lesson: int = 0,
        progress: int = 0,
        completed: bool = False,
        completed_at: datetime | None = None,
        enrolled_at: datetime | None = None,
        last_accessed: datetime | None = None,
        version: int = 0,
        quiz_scores: list[QuizScore] | None = None,
    ):
        now = datetime.now(UTC)
        self.user_id = user_id
        self.course_id = course_id
        self.completed_lessons = set(completed_lessons or ())
        self.last_accessed_lesson = last_accessed_lesson or 0
        self.progress = progress or 0
        self.completed = bool(completed)
        self.completed_at = ensure_utc_aware(completed_at)
        self.enrolled_at = ensure_utc_aware(enrolled_at) or now
        self.last_accessed = ensure_utc_aware(last_accessed) or self.enrolled_at
        self.version = version or 0
        self.quiz_scores = list(quiz_scores or [])

    @classmethod
    def from_row(cls, row: Any) -> "Progress":
        """Create Progress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            completed_lessons=row.completed_lessons,
            last_accessed_lesson=row.last_accessed_lesson,
            progress=row.progress_percent,
            completed=row.completed,
            completed_at=row.completed_at,
            enrolled_at=row.enrolled_at,
            last_accessed=row.last_accessed_at,
            version=row.version,
        )

    def apply_lesson_completion(
        self,
        lesson_index: int,
        completed: bool,
        total_lessons: int,
        now: datetime | None = None,
    ) -> None:
        """Mark or unmark a lesson and recompute progress and completion.

        The caller validates ``lesson_index`` against ``total_lessons``.
        """
        now = now or datetime.now(UTC)

        if completed:
            self.completed_lessons.add(lesson_index)
        else:
            self.completed_lessons.discard(lesson_index)

        self.last_accessed_lesson = lesson_index
        self.last_accessed = now
        self.progress = compute_progress_percent(self.completed_lessons, total_lessons)

        if self.progress == 100 and not self.completed:
            self.completed = True
            self.completed_at = now
        elif self.progress < 100 and self.completed:
            self.completed = False
            self.completed_at = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "completed_lessons": sorted(self.completed_lessons),
            "last_accessed_lesson": self.last_accessed_lesson,
            "progress": self.progress,
            "completed": self.completed,
            "completed_at": self.completed_at,
            "enrolled_at": self.enrolled_at,
            "last_accessed": self.last_accessed,
            "quiz_scores": [score.to_dict() for score in self.quiz_scores],
        }

    def __repr__(self) -> str:
        return f"<Progress user={self.user_id} course={self.course_id} {self.progress}%>"
