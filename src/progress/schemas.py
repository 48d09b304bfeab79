"""Pydantic schemas for enrollment and progress tracking.

Request and response models for:
- Lesson completion updates
- Quiz score recording
- Progress queries (single course and all enrollments)
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import Progress, QuizScore


if TYPE_CHECKING:
    from src.auth.models import User
    from src.courses.models import Course


# ==============================================================================
# Request Schemas
# ==============================================================================


class UpdateLessonCompletionRequest(BaseModel):
    """Mark or unmark a lesson as completed."""

    model_config = ConfigDict(extra="forbid")

    lesson_index: int = Field(..., description="0-based lesson index")
    completed: bool = Field(True, description="False removes the completion")


class RecordQuizScoreRequest(BaseModel):
    """Store the result of a quiz attempt."""

    model_config = ConfigDict(extra="forbid")

    lesson_index: int = Field(..., description="0-based lesson index")
    score: int = Field(..., ge=0, description="Correct answers")
    total_questions: int = Field(..., gt=0, description="Questions in the quiz")

    @model_validator(mode="after")
    def score_within_total(self) -> "RecordQuizScoreRequest":
        if self.score > self.total_questions:
            raise ValueError("score cannot exceed total_questions")
        return self


# ==============================================================================
# Response Schemas
# ==============================================================================


class QuizScoreResponse(BaseModel):
    """Quiz score response."""

    lesson_index: int
    score: int
    total_questions: int
    completed_at: datetime

    @classmethod
    def from_entity(cls, entity: QuizScore) -> "QuizScoreResponse":
        return cls(**entity.to_dict())


class ProgressResponse(BaseModel):
    """Progress in one course."""

    user_id: UUID
    course_id: UUID
    completed_lessons: list[int] = Field(default_factory=list)
    last_accessed_lesson: int = 0
    progress: int = Field(0, ge=0, le=100, description="0-100 percentage")
    completed: bool = False
    completed_at: datetime | None = None
    enrolled_at: datetime
    last_accessed: datetime
    quiz_scores: list[QuizScoreResponse] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, entity: Progress) -> "ProgressResponse":
        """Create response from entity."""
        return cls(**entity.to_dict())


class CourseBrief(BaseModel):
    """Course fields shown next to a progress record."""

    id: UUID
    title: str
    thumbnail_url: str | None = None
    instructor_id: UUID
    instructor_name: str | None = None
    total_lessons: int = 0


class ProgressWithCourseResponse(ProgressResponse):
    """Progress joined with the course and its instructor."""

    course: CourseBrief

    @classmethod
    def build(
        cls,
        progress: Progress,
        course: "Course",
        instructor: "User | None",
    ) -> "ProgressWithCourseResponse":
        return cls(
            **progress.to_dict(),
            course=CourseBrief(
                id=course.id,
                title=course.title,
                thumbnail_url=course.thumbnail_url,
                instructor_id=course.instructor_id,
                instructor_name=instructor.name if instructor else None,
                total_lessons=course.total_lessons,
            ),
        )


class ProgressListResponse(BaseModel):
    """All of the caller's progress records."""

    items: list[ProgressWithCourseResponse]
    total: int


class EnrollmentResponse(BaseModel):
    """Result of a successful enrollment."""

    message: str = "Successfully enrolled"
    progress: ProgressResponse
