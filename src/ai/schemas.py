"""Pydantic schemas for AI content generation."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ContentType(str, Enum):
    """Kind of course material being drafted."""

    DESCRIPTION = "description"
    LESSON = "lesson"
    QUIZ = "quiz"
    SUMMARY = "summary"


class GenerateContentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(..., min_length=1, max_length=4000)
    type: ContentType = Field(ContentType.LESSON, description="Content type")


class GenerateContentResponse(BaseModel):
    """Generation outcome.

    ``fallback`` tells clients to continue with manual authoring.
    """

    success: bool
    content: str | None = None
    type: ContentType | None = None
    message: str | None = None
    fallback: bool = False
