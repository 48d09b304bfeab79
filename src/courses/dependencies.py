"""FastAPI dependencies for the course catalog."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from src.courses.service import CourseService


# ==============================================================================
# Service Getter (set by main.py)
# ==============================================================================

_course_service_getter: Callable[[], CourseService] | None = None


def set_course_service_getter(getter: Callable[[], CourseService]) -> None:
    """Set the course service getter function."""
    global _course_service_getter  # noqa: PLW0603 - Required for DI pattern
    _course_service_getter = getter


def get_course_service() -> CourseService:
    """Get CourseService instance from app state."""
    if _course_service_getter is None:
        msg = "CourseService not configured"
        raise RuntimeError(msg)
    return _course_service_getter()


CourseServiceDep = Annotated[CourseService, Depends(get_course_service)]
