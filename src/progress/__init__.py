"""Enrollment and progress tracking module.

Provides:
- Enrollment with eligibility checks and idempotent record creation
- Lesson completion with progress recomputed from the live lesson count
- Quiz score recording
- Course roster and enrolled-course queries
"""

from .models import (
    PROGRESS_TABLES_CQL,
    Progress,
    QuizScore,
    compute_progress_percent,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "Progress",
    "QuizScore",
    "compute_progress_percent",
]
