"""FastAPI dependencies for enrollment and progress tracking.

Services are created in the application lifespan and stored on app state.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import EnrollmentService, ProgressService


def _from_app_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service unavailable",
        )
    return service


async def get_progress_service(request: Request) -> ProgressService:
    """Get progress service from app state."""
    return _from_app_state(request, "progress_service")


async def get_enrollment_service(request: Request) -> EnrollmentService:
    """Get enrollment service from app state."""
    return _from_app_state(request, "enrollment_service")


# Type aliases for dependency injection
ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]
EnrollmentServiceDep = Annotated[EnrollmentService, Depends(get_enrollment_service)]
