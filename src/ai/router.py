"""AI content generation endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.auth.dependencies import InstructorUser

from .schemas import GenerateContentRequest, GenerateContentResponse
from .service import TextGenerationService


router = APIRouter(prefix="/v1/ai", tags=["ai"])


async def get_text_generation_service(request: Request) -> TextGenerationService:
    """Get text generation service from app state."""
    service = getattr(request.app.state, "text_generation_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service unavailable",
        )
    return service


TextGenerationServiceDep = Annotated[
    TextGenerationService, Depends(get_text_generation_service)
]


@router.post(
    "/generate-content",
    response_model=GenerateContentResponse,
    summary="Draft course content",
)
async def generate_content(
    data: GenerateContentRequest,
    service: TextGenerationServiceDep,
    user: InstructorUser,
) -> GenerateContentResponse:
    """Draft course material (instructor or admin).

    Provider failures return 200 with ``success=false`` and ``fallback=true``.
    """
    result = await service.generate(data.prompt, data.type)
    return GenerateContentResponse(
        success=result.success,
        content=result.content,
        type=data.type if result.success else None,
        message=result.message,
        fallback=result.fallback,
    )
