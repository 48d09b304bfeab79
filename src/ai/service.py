"""Text generation through an OpenAI-compatible chat completions API.

Failures never propagate: callers get a result with ``fallback=True`` and
carry on without AI assistance.
"""

from dataclasses import dataclass

import httpx
import structlog

from src.config.settings import Settings

from .schemas import ContentType


logger = structlog.get_logger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "AI features are not configured. Please add an AI API key to use AI features."
)
UNAVAILABLE_MESSAGE = "AI service temporarily unavailable"

SYSTEM_PROMPTS: dict[ContentType, str] = {
    ContentType.DESCRIPTION: "You write concise, engaging online course descriptions.",
    ContentType.LESSON: "You write clear, well structured lesson content for online courses.",
    ContentType.QUIZ: "You write short multiple-choice quizzes that check lesson understanding.",
    ContentType.SUMMARY: "You summarize lesson content into key takeaways.",
}


@dataclass
class GenerationResult:
    """Outcome of a generation request."""

    success: bool
    content: str | None = None
    message: str | None = None
    fallback: bool = False


class TextGenerationService:
    """Drafts course material with a hosted language model."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self._api_key = settings.ai_api_key
        self._base_url = settings.ai_base_url.rstrip("/")
        self._model = settings.ai_model
        self._max_tokens = settings.ai_max_tokens
        self._timeout = settings.ai_timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def generate(
        self, prompt: str, content_type: ContentType = ContentType.LESSON
    ) -> GenerationResult:
        """Generate text for ``prompt``.

        Returns:
            GenerationResult, with fallback=True when not configured or the
            provider failed.
        """
        if not self.is_configured:
            return GenerationResult(
                success=False, message=NOT_CONFIGURED_MESSAGE, fallback=True
            )

        payload = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPTS[content_type]},
                {"role": "user", "content": prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )

                if response.status_code != httpx.codes.OK:
                    logger.error(
                        "ai_request_failed",
                        status_code=response.status_code,
                        response_text=response.text[:500],
                    )
                    return GenerationResult(
                        success=False, message=UNAVAILABLE_MESSAGE, fallback=True
                    )

                data = response.json()

        except httpx.TimeoutException as e:
            logger.error("ai_request_timeout", error=str(e))
            return GenerationResult(success=False, message=UNAVAILABLE_MESSAGE, fallback=True)
        except httpx.HTTPError as e:
            logger.error("ai_request_error", error=str(e))
            return GenerationResult(success=False, message=UNAVAILABLE_MESSAGE, fallback=True)
        except ValueError as e:
            logger.error("ai_response_not_json", error=str(e))
            return GenerationResult(success=False, message=UNAVAILABLE_MESSAGE, fallback=True)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.error("ai_response_malformed")
            return GenerationResult(success=False, message=UNAVAILABLE_MESSAGE, fallback=True)

        logger.info(
            "ai_content_generated",
            content_type=content_type.value,
            length=len(content or ""),
        )
        return GenerationResult(success=True, content=content)
