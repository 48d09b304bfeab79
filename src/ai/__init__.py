"""AI-assisted course authoring."""

from src.ai.router import router


__all__ = ["router"]
