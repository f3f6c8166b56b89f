"""Static configuration shipped with the codebase."""

from .llm import (
    DEFAULT_RECIPE_MODEL,
    DEFAULT_RECOGNITION_MODEL,
    DEFAULT_TEXT_TIMEOUT_SECONDS,
    DEFAULT_VISION_TIMEOUT_SECONDS,
)

__all__ = [
    "DEFAULT_RECIPE_MODEL",
    "DEFAULT_RECOGNITION_MODEL",
    "DEFAULT_TEXT_TIMEOUT_SECONDS",
    "DEFAULT_VISION_TIMEOUT_SECONDS",
]
