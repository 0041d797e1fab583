"""Generation backends and prompt builders."""

from .base import (
    GenerateInput,
    GenerationBackend,
    GenerationError,
    RelationshipUpdateError,
    UpdateRelationshipInput,
)
from .gemini import GeminiBackend

__all__ = [
    "GenerateInput",
    "GenerationBackend",
    "GenerationError",
    "RelationshipUpdateError",
    "UpdateRelationshipInput",
    "GeminiBackend",
]
