"""
Audio generation through an asynchronous job API.
"""

from .api import GenerationJobAPI, ReplicateJobAPI, parse_retry_after
from .cache import TTLCache
from .client import GenerationJobClient, GenerationResult
from .errors import (
    GenerationAPIError,
    GenerationCancelled,
    GenerationError,
    GenerationFailed,
    GenerationTimeout,
    RateLimitExceeded,
)
from .prompts import (
    AMBIENCE_PROMPTS,
    MOOD_PROMPTS,
    build_ambience_prompt,
    build_music_prompt,
    generation_input,
    resolve_mood,
)

__all__ = [
    "AMBIENCE_PROMPTS",
    "GenerationAPIError",
    "GenerationCancelled",
    "GenerationError",
    "GenerationFailed",
    "GenerationJobAPI",
    "GenerationJobClient",
    "GenerationResult",
    "GenerationTimeout",
    "MOOD_PROMPTS",
    "RateLimitExceeded",
    "ReplicateJobAPI",
    "TTLCache",
    "build_ambience_prompt",
    "build_music_prompt",
    "generation_input",
    "parse_retry_after",
    "resolve_mood",
]
