"""Generation error types."""

from typing import Optional


class GenerationError(Exception):
    """Base class for generation failures."""

    pass


class GenerationAPIError(GenerationError):
    """The job API answered with an HTTP error."""

    def __init__(self, message: str, status: int = 0, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


class GenerationTimeout(GenerationError):
    """The job did not finish within the polling ceiling."""

    pass


class GenerationFailed(GenerationError):
    """The job failed, returned no output, or the API kept erroring."""

    pass


class GenerationCancelled(GenerationError):
    """The job was aborted through ``cancel``."""

    pass


class RateLimitExceeded(GenerationError):
    """Still rate limited after every allowed retry."""

    rate_limited = True
