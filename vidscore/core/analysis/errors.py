"""
Errors raised by the video analysis pipeline.

Every step of a run raises a subclass of PipelineError so the orchestrator
can catch them in one place and mark the video FAILED.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for analysis pipeline failures."""
    retryable: bool = False


class ConfigurationError(PipelineError):
    """Raised when the analysis backend is missing an endpoint or credential."""
    pass


class DownloadError(PipelineError):
    """Raised when the source video cannot be fetched."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ExtractionError(PipelineError):
    """Raised when the frame extractor fails or produces no frames."""
    pass


class InferenceError(PipelineError):
    """Raised when the vision model call fails or returns an empty body."""

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ParseError(PipelineError):
    """Raised when the model response is not the expected JSON object."""
    pass


class PersistenceError(PipelineError):
    """Raised when a database write fails."""
    pass


class VideoNotFoundError(Exception):
    """Raised when a requested video doesn't exist."""
    pass
