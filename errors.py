"""Error taxonomy for the memory and ground-truth engine."""

from typing import Optional


class EngineError(Exception):
    """Base class for engine errors surfaced to callers."""

    retryable = False

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class StoreUnavailableError(EngineError):
    """A read or write against persistence failed.

    Retryable infrastructure error. Never converted into a model answer.
    """

    retryable = True


class GenerationError(EngineError):
    """The model invocation failed or returned nothing usable."""

    retryable = True


class SummarizationError(EngineError):
    """Summary generation failed; handled inside the compressor."""
