"""
Error kinds shared by every stage of the document pipeline.

Two kinds originate in the pipeline itself: validation failures (bad or missing
input, missing configuration) and parsing failures (malformed content). Both
carry an explicit ``kind`` so callers can tell "bad input, don't retry" apart
from transient failures without relying on class identity.
"""

from typing import Any, Dict, Optional

VALIDATION_ERROR = "ValidationError"
PARSING_ERROR = "ParameterParsingError"
UNKNOWN_ERROR = "UnknownError"
UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"


class PipelineError(Exception):
    """Base class for errors raised by pipeline code."""

    kind = "PipelineError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PipelineError):
    """Required data, configuration or shape is missing or invalid."""

    kind = VALIDATION_ERROR

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ParameterParsingError(PipelineError):
    """Content could not be decoded or parsed."""

    kind = PARSING_ERROR

    def __init__(self, message: str, cause: Any = None):
        super().__init__(message)
        self.cause = cause


def is_pipeline_error(error: Any) -> bool:
    """True for the two first-class kinds that stages re-raise unchanged."""
    return isinstance(error, PipelineError) and error.kind in (VALIDATION_ERROR, PARSING_ERROR)


def create_error_response(error: Any, context: str) -> Dict[str, str]:
    """Build a standardized error record for logging and propagation.

    Args:
        error: Anything that was raised (or otherwise reported as a failure)
        context: Where the error occurred, e.g. the stage name

    Returns:
        Dictionary with ``error``, ``context`` and ``kind`` keys
    """
    kind = getattr(error, "kind", None) if isinstance(error, PipelineError) else None

    if kind in (VALIDATION_ERROR, PARSING_ERROR):
        message = error.message
    elif isinstance(error, BaseException):
        kind = type(error).__name__
        message = _safe_message(error)
    else:
        kind = UNKNOWN_ERROR
        message = UNKNOWN_ERROR_MESSAGE

    return {
        "error": message,
        "context": context,
        "kind": kind,
    }


def _safe_message(error: BaseException) -> str:
    # str() runs arbitrary __str__ code on third-party exceptions
    try:
        return str(error)
    except Exception:
        return UNKNOWN_ERROR_MESSAGE
