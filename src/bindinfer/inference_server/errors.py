"""Error codes and exceptions for binding type inference."""

INVALID_INPUT = "INVALID_INPUT"
ARTIFACT_ERROR = "ARTIFACT_ERROR"
QUERY_TIMEOUT = "QUERY_TIMEOUT"
QUERY_FAILURE = "QUERY_FAILURE"
EXTRACTION_FAILURE = "EXTRACTION_FAILURE"
RESOLUTION_FAILURE = "RESOLUTION_FAILURE"


class InferenceError(Exception):
    """Base exception for inference errors"""

    code = RESOLUTION_FAILURE

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ArtifactError(InferenceError):
    """Raised when the temporary probe component cannot be written"""

    code = ARTIFACT_ERROR


class QueryTimeout(InferenceError):
    """Raised when the type oracle does not answer in time"""

    code = QUERY_TIMEOUT


class QueryFailure(InferenceError):
    """Raised when the type oracle fails or returns nothing usable"""

    code = QUERY_FAILURE


class ExtractionFailure(InferenceError):
    """Raised when hover text holds no parseable type"""

    code = EXTRACTION_FAILURE
