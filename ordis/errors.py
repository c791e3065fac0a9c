"""Error taxonomy for the extraction pipeline.

Transport failures are classified as retryable (NetworkError, RateLimitError)
or fatal (everything else). Only the retry controller decides what to do
with that classification.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-checkable error code carried by exceptions and result entries."""

    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    AUTH_ERROR = "AUTH_ERROR"
    REQUEST_ERROR = "REQUEST_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    EXHAUSTED_RETRIES = "EXHAUSTED_RETRIES"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    INVALID_VALUE = "INVALID_VALUE"
    UNKNOWN = "UNKNOWN"


class ExtractionError(Exception):
    """Base class for every failure raised by the pipeline."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NetworkError(ExtractionError):
    """Transport-level failure or 5xx response (retryable)."""

    kind = ErrorKind.NETWORK_ERROR


class RateLimitError(ExtractionError):
    """HTTP 429 (retryable). May carry the server's Retry-After in seconds."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class AuthError(ExtractionError):
    """HTTP 401/403 (fatal)."""

    kind = ErrorKind.AUTH_ERROR

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class RequestError(ExtractionError):
    """Any other non-2xx response the server rejected (fatal)."""

    kind = ErrorKind.REQUEST_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(ExtractionError):
    """Malformed chat-completion envelope or model output (fatal)."""

    kind = ErrorKind.PARSE_ERROR


class ExhaustedRetriesError(ExtractionError):
    """Every retryable attempt failed."""

    kind = ErrorKind.EXHAUSTED_RETRIES

    def __init__(self, attempts: int, last_error: ExtractionError):
        super().__init__(
            f"Network error after {attempts} attempts: {last_error.message}"
        )
        self.attempts = attempts
        self.last_error = last_error


class SchemaError(ExtractionError):
    """Invalid field schema."""

    kind = ErrorKind.SCHEMA_ERROR


RETRYABLE_ERRORS = (NetworkError, RateLimitError)
