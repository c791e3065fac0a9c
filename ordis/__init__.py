"""Schema-first structured extraction with OpenAI-compatible LLMs."""

from .errors import (
    AuthError,
    ErrorKind,
    ExhaustedRetriesError,
    ExtractionError,
    NetworkError,
    ParseError,
    RateLimitError,
    RequestError,
    SchemaError,
)
from .models import (
    ExtractionFailure,
    ExtractionIssue,
    ExtractionRequest,
    ExtractionResult,
    ExtractionSuccess,
    LLMConfig,
    ValidatedResponse,
)
from .pipeline import LLMClient, client_extract, extract, extract_many
from .retry import RetryConfig
from .schema import FieldSpec, FieldType, Schema, load_schema, validate_schema

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "ErrorKind",
    "ExhaustedRetriesError",
    "ExtractionError",
    "ExtractionFailure",
    "ExtractionIssue",
    "ExtractionRequest",
    "ExtractionResult",
    "ExtractionSuccess",
    "FieldSpec",
    "FieldType",
    "LLMClient",
    "LLMConfig",
    "NetworkError",
    "ParseError",
    "RateLimitError",
    "RequestError",
    "RetryConfig",
    "Schema",
    "SchemaError",
    "ValidatedResponse",
    "client_extract",
    "extract",
    "extract_many",
    "load_schema",
    "validate_schema",
]
