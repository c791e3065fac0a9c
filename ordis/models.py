"""Request/response models for the extraction pipeline.

Python attributes are snake_case; JSON aliases keep the camelCase names
used on the wire and in config files (baseURL, confidenceByField, ...).
"""

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import settings
from .errors import ErrorKind
from .retry import RetryConfig
from .schema import Schema


class LLMConfig(BaseModel):
    """Endpoint, model and retry policy for one extraction."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    base_url: str = Field(alias="baseURL")
    model: str
    api_key: str | None = Field(default=None, alias="apiKey", repr=False)
    retries: RetryConfig = Field(default_factory=RetryConfig)

    @classmethod
    def from_settings(cls, **overrides: Any) -> "LLMConfig":
        values: dict[str, Any] = {
            "base_url": settings.LLM_BASE_URL,
            "model": settings.LLM_MODEL,
            "api_key": settings.LLM_API_KEY,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# A dataclass: "schema" would shadow BaseModel.schema on a pydantic model.
@dataclass(frozen=True)
class ExtractionRequest:
    input: str
    schema: Schema
    llm_config: LLMConfig


class ExtractionIssue(BaseModel):
    """One entry of a result's error list."""

    model_config = ConfigDict(frozen=True)

    field: str | None = None
    message: str
    code: ErrorKind


class ValidatedResponse(BaseModel):
    """Model output after parsing and checking against the schema."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data: dict[str, Any]
    confidence: float = Field(ge=0, le=100)
    confidence_by_field: dict[str, float] = Field(default_factory=dict)
    issues: list[ExtractionIssue] = Field(default_factory=list)


class ExtractionSuccess(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: Literal[True] = True
    data: dict[str, Any]
    confidence: float = Field(ge=0, le=100)
    confidence_by_field: dict[str, float] = Field(default_factory=dict)
    errors: list[ExtractionIssue] = Field(default_factory=list)


class ExtractionFailure(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: Literal[False] = False
    data: None = None
    confidence: float = 0.0
    errors: list[ExtractionIssue] = Field(min_length=1)


ExtractionResult = ExtractionSuccess | ExtractionFailure
