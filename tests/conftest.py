"""Shared test fixtures for the extraction pipeline tests."""

import pytest

from helpers import SleepRecorder
from ordis.models import ExtractionRequest, LLMConfig
from ordis.retry import RetryConfig
from ordis.schema import Schema, validate_schema

BASE_URL = "http://localhost:11434/v1"


@pytest.fixture
def name_schema() -> Schema:
    return validate_schema({"fields": {"name": {"type": "string"}}})


@pytest.fixture
def invoice_schema() -> Schema:
    return validate_schema({
        "name": "invoice",
        "description": "Supplier invoice",
        "fields": {
            "invoice_number": {"type": "string", "description": "Invoice identifier"},
            "total": {"type": "number", "min": 0},
            "paid": {"type": "boolean", "required": False},
            "issued": {"type": "date"},
            "currency": {"type": "enum", "enum": ["EUR", "USD"]},
            "lines": {"type": "array", "items": {"type": "string"}, "required": False},
            "supplier": {"type": "object", "required": False},
        },
    })


@pytest.fixture
def fast_retries() -> RetryConfig:
    return RetryConfig(max_retries=3, initial_delay=10, max_delay=100, backoff_factor=2)


@pytest.fixture
def make_request(name_schema: Schema, fast_retries: RetryConfig):
    """Factory for ExtractionRequests against a local endpoint."""

    def _make(
        input_text: str = "Name: Test",
        schema: Schema | None = None,
        retries: RetryConfig | None = None,
        api_key: str | None = None,
    ) -> ExtractionRequest:
        return ExtractionRequest(
            input=input_text,
            schema=schema or name_schema,
            llm_config=LLMConfig(
                base_url=BASE_URL,
                model="llama3",
                api_key=api_key,
                retries=retries or fast_retries,
            ),
        )

    return _make


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
