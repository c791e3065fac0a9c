"""Extraction orchestrator: build prompt -> call LLM with retries -> validate.

Two tiers:
- client_extract() raises on any failure (network exhausted, fatal HTTP
  status, unparsable output).
- extract() never raises; failures come back as an ExtractionFailure so
  batch callers can keep going.
"""

import asyncio
import logging
import random
import time
from collections.abc import Sequence

import httpx

from .errors import ErrorKind, ExtractionError
from .llm_client import TransportClient
from .models import (
    ExtractionFailure,
    ExtractionIssue,
    ExtractionRequest,
    ExtractionResult,
    ExtractionSuccess,
    LLMConfig,
    ValidatedResponse,
)
from .prompts import build_messages
from .retry import JitterFn, RetryController, SleepFn
from .schema import Schema
from .validation import parse_response

logger = logging.getLogger(__name__)


class LLMClient:
    """Schema-driven extraction client for one endpoint/model."""

    def __init__(
        self,
        config: LLMConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
        jitter: JitterFn = random.uniform,
    ):
        self._config = config
        self._transport = TransportClient(
            config.base_url,
            config.model,
            config.api_key,
            transport=transport,
        )
        self._retry = RetryController(config.retries, sleep=sleep, jitter=jitter)

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def extract(self, schema: Schema, input_text: str) -> ValidatedResponse:
        """Run one extraction. Raises ExtractionError subclasses on failure."""
        messages = build_messages(schema, input_text)
        logger.info(
            "Extracting %d field(s) with model=%s (input=%d chars)",
            len(schema), self._config.model, len(input_text),
        )

        content = await self._retry.execute(lambda: self._transport.send(messages))
        return parse_response(content, schema)


async def client_extract(
    request: ExtractionRequest,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn = asyncio.sleep,
    jitter: JitterFn = random.uniform,
) -> dict:
    """Extract and return the validated data, raising on any failure."""
    async with LLMClient(request.llm_config, transport=transport, sleep=sleep, jitter=jitter) as client:
        response = await client.extract(request.schema, request.input)
    return response.data


async def extract(
    request: ExtractionRequest,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn = asyncio.sleep,
    jitter: JitterFn = random.uniform,
) -> ExtractionResult:
    """Extract into an ExtractionResult. Never raises."""
    start = time.monotonic()

    try:
        async with LLMClient(request.llm_config, transport=transport, sleep=sleep, jitter=jitter) as client:
            response = await client.extract(request.schema, request.input)
    except ExtractionError as e:
        logger.error("Extraction failed [%s]: %s", e.kind.value, e.message)
        return ExtractionFailure(errors=[ExtractionIssue(message=e.message, code=e.kind)])
    except Exception as e:
        logger.exception("Unexpected extraction failure")
        return ExtractionFailure(errors=[
            ExtractionIssue(message=str(e) or type(e).__name__, code=ErrorKind.UNKNOWN),
        ])

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Extraction completed in %dms (confidence=%.0f, %d field issue(s))",
        elapsed_ms, response.confidence, len(response.issues),
    )

    return ExtractionSuccess(
        data=response.data,
        confidence=response.confidence,
        confidence_by_field=response.confidence_by_field,
        errors=response.issues,
    )


async def extract_many(
    requests: Sequence[ExtractionRequest],
    *,
    concurrency: int = 4,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn = asyncio.sleep,
    jitter: JitterFn = random.uniform,
) -> list[ExtractionResult]:
    """Run many extractions concurrently; results keep the input order."""
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    semaphore = asyncio.Semaphore(concurrency)

    async def _run(request: ExtractionRequest) -> ExtractionResult:
        async with semaphore:
            return await extract(request, transport=transport, sleep=sleep, jitter=jitter)

    results = await asyncio.gather(*(_run(r) for r in requests))
    failed = sum(1 for r in results if not r.success)
    logger.info("Batch finished: %d request(s), %d failed", len(results), failed)
    return list(results)
