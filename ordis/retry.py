"""Retry with exponential backoff, jitter and Retry-After support.

Built on tenacity's AsyncRetrying. A fresh retrying object (and with it a
fresh RetryCallState) is created for every execute() call, so concurrent
extractions never share retry state.

Delay for retry index k (zero-based):

    base  = min(max_delay, initial_delay * backoff_factor ** k)
    delay = min(max_delay, base + uniform(0, 0.25 * base))

A 429 carrying Retry-After replaces the computed delay, still capped at
max_delay. Delays are configured in milliseconds; the injected sleep
receives seconds, like asyncio.sleep.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
)

from .errors import RETRYABLE_ERRORS, ExhaustedRetriesError, RateLimitError
from .llm_client import Outcome

logger = logging.getLogger(__name__)

JITTER_RATIO = 0.25

SleepFn = Callable[[float], Awaitable[None]]
JitterFn = Callable[[float, float], float]


class RetryConfig(BaseModel):
    """Retry policy. Delays are in milliseconds."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1000.0, gt=0)
    max_delay: float = Field(default=30000.0, gt=0)
    backoff_factor: float = Field(default=2.0, ge=1)

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryConfig":
        if self.initial_delay > self.max_delay:
            raise ValueError(
                f"initial_delay ({self.initial_delay}) must not exceed max_delay ({self.max_delay})"
            )
        return self


def compute_delay(
    config: RetryConfig,
    attempt: int,
    retry_after: float | None = None,
    jitter: JitterFn = random.uniform,
) -> float:
    """Delay in milliseconds before retry index ``attempt`` (zero-based)."""
    if retry_after is not None:
        return min(config.max_delay, retry_after * 1000.0)

    try:
        raw = config.initial_delay * config.backoff_factor**attempt
    except OverflowError:
        raw = config.max_delay
    base = min(config.max_delay, raw)
    return min(config.max_delay, base + jitter(0.0, JITTER_RATIO * base))


class RetryController:
    """Runs a request function until success, a fatal failure, or budget exhaustion."""

    def __init__(
        self,
        config: RetryConfig,
        *,
        sleep: SleepFn = asyncio.sleep,
        jitter: JitterFn = random.uniform,
    ):
        self._config = config
        self._sleep = sleep
        self._jitter = jitter

    @property
    def config(self) -> RetryConfig:
        return self._config

    async def execute(self, request_fn: Callable[[], Awaitable[Outcome]]) -> str:
        """Return the content of the first successful outcome.

        Raises the fatal error of a FatalFailure after a single attempt, or
        ExhaustedRetriesError once max_retries + 1 retryable failures in a row
        have been seen.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            stop=stop_after_attempt(self._config.max_retries + 1),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=False,
        )

        try:
            return await retrying(_attempt, request_fn)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            attempts = e.last_attempt.attempt_number
            logger.error("LLM request failed after %d attempts: %s", attempts, last_error)
            raise ExhaustedRetriesError(attempts, last_error) from last_error

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = error.retry_after if isinstance(error, RateLimitError) else None
        delay_ms = compute_delay(
            self._config,
            retry_state.attempt_number - 1,
            retry_after=retry_after,
            jitter=self._jitter,
        )
        return delay_ms / 1000.0

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "LLM request failed (%s), retrying in %.2fs (attempt %d/%d)",
            retry_state.outcome.exception() if retry_state.outcome else None,
            retry_state.next_action.sleep,  # type: ignore[union-attr]
            retry_state.attempt_number,
            self._config.max_retries + 1,
        )


async def _attempt(request_fn: Callable[[], Awaitable[Outcome]]) -> str:
    outcome = await request_fn()
    return outcome.unwrap()
