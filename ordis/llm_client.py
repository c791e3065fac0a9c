"""HTTP transport for OpenAI-compatible chat-completion endpoints.

Uses httpx with configurable timeouts. Each send() performs exactly one
request and returns a classified outcome; retrying is left to the caller
(see retry.py).
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import httpx

from .config import settings
from .errors import AuthError, NetworkError, ParseError, RateLimitError, RequestError

logger = logging.getLogger(__name__)


class StatusClass(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"  # 429, retryable
    SERVER_ERROR = "server_error"  # 5xx, retryable
    AUTH = "auth"  # 401/403, fatal
    CLIENT_ERROR = "client_error"  # any other non-2xx, fatal


@dataclass(frozen=True)
class StatusClassification:
    status_class: StatusClass
    retry_after: float | None = None

    @property
    def retryable(self) -> bool:
        return self.status_class in (StatusClass.RATE_LIMITED, StatusClass.SERVER_ERROR)


@dataclass(frozen=True)
class Ok:
    content: str

    def unwrap(self) -> str:
        return self.content


@dataclass(frozen=True)
class RetryableFailure:
    error: NetworkError | RateLimitError

    def unwrap(self) -> str:
        raise self.error


@dataclass(frozen=True)
class FatalFailure:
    error: AuthError | RequestError | ParseError

    def unwrap(self) -> str:
        raise self.error


Outcome = Ok | RetryableFailure | FatalFailure


def classify_response(status_code: int, headers: Mapping[str, str]) -> StatusClassification:
    """Map an HTTP status (and headers) to a retry classification."""
    if 200 <= status_code < 300:
        return StatusClassification(StatusClass.SUCCESS)
    if status_code == 429:
        return StatusClassification(
            StatusClass.RATE_LIMITED,
            retry_after=parse_retry_after(httpx.Headers(headers).get("retry-after")),
        )
    if status_code >= 500:
        return StatusClassification(StatusClass.SERVER_ERROR)
    if status_code in (401, 403):
        return StatusClassification(StatusClass.AUTH)
    return StatusClassification(StatusClass.CLIENT_ERROR)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds (integer or decimal)."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        logger.debug("Ignoring unparsable Retry-After header: %r", value)
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


class TransportClient:
    """Single-request chat-completion client with failure classification."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
        connect_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._model = model

        read_timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        conn_timeout = connect_timeout if connect_timeout is not None else settings.LLM_CONNECT_TIMEOUT

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(
                connect=float(conn_timeout),
                read=float(read_timeout),
                write=30.0,
                pool=30.0,
            ),
            transport=transport,
        )

    @property
    def model(self) -> str:
        return self._model

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def send(self, messages: list[dict[str, str]]) -> Outcome:
        """Send one chat-completion request and classify the outcome."""
        payload = {"model": self._model, "messages": messages}

        try:
            resp = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            logger.warning("LLM request timed out: %s", e)
            return RetryableFailure(NetworkError(f"Request timed out: {e}"))
        except (httpx.NetworkError, httpx.RemoteProtocolError) as e:
            logger.warning("LLM connection failed: %s", e)
            return RetryableFailure(NetworkError(f"Connection failed: {e}"))
        except httpx.HTTPError as e:
            logger.error("LLM request could not be sent: %s", e)
            return FatalFailure(RequestError(f"Request failed: {e}", status_code=None))

        classification = classify_response(resp.status_code, resp.headers)
        if classification.status_class is StatusClass.SUCCESS:
            return _parse_envelope(resp)

        message = _error_message(resp)
        status = resp.status_code

        if classification.status_class is StatusClass.RATE_LIMITED:
            logger.warning("LLM endpoint rate limited (retry_after=%s): %s", classification.retry_after, message)
            return RetryableFailure(
                RateLimitError(f"Rate limit exceeded: {message}", retry_after=classification.retry_after)
            )
        if classification.status_class is StatusClass.SERVER_ERROR:
            logger.warning("LLM endpoint returned %d: %s", status, message)
            return RetryableFailure(NetworkError(f"Server error {status}: {message}"))
        if classification.status_class is StatusClass.AUTH:
            logger.error("LLM endpoint rejected credentials (%d): %s", status, message)
            return FatalFailure(AuthError(f"Authentication failed ({status}): {message}", status_code=status))

        logger.error("LLM endpoint rejected request (%d): %s", status, message)
        return FatalFailure(RequestError(f"Request rejected ({status}): {message}", status_code=status))


def _parse_envelope(resp: httpx.Response) -> Outcome:
    """Pull choices[0].message.content out of a chat-completion body."""
    try:
        body = resp.json()
    except ValueError:
        return FatalFailure(ParseError("Failed to parse chat completion response: body is not JSON"))

    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return FatalFailure(
            ParseError("Failed to parse chat completion response: missing choices[0].message.content")
        )

    if not isinstance(content, str):
        return FatalFailure(ParseError("Failed to parse chat completion response: content is not text"))

    logger.debug("LLM response received (%d chars)", len(content))
    return Ok(content)


def _error_message(resp: httpx.Response) -> str:
    """Best-effort server error text, falling back to the status line."""
    try:
        body = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
        if isinstance(body.get("detail"), str):
            return body["detail"]

    return f"HTTP {resp.status_code} {resp.reason_phrase}".strip()
