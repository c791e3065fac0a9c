"""End-to-end tests for the extraction pipeline with a mocked HTTP transport."""

import json
import time

import httpx
import pytest

from helpers import ScriptedTransport, SleepRecorder, content_response, error_response, success_response
from ordis.errors import AuthError, ErrorKind, ExhaustedRetriesError, ParseError, RequestError
from ordis.models import ExtractionFailure, ExtractionSuccess
from ordis.pipeline import LLMClient, client_extract, extract, extract_many
from ordis.retry import RetryConfig


def network_failure() -> httpx.ConnectError:
    return httpx.ConnectError("Network failure")


class TestClientExtract:
    """Low-level tier: returns data or raises."""

    @pytest.mark.asyncio
    async def test_retries_network_errors_then_succeeds(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([network_failure(), network_failure(), success_response()])
        request = make_request(retries=RetryConfig(max_retries=3, initial_delay=10, max_delay=100, backoff_factor=2))

        data = await client_extract(request, transport=transport, sleep=sleep_recorder)

        assert data["name"] == "Test"
        assert transport.calls == 3
        assert len(sleep_recorder.delays) == 2

    @pytest.mark.asyncio
    async def test_fails_after_max_retries(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([network_failure()])
        request = make_request(retries=RetryConfig(max_retries=2, initial_delay=10, max_delay=100, backoff_factor=2))

        with pytest.raises(ExhaustedRetriesError, match="Network error") as exc_info:
            await client_extract(request, transport=transport, sleep=sleep_recorder)

        assert transport.calls == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.kind is ErrorKind.EXHAUSTED_RETRIES

    @pytest.mark.asyncio
    async def test_retries_on_429(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([error_response(429, "Rate limit exceeded"), success_response()])
        request = make_request(retries=RetryConfig(max_retries=2, initial_delay=10, max_delay=100))

        data = await client_extract(request, transport=transport, sleep=sleep_recorder)

        assert data["name"] == "Test"
        assert transport.calls == 2

    @pytest.mark.asyncio
    async def test_respects_retry_after_zero(self, make_request):
        """Real sleep: Retry-After 0 overrides the 100ms backoff."""
        transport = ScriptedTransport([
            error_response(429, "Rate limit exceeded", {"Retry-After": "0"}),
            success_response(),
        ])
        request = make_request(retries=RetryConfig(max_retries=2, initial_delay=100, max_delay=10000, backoff_factor=2))

        start = time.monotonic()
        data = await client_extract(request, transport=transport)
        elapsed = time.monotonic() - start

        assert data["name"] == "Test"
        assert transport.calls == 2
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([error_response(401, "Invalid API key")])
        request = make_request(api_key="invalid")

        with pytest.raises(AuthError, match="Invalid API key"):
            await client_extract(request, transport=transport, sleep=sleep_recorder)

        assert transport.calls == 1
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_bad_request_not_retried(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([error_response(400, "context length exceeded")])

        with pytest.raises(RequestError, match="context length exceeded"):
            await client_extract(make_request(), transport=transport, sleep=sleep_recorder)
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_invalid_model_output_not_retried(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([content_response("This is not valid JSON")])

        with pytest.raises(ParseError, match="Failed to parse"):
            await client_extract(make_request(), transport=transport, sleep=sleep_recorder)

        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_default_retry_config_retries(self, name_schema, sleep_recorder: SleepRecorder):
        from ordis.models import ExtractionRequest, LLMConfig

        transport = ScriptedTransport([network_failure(), network_failure(), success_response()])
        request = ExtractionRequest(
            input="Name: Test",
            schema=name_schema,
            llm_config=LLMConfig(base_url="http://localhost:11434/v1", model="llama3"),
        )

        data = await client_extract(request, transport=transport, sleep=sleep_recorder)

        assert data["name"] == "Test"
        assert transport.calls == 3
        assert 1000 <= sleep_recorder.delays_ms[0] <= 1250 + 1e-6


class TestExtract:
    """High-level tier: never raises."""

    @pytest.mark.asyncio
    async def test_success_result(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([success_response({"name": "Test"}, 92)])

        result = await extract(make_request(), transport=transport, sleep=sleep_recorder)

        assert isinstance(result, ExtractionSuccess)
        assert result.success is True
        assert result.data == {"name": "Test"}
        assert result.confidence == 92
        assert result.confidence_by_field == {"name": 92}
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_prompt_sent_to_endpoint(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([success_response()])

        await extract(make_request("Name: Test"), transport=transport, sleep=sleep_recorder)

        body = json.loads(transport.requests[0].content)
        assert body["model"] == "llama3"
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert body["messages"][1]["content"] == "Name: Test"
        assert "- name (string, required)" in body["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_field_issues_do_not_fail_result(self, make_request, invoice_schema, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([success_response({"invoice_number": "INV-7", "total": "ten"}, 60)])

        result = await extract(make_request(schema=invoice_schema), transport=transport, sleep=sleep_recorder)

        assert result.success is True
        assert result.data["invoice_number"] == "INV-7"
        for name in invoice_schema.required_fields():
            assert name in result.data
        codes = {(e.field, e.code) for e in result.errors}
        assert ("total", ErrorKind.TYPE_MISMATCH) in codes
        assert ("issued", ErrorKind.MISSING_FIELD) in codes
        assert ("currency", ErrorKind.MISSING_FIELD) in codes

    @pytest.mark.asyncio
    async def test_huge_integer_confidence_still_succeeds(self, make_request, sleep_recorder: SleepRecorder):
        content = '{"data": {"name": "Test"}, "confidence": 1' + "0" * 400 + "}"
        transport = ScriptedTransport([content_response(content)])

        result = await extract(make_request(), transport=transport, sleep=sleep_recorder)

        assert result.success is True
        assert result.confidence == 100
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_exhausted_retries_become_failure(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([network_failure()])
        request = make_request(retries=RetryConfig(max_retries=2, initial_delay=10, max_delay=100))

        result = await extract(request, transport=transport, sleep=sleep_recorder)

        assert isinstance(result, ExtractionFailure)
        assert result.success is False
        assert result.data is None
        assert result.confidence == 0
        assert len(result.errors) == 1
        assert result.errors[0].code is ErrorKind.EXHAUSTED_RETRIES
        assert result.errors[0].field is None
        assert "Network error after 3 attempts" in result.errors[0].message
        assert transport.calls == 3

    @pytest.mark.asyncio
    async def test_auth_failure_becomes_failure(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([error_response(401, "Invalid API key")])

        result = await extract(make_request(api_key="invalid"), transport=transport, sleep=sleep_recorder)

        assert result.success is False
        assert result.errors[0].code is ErrorKind.AUTH_ERROR
        assert "Invalid API key" in result.errors[0].message
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_parse_failure_becomes_failure(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([content_response("Sorry, I cannot help with that.")])

        result = await extract(make_request(), transport=transport, sleep=sleep_recorder)

        assert result.success is False
        assert result.errors[0].code is ErrorKind.PARSE_ERROR
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failure(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([RuntimeError("boom")])

        result = await extract(make_request(), transport=transport, sleep=sleep_recorder)

        assert result.success is False
        assert result.errors[0].code is ErrorKind.UNKNOWN
        assert result.errors[0].message == "boom"

    @pytest.mark.asyncio
    async def test_result_serializes_with_camel_case(self, make_request, sleep_recorder: SleepRecorder):
        transport = ScriptedTransport([success_response({"name": "Test"}, 80)])

        result = await extract(make_request(), transport=transport, sleep=sleep_recorder)
        dumped = json.loads(result.model_dump_json(by_alias=True))

        assert dumped == {
            "success": True,
            "data": {"name": "Test"},
            "confidence": 80.0,
            "confidenceByField": {"name": 80.0},
            "errors": [],
        }


class TestExtractMany:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(self, make_request, sleep_recorder: SleepRecorder):
        def handler(request: httpx.Request) -> httpx.Response:
            user_text = json.loads(request.content)["messages"][1]["content"]
            if user_text == "bad":
                return error_response(401, "Invalid API key")
            return success_response({"name": user_text})

        requests = [make_request("alice"), make_request("bad"), make_request("carol")]
        results = await extract_many(
            requests,
            concurrency=2,
            transport=httpx.MockTransport(handler),
            sleep=sleep_recorder,
        )

        assert [r.success for r in results] == [True, False, True]
        assert results[0].data == {"name": "alice"}
        assert results[2].data == {"name": "carol"}
        assert results[1].errors[0].code is ErrorKind.AUTH_ERROR

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self, make_request):
        with pytest.raises(ValueError):
            await extract_many([make_request()], concurrency=0)

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        assert await extract_many([]) == []


class TestLLMClient:
    @pytest.mark.asyncio
    async def test_extract_returns_validated_response(self, make_request, sleep_recorder: SleepRecorder):
        request = make_request()
        transport = ScriptedTransport([success_response({"name": "Test"}, 77)])

        async with LLMClient(request.llm_config, transport=transport, sleep=sleep_recorder) as client:
            response = await client.extract(request.schema, request.input)

        assert response.data == {"name": "Test"}
        assert response.confidence == 77


class TestExtractionRequest:
    def test_request_is_immutable(self, make_request):
        import dataclasses

        request = make_request()
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.input = "changed"
        assert request.schema.required_fields() == ["name"]
