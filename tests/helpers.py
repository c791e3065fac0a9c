"""Response builders and fakes shared by the tests."""

import json
import time

import httpx


def chat_completion(content: str) -> dict:
    """Wrap model output in an OpenAI chat-completion envelope."""
    return {
        "id": "test-id",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": "test-model",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def model_output(data: dict | None = None, confidence: float = 95, by_field: dict | None = None) -> str:
    data = {"name": "Test"} if data is None else data
    by_field = {key: confidence for key in data} if by_field is None else by_field
    return json.dumps({"data": data, "confidence": confidence, "confidenceByField": by_field})


def success_response(data: dict | None = None, confidence: float = 95, by_field: dict | None = None) -> httpx.Response:
    return httpx.Response(200, json=chat_completion(model_output(data, confidence, by_field)))


def content_response(content: str) -> httpx.Response:
    return httpx.Response(200, json=chat_completion(content))


def error_response(status: int, message: str, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status, json={"error": {"message": message}}, headers=headers)


class ScriptedTransport(httpx.MockTransport):
    """MockTransport that replays responses/exceptions in order and records requests.

    The last step repeats once the script runs out.
    """

    def __init__(self, script: list):
        self.script = list(script)
        self.requests: list[httpx.Request] = []
        super().__init__(self._handle)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.script[min(len(self.requests), len(self.script)) - 1]
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step.status_code, headers=step.headers, content=step.content)


class SleepRecorder:
    """Injected sleep that records requested delays (seconds) without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    @property
    def delays_ms(self) -> list[float]:
        return [d * 1000 for d in self.delays]

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
