"""Pytest fixtures for chapterlens tests."""

import json
import os
from unittest.mock import patch

import httpx
import pytest

from chapterlens.config import Settings
from chapterlens.relay.models import RelayDefaults


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {
        "OPENAI_API_KEY": "test-key",
        "OPENAI_BASE_URL": "https://llm.test/v1",
        "OPENAI_MODEL": "test-model",
        "HOST": "127.0.0.1",
        "PORT": "8080",
        "LOG_LEVEL": "DEBUG",
    }
    with patch.dict(os.environ, env_vars, clear=False):
        yield env_vars


@pytest.fixture
def settings(mock_env_vars) -> Settings:
    """Create Settings instance with mocked environment."""
    return Settings()


@pytest.fixture
def relay_defaults() -> RelayDefaults:
    return RelayDefaults(
        api_key="default-key",
        base_url="https://llm.test/v1",
        model="default-model",
    )


def sse_event(content) -> bytes:
    """Encode one completion delta as an SSE event."""
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


SSE_DONE = b"data: [DONE]\n\n"


class ChunkedStream(httpx.AsyncByteStream):
    """Upstream body that yields fixed chunks and records how it was consumed."""

    def __init__(self, chunks, error: Exception | None = None) -> None:
        self._chunks = list(chunks)
        self._error = error
        self.reads = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            self.reads += 1
            yield chunk
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        self.closed = True


def sse_response(chunks, error: Exception | None = None) -> tuple[httpx.Response, ChunkedStream]:
    stream = ChunkedStream(chunks, error=error)
    response = httpx.Response(
        200,
        headers={"Content-Type": "text/event-stream"},
        stream=stream,
    )
    return response, stream


@pytest.fixture
def upstream():
    """Programmable fake upstream: set ``.reply`` and inspect ``.requests``."""

    class FakeUpstream:
        def __init__(self) -> None:
            self.requests: list[httpx.Request] = []
            self.reply = None
            self.stream: ChunkedStream | None = None

        def stream_reply(self, chunks, error: Exception | None = None) -> None:
            self.reply, self.stream = sse_response(chunks, error=error)

        async def handler(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if isinstance(self.reply, Exception):
                raise self.reply
            return self.reply

        @property
        def bodies(self) -> list[dict]:
            return [json.loads(request.content) for request in self.requests]

        def client(self) -> httpx.AsyncClient:
            return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    return FakeUpstream()
