"""Relay from a reader's chat request to an OpenAI-compatible streaming API."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from chapterlens.relay.errors import InputError, UpstreamRejected, UpstreamUnavailable
from chapterlens.relay.models import (
    AISettings,
    ChatRequest,
    CompletionRequest,
    Message,
    RelayDefaults,
)
from chapterlens.relay.prompts import build_system_prompt
from chapterlens.relay.sse import SSEDecoder, iter_deltas

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-5"
COMPLETIONS_PATH = "/chat/completions"


def _first_non_empty(*values: str | None) -> str:
    for value in values:
        if value and value.strip():
            return value.strip()
    return ""


class UpstreamStream:
    """Text fragments of one upstream response, pulled one read at a time.

    Acts as the channel between the upstream body and the caller: the caller
    pulls with ``async for``; leaving the ``async with`` block (normally, on
    error, or on cancellation) closes the upstream response and releases the
    in-flight read.
    """

    def __init__(self, response: httpx.Response, model: str = "") -> None:
        self._response = response
        self._model = model
        self._decoder = SSEDecoder()
        self._deltas = iter_deltas(response.aiter_bytes(), self._decoder)
        self._closed = False
        self.fragment_count = 0
        self.char_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> UpstreamStream:
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        try:
            delta = await self._deltas.__anext__()
        except StopAsyncIteration:
            logger.info(
                "relay_stream_complete",
                model=self._model,
                fragment_count=self.fragment_count,
                char_count=self.char_count,
                skipped_events=self._decoder.skipped_events,
            )
            await self.aclose()
            raise
        except httpx.TransportError as e:
            logger.error(
                "relay_stream_transport_error",
                model=self._model,
                fragment_count=self.fragment_count,
                error=str(e),
            )
            await self.aclose()
            raise UpstreamUnavailable(f"Upstream stream failed: {e}") from e

        self.fragment_count += 1
        self.char_count += len(delta)
        return delta

    async def aclose(self) -> None:
        """Stop reading and close the upstream response. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self._deltas.aclose()
        await self._response.aclose()

    async def __aenter__(self) -> UpstreamStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if not self._closed:
            logger.debug("relay_stream_released", model=self._model, fragment_count=self.fragment_count)
        await self.aclose()


class ChatRelay:
    """Builds outbound completion requests and opens upstream streams.

    Holds no per-call state; concurrent calls share only the HTTP client's
    connection pool.
    """

    def __init__(
        self,
        defaults: RelayDefaults,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._defaults = defaults
        # No timeout: an unresponsive upstream is left to the host's policy.
        self._client = http_client or httpx.AsyncClient(timeout=None)
        self._owns_client = http_client is None

    def build_request(self, payload: Any) -> CompletionRequest:
        """Validate a decoded JSON body and resolve it into an outbound request.

        Raises:
            InputError: if the body cannot be interpreted or no API key resolves.
        """
        if not isinstance(payload, dict):
            payload = {}
        try:
            chat_request = ChatRequest.model_validate(payload)
        except ValidationError as e:
            raise InputError("Invalid request body") from e

        overrides = chat_request.ai_settings or AISettings()
        api_key = _first_non_empty(overrides.api_key, self._defaults.api_key)
        if not api_key:
            logger.warning("relay_missing_api_key")
            raise InputError("Missing API key")

        base_url = _first_non_empty(overrides.base_url, self._defaults.base_url, DEFAULT_BASE_URL)
        base_url = base_url.removesuffix("/")
        model = _first_non_empty(overrides.model, self._defaults.model, DEFAULT_MODEL)

        system = Message(
            role="system",
            content=build_system_prompt(
                chapter=chat_request.chapter_content,
                selection=chat_request.selected_text,
            ),
        )

        logger.info(
            "relay_request_built",
            model=model,
            base_url=base_url,
            history_count=len(chat_request.messages),
            chapter_chars=len(chat_request.chapter_content),
            selection_chars=len(chat_request.selected_text),
            caller_key=bool(overrides.api_key and overrides.api_key.strip()),
        )

        return CompletionRequest(
            url=f"{base_url}{COMPLETIONS_PATH}",
            api_key=api_key,
            model=model,
            messages=(system, *chat_request.messages),
            temperature=self._defaults.temperature,
        )

    async def open(self, completion: CompletionRequest) -> UpstreamStream:
        """Send the request and return the body as a stream of text fragments.

        Raises:
            UpstreamRejected: upstream answered with a non-2xx status.
            UpstreamUnavailable: upstream unreachable or returned no body.
        """
        request = self._client.build_request(
            "POST",
            completion.url,
            json=completion.to_body(),
            headers=completion.headers,
        )

        try:
            response = await self._client.send(request, stream=True)
        except httpx.TransportError as e:
            logger.error("relay_upstream_unreachable", url=completion.url, error=str(e))
            raise UpstreamUnavailable("Upstream chat provider is unreachable") from e

        if not response.is_success:
            try:
                await response.aread()
                body = response.text
            except httpx.TransportError:
                body = ""
            finally:
                await response.aclose()
            logger.warning(
                "relay_upstream_rejected",
                status=response.status_code,
                body_preview=body[:200],
            )
            raise UpstreamRejected(response.status_code, body)

        if response.status_code == 204 or response.headers.get("content-length") == "0":
            await response.aclose()
            logger.error("relay_upstream_no_body", status=response.status_code)
            raise UpstreamUnavailable("Upstream provider did not return a body stream")

        logger.info("relay_stream_open", model=completion.model, status=response.status_code)
        return UpstreamStream(response, model=completion.model)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
