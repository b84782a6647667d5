"""Chunk-boundary-safe decoder for SSE-framed completion streams.

The upstream sends events separated by a blank line, each carrying a
``data:`` payload that is either a JSON completion chunk or the literal
``[DONE]`` sentinel. Bytes arrive in arbitrary slices: a slice may end in
the middle of a UTF-8 code point, inside the ``data:`` marker, or exactly
on an event boundary, so decoding state lives on the decoder instance.
"""

from __future__ import annotations

import codecs
import json
import re
from collections.abc import AsyncIterable, AsyncIterator

import structlog

logger = structlog.get_logger()

DONE_SENTINEL = "[DONE]"
DATA_FIELD = "data:"

_EVENT_SEPARATOR = re.compile(r"\r\n\r\n|\n\n|\r\r")


def event_payload(event: str) -> str | None:
    """Return the trimmed ``data:`` payload of one event, or None if it has none."""
    trimmed = event.strip()
    if not trimmed.startswith(DATA_FIELD):
        return None
    return trimmed[len(DATA_FIELD):].strip()


def extract_delta(payload: str) -> str:
    """Pull ``choices[0].delta.content`` out of a JSON payload.

    Raises ValueError, KeyError, IndexError or TypeError when the payload
    is not JSON or does not have the expected shape.
    """
    record = json.loads(payload)
    content = record["choices"][0]["delta"].get("content")
    if content is None:
        return ""
    if not isinstance(content, str):
        raise TypeError(f"delta content is {type(content).__name__}, expected str")
    return content


class SSEDecoder:
    """Stateful decoder turning byte slices into text deltas.

    One instance per upstream response. The UTF-8 decoder keeps pending
    partial code points between ``feed`` calls and is never reset.
    """

    def __init__(self) -> None:
        self._text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._done = False
        self.skipped_events = 0

    @property
    def done(self) -> bool:
        """True once ``[DONE]`` was seen or the input was flushed."""
        return self._done

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one byte slice and return the deltas of every completed event."""
        if self._done:
            return []

        self._buffer += self._text_decoder.decode(chunk)
        *events, self._buffer = _EVENT_SEPARATOR.split(self._buffer)

        deltas: list[str] = []
        for event in events:
            payload = event_payload(event)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                self._done = True
                self._buffer = ""
                break
            delta = self._safe_delta(payload)
            if delta:
                deltas.append(delta)
        return deltas

    def flush(self) -> list[str]:
        """Best-effort extraction from whatever is left when the input ends.

        A trailing event without its blank-line terminator is still parsed;
        any failure is swallowed.
        """
        if self._done:
            return []
        self._done = True

        leftover = self._buffer + self._text_decoder.decode(b"", final=True)
        self._buffer = ""
        payload = event_payload(leftover)
        if not payload or payload == DONE_SENTINEL:
            return []
        delta = self._safe_delta(payload)
        return [delta] if delta else []

    def _safe_delta(self, payload: str) -> str:
        try:
            return extract_delta(payload)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError, RecursionError) as e:
            self.skipped_events += 1
            logger.debug(
                "sse_event_skipped",
                reason=type(e).__name__,
                payload_preview=payload[:50],
            )
            return ""


async def iter_deltas(
    chunks: AsyncIterable[bytes],
    decoder: SSEDecoder | None = None,
) -> AsyncIterator[str]:
    """Lazily decode an async byte source into text deltas, in arrival order.

    Reads the next chunk only after every delta of the previous one has been
    consumed. Errors raised by the byte source propagate unchanged.
    """
    decoder = decoder or SSEDecoder()
    async for chunk in chunks:
        for delta in decoder.feed(chunk):
            yield delta
        if decoder.done:
            return
    for delta in decoder.flush():
        yield delta
