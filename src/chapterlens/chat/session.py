"""Headless chat client for the relay endpoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Literal

import httpx
import structlog

from chapterlens.markup import DisplayTree, DocumentCompiler
from chapterlens.relay.models import AISettings

logger = structlog.get_logger()

GENERIC_ERROR_NOTICE = "Sorry, I encountered an error. Please try again."


@dataclass(frozen=True, slots=True)
class ChatEntry:
    """One message in a session's history. Error notices are never sent upstream."""

    role: Literal["user", "assistant"]
    content: str
    error: bool = False


@dataclass(frozen=True, slots=True)
class ReplyUpdate:
    """Snapshot of the reply after one more fragment arrived."""

    text: str
    nodes: DisplayTree


class Accumulator:
    """Append-only text of one assistant reply under construction."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._length = 0
        self._frozen = False

    def append(self, fragment: str) -> None:
        if self._frozen:
            raise RuntimeError("reply is already complete")
        self._parts.append(fragment)
        self._length += len(fragment)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __len__(self) -> int:
        return self._length


def _error_notice(response: httpx.Response) -> str:
    try:
        error = response.json().get("error")
    except (ValueError, AttributeError):
        error = None
    if isinstance(error, str) and error:
        return error
    return response.text or GENERIC_ERROR_NOTICE


class ChatSession:
    """Keeps a conversation about one chapter and streams replies from the relay.

    Each reply is re-compiled into a display tree as it grows. A failed or
    truncated reply keeps whatever text already arrived, and the failure
    is recorded as a separate error entry.
    """

    def __init__(
        self,
        endpoint: str,
        http_client: httpx.AsyncClient | None = None,
        compiler: DocumentCompiler | None = None,
        ai_settings: AISettings | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._client = http_client or httpx.AsyncClient(timeout=None)
        self._owns_client = http_client is None
        self._compiler = compiler or DocumentCompiler()
        self._ai_settings = ai_settings
        self._history: list[ChatEntry] = []

    @property
    def history(self) -> tuple[ChatEntry, ...]:
        return tuple(self._history)

    def clear(self) -> None:
        self._history.clear()

    def _build_body(self, chapter_content: str, selected_text: str) -> dict:
        body: dict = {
            "messages": [
                {"role": entry.role, "content": entry.content}
                for entry in self._history
                if not entry.error
            ],
            "chapterContent": chapter_content,
            "selectedText": selected_text,
        }
        if self._ai_settings is not None:
            body["aiSettings"] = self._ai_settings.model_dump(by_alias=True, exclude_none=True)
        return body

    async def ask(
        self,
        question: str,
        chapter_content: str = "",
        selected_text: str = "",
    ) -> AsyncIterator[ReplyUpdate]:
        """Send a question and yield the growing reply after every fragment."""
        self._history.append(ChatEntry(role="user", content=question))
        body = self._build_body(chapter_content, selected_text)
        reply = Accumulator()
        notice: str | None = None

        try:
            async with self._client.stream("POST", self._endpoint, json=body) as response:
                if response.status_code != 200:
                    await response.aread()
                    notice = _error_notice(response)
                    logger.warning("chat_reply_rejected", status=response.status_code, error=notice)
                else:
                    async for fragment in response.aiter_text():
                        if not fragment:
                            continue
                        reply.append(fragment)
                        yield ReplyUpdate(text=reply.text, nodes=self._compiler.render(reply.text))
        except httpx.HTTPError as e:
            notice = GENERIC_ERROR_NOTICE
            logger.warning("chat_reply_interrupted", error=str(e), received_chars=len(reply))
        finally:
            # Runs on GeneratorExit too, so a caller that stops early keeps the text.
            reply.freeze()
            if reply.text:
                self._history.append(ChatEntry(role="assistant", content=reply.text))

        if notice is not None:
            self._history.append(ChatEntry(role="assistant", content=notice, error=True))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
