"""Tests for the headless chat session client."""

import json

import httpx
import pytest

from chapterlens.chat.session import (
    GENERIC_ERROR_NOTICE,
    Accumulator,
    ChatEntry,
    ChatSession,
)
from chapterlens.main import create_app
from chapterlens.markup.nodes import Paragraph, Strong, Text
from chapterlens.relay.models import AISettings
from conftest import SSE_DONE, ChunkedStream, sse_event


class FakeRelay:
    """Stands in for the relay endpoint: returns scripted plain-text replies."""

    def __init__(self) -> None:
        self.replies: list = []
        self.bodies: list[dict] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        reply = self.replies.pop(0)
        if isinstance(reply, httpx.Response):
            return reply
        chunks, error = reply
        return httpx.Response(200, stream=ChunkedStream(chunks, error=error))


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def session(relay):
    client = httpx.AsyncClient(transport=httpx.MockTransport(relay.handler))
    return ChatSession("http://relay.test/api/chat", http_client=client)


async def _drain(gen):
    return [update async for update in gen]


class TestAccumulator:
    def test_appends_in_order(self):
        reply = Accumulator()
        reply.append("Hel")
        reply.append("lo")
        assert reply.text == "Hello"
        assert len(reply) == 5

    def test_frozen_rejects_appends(self):
        reply = Accumulator()
        reply.append("done")
        reply.freeze()
        assert reply.frozen
        with pytest.raises(RuntimeError):
            reply.append("more")
        assert reply.text == "done"


@pytest.mark.asyncio
async def test_streams_growing_reply_with_display_tree(session, relay):
    relay.replies.append(([b"Hel", b"lo **world**"], None))

    updates = await _drain(session.ask("Hi", chapter_content="Chapter", selected_text="sel"))

    assert [u.text for u in updates] == ["Hel", "Hello **world**"]
    assert updates[-1].nodes == (
        Paragraph(children=(Text(value="Hello "), Strong(children=(Text(value="world"),)))),
    )
    assert session.history == (
        ChatEntry(role="user", content="Hi"),
        ChatEntry(role="assistant", content="Hello **world**"),
    )
    assert relay.bodies[0] == {
        "messages": [{"role": "user", "content": "Hi"}],
        "chapterContent": "Chapter",
        "selectedText": "sel",
    }


@pytest.mark.asyncio
async def test_rejection_is_appended_as_separate_error_entry(session, relay):
    relay.replies.append(httpx.Response(400, json={"error": "Missing API key"}))

    updates = await _drain(session.ask("Hi"))

    assert updates == []
    assert session.history == (
        ChatEntry(role="user", content="Hi"),
        ChatEntry(role="assistant", content="Missing API key", error=True),
    )


@pytest.mark.asyncio
async def test_interrupted_reply_keeps_received_text(session, relay):
    relay.replies.append(([b"Partial answer"], httpx.RemoteProtocolError("peer closed connection")))

    updates = await _drain(session.ask("Hi"))

    assert [u.text for u in updates] == ["Partial answer"]
    assert session.history[1:] == (
        ChatEntry(role="assistant", content="Partial answer"),
        ChatEntry(role="assistant", content=GENERIC_ERROR_NOTICE, error=True),
    )


@pytest.mark.asyncio
async def test_error_entries_are_not_sent_upstream(relay):
    client = httpx.AsyncClient(transport=httpx.MockTransport(relay.handler))
    session = ChatSession(
        "http://relay.test/api/chat",
        http_client=client,
        ai_settings=AISettings(api_key="reader-key"),
    )
    relay.replies.append(httpx.Response(502, text="bad gateway"))
    relay.replies.append(([b"ok"], None))

    await _drain(session.ask("first"))
    await _drain(session.ask("second"))

    assert session.history[1] == ChatEntry(role="assistant", content="bad gateway", error=True)
    assert relay.bodies[1]["messages"] == [
        {"role": "user", "content": "first"},
        {"role": "user", "content": "second"},
    ]
    assert relay.bodies[1]["aiSettings"] == {"apiKey": "reader-key"}


@pytest.mark.asyncio
async def test_stopping_early_keeps_received_text(session, relay):
    relay.replies.append(([b"one ", b"two"], None))

    updates = session.ask("hi")
    first = await updates.__anext__()
    await updates.aclose()

    assert first.text == "one "
    assert session.history == (
        ChatEntry(role="user", content="hi"),
        ChatEntry(role="assistant", content="one "),
    )


def test_clear_history(session):
    session._history.append(ChatEntry(role="user", content="x"))
    session.clear()
    assert session.history == ()


@pytest.mark.asyncio
async def test_end_to_end_through_relay_app(aiohttp_client, settings, upstream):
    """Session -> relay endpoint -> fake upstream, over a real local socket."""
    upstream.stream_reply([sse_event("The limit "), sse_event("is $L$."), SSE_DONE])
    server = await aiohttp_client(create_app(settings, http_client=upstream.client()))

    async with httpx.AsyncClient() as client:
        session = ChatSession(str(server.make_url("/api/chat")), http_client=client)
        updates = await _drain(session.ask("What is the limit?", chapter_content="Limits"))

    assert updates[-1].text == "The limit is $L$."
    paragraph = updates[-1].nodes[0]
    assert paragraph.children[-2].type == "inlineMath"
    assert session.history[-1] == ChatEntry(role="assistant", content="The limit is $L$.")
    assert upstream.bodies[0]["messages"][-1] == {"role": "user", "content": "What is the limit?"}
