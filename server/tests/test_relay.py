"""
Tests for SSE framing and the completion relay.
"""

import asyncio
import json

import httpx
import pytest

from novachat.agent import CompletionRelay
from novachat.agent.fallback import fallback_respond
from novachat.agent.intents import Chat, Recall, Remember, classify, format_memories
from novachat.agent.service import sliced
from novachat.config import Settings
from novachat.db import Turn
from novachat.errors import UpstreamError
from novachat.stream import SSEParser

HELLO_FRAMES = (
    b'data: {"choices":[{"delta":{"content":"He"}}]}\n\n'
    b'data: {"choices":[{"delta":{"content":"llo"}}]}\n\n'
    b"data: [DONE]\n\n"
)


def _relay(handler) -> CompletionRelay:
    settings = Settings(openai_api_key="k", openai_base_url="https://upstream.test/v1")
    return CompletionRelay(settings, transport=httpx.MockTransport(handler))


def _streaming(*chunks: bytes) -> httpx.Response:
    async def body():
        for chunk in chunks:
            yield chunk

    return httpx.Response(200, content=body())


async def _collect(stream) -> list[str]:
    return [fragment async for fragment in stream.fragments()]


# --- SSE framing ---


def test_parser_waits_for_blank_line():
    """A frame should only be emitted once its blank line arrives."""
    parser = SSEParser()

    assert parser.feed(b"data: one") == []
    frames = parser.feed(b"\n\ndata: two\n\n")

    assert [f.data for f in frames] == ["one", "two"]


def test_parser_handles_split_multibyte_characters():
    """A character split across chunks should decode intact."""
    encoded = 'data: {"choices":[{"delta":{"content":"héllo ✓"}}]}\n\n'.encode()
    split = encoded.index("✓".encode()) + 1
    parser = SSEParser()

    assert parser.feed(encoded[:split]) == []
    frames = parser.feed(encoded[split:])

    assert json.loads(frames[0].data)["choices"][0]["delta"]["content"] == "héllo ✓"


def test_parser_normalises_crlf_and_ignores_other_lines():
    """CRLF framing should work and non-data lines should be skipped."""
    parser = SSEParser()

    frames = parser.feed(b": keepalive\r\n\r\nevent: message\r\ndata: x\r\n\r\n")

    assert [f.data for f in frames] == ["x"]


def test_parser_flushes_unterminated_frame():
    """close() should emit a trailing frame with no blank line."""
    parser = SSEParser()
    parser.feed(b"data: [DONE]")

    frames = parser.close()

    assert len(frames) == 1
    assert frames[0].done


# --- Streaming relay ---


@pytest.mark.asyncio
async def test_stream_emits_fragments_in_order():
    """Deltas should be emitted in arrival order and joined as .text."""
    relay = _relay(lambda request: _streaming(HELLO_FRAMES))

    stream = await relay.open_stream([Turn(role="user", content="hi")], "m")
    fragments = await _collect(stream)

    assert fragments == ["He", "llo"]
    assert stream.text == "Hello"


@pytest.mark.asyncio
async def test_stream_frames_split_across_chunks():
    """Frames split across network chunks should still parse."""
    relay = _relay(lambda request: _streaming(*(HELLO_FRAMES[i:i + 7] for i in range(0, len(HELLO_FRAMES), 7))))

    stream = await relay.open_stream([Turn(role="user", content="hi")], "m")

    assert await _collect(stream) == ["He", "llo"]


@pytest.mark.asyncio
async def test_stream_stops_at_done():
    """Frames after [DONE] should never be emitted."""
    relay = _relay(
        lambda request: _streaming(
            HELLO_FRAMES,
            b'data: {"choices":[{"delta":{"content":"!!"}}]}\n\n',
        )
    )

    stream = await relay.open_stream([Turn(role="user", content="hi")], "m")

    assert await _collect(stream) == ["He", "llo"]


class HangingBody(httpx.AsyncByteStream):
    """Sends the given chunks, then keeps the connection open without sending more."""

    def __init__(self, *chunks: bytes):
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_stream_ends_at_done_while_connection_stays_open():
    """[DONE] should end the fragments and close the response even if the upstream keeps the connection open."""
    body = HangingBody(HELLO_FRAMES)
    relay = _relay(lambda request: httpx.Response(200, stream=body))

    stream = await relay.open_stream([Turn(role="user", content="hi")], "m")

    assert await asyncio.wait_for(_collect(stream), timeout=5) == ["He", "llo"]
    assert body.closed


@pytest.mark.asyncio
async def test_cancelled_stream_closes_response():
    """Cancelling the consumer mid-stream should still release the upstream response."""
    body = HangingBody(b'data: {"choices":[{"delta":{"content":"par"}}]}\n\n')
    relay = _relay(lambda request: httpx.Response(200, stream=body))
    stream = await relay.open_stream([Turn(role="user", content="hi")], "m")
    received = []

    async def consume():
        async for fragment in stream.fragments():
            received.append(fragment)

    task = asyncio.create_task(consume())
    while not received:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert received == ["par"]
    assert stream.text == "par"
    assert body.closed

@pytest.mark.asyncio
async def test_stream_drops_unparseable_frames(caplog):
    """Bad JSON and empty deltas should be skipped with a warning."""
    relay = _relay(
        lambda request: _streaming(
            b'data: {"choices":[{"delta":{"content":"a"}}]}\n\n',
            b"data: {broken\n\n",
            b'data: {"choices":[{"delta":{}}]}\n\n',
            b'data: {"choices":[{"delta":{"content":"b"}}]}\n\n',
        )
    )

    stream = await relay.open_stream([Turn(role="user", content="hi")], "m")

    assert await _collect(stream) == ["a", "b"]
    assert "unparseable" in caplog.text


@pytest.mark.asyncio
async def test_stream_transport_error_keeps_partial_text():
    """A dropped connection should end the stream and keep the partial text."""
    async def body():
        yield b'data: {"choices":[{"delta":{"content":"par"}}]}\n\n'
        raise httpx.RemoteProtocolError("peer closed")

    relay = _relay(lambda request: httpx.Response(200, content=body()))

    stream = await relay.open_stream([Turn(role="user", content="hi")], "m")

    assert await _collect(stream) == ["par"]
    assert stream.failed
    assert stream.text == "par"


@pytest.mark.asyncio
async def test_open_stream_non_success_raises():
    """A non-success status should raise with the upstream status and body."""
    relay = _relay(lambda request: httpx.Response(429, text="slow down"))

    with pytest.raises(UpstreamError) as exc_info:
        await relay.open_stream([Turn(role="user", content="hi")], "m")

    assert exc_info.value.status == 429
    assert exc_info.value.body == "slow down"


@pytest.mark.asyncio
async def test_open_stream_connect_error_raises():
    """A connection failure should raise before anything is emitted."""
    def handler(request):
        raise httpx.ConnectError("refused")

    with pytest.raises(UpstreamError):
        await _relay(handler).open_stream([Turn(role="user", content="hi")], "m")


# --- Full relay ---


@pytest.mark.asyncio
async def test_complete_posts_conversation():
    """complete() should post the turns with fixed sampling settings and trim the reply."""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": " ok "}}]})

    turns = [Turn(role="system", content="be nice"), Turn(role="user", content="hi")]
    reply = await _relay(handler).complete(turns, "gpt-x")

    assert reply == "ok"
    assert captured["url"] == "https://upstream.test/v1/chat/completions"
    assert captured["body"] == {
        "model": "gpt-x",
        "messages": [
            {"role": "system", "content": "be nice"},
            {"role": "user", "content": "hi"},
        ],
        "temperature": 0.7,
        "max_tokens": 600,
    }


@pytest.mark.asyncio
async def test_complete_non_success_raises():
    """A non-success status should raise with the upstream status and body."""
    relay = _relay(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(UpstreamError) as exc_info:
        await relay.complete([Turn(role="user", content="hi")], "m")

    assert exc_info.value.status == 500
    assert exc_info.value.body == "boom"


# --- Fallback and intents ---


@pytest.mark.asyncio
async def test_sliced_rebuilds_text():
    """Slices should be 40 characters and join back to the text."""
    text = fallback_respond("x" * 95)

    parts = [p async for p in sliced(text)]

    assert "".join(parts) == text
    assert [len(p) for p in parts[:-1]] == [40] * (len(parts) - 1)


def test_fallback_replies():
    """The canned responder should cover empty, help, question and echo."""
    assert fallback_respond("") == "Hi — I'm Novachat. Say something and I'll reply."
    assert fallback_respond("HELP").startswith("You can ask me")
    assert fallback_respond("Why?") == "That's a great question — here's a friendly thought: Why?"
    assert fallback_respond("ok") == "Novachat echo: ok"


def test_classify_intents():
    """Only a leading remember or a recall phrase should be a memory command."""
    assert classify("  REMEMBER  my Keys ") == Remember("my Keys")
    assert classify("Tell me what do you recall") == Recall()
    assert classify("remember what I said") == Remember("what I said")
    assert classify("I remember nothing") == Chat("I remember nothing")


def test_format_memories():
    """Memories should be numbered in order."""
    assert format_memories(["a", "b"]) == "I remember: (1) a\n(2) b"
