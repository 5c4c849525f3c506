"""Tests for SSE framing and the queue-backed writer."""

import asyncio

import pytest

from agentdesk.errors import StreamClosedError
from agentdesk.schemas import Connected, Done, Error, Token, ToolStart
from agentdesk.streaming.sse import SSEWriter, encode_sse


class TestEncodeSSE:
    def test_connected(self):
        assert encode_sse(Connected()) == 'data: {"type":"connected"}\n\n'

    def test_token(self):
        assert encode_sse(Token(token="Hello")) == 'data: {"type":"token","token":"Hello"}\n\n'

    def test_tool_start(self):
        frame = encode_sse(ToolStart(tool="file_reader", input={"storageId": "x"}))
        assert frame == 'data: {"type":"tool_start","tool":"file_reader","input":{"storageId":"x"}}\n\n'

    def test_error(self):
        assert encode_sse(Error(error="boom")) == 'data: {"type":"error","error":"boom"}\n\n'

    def test_non_json_payload_falls_back_to_str(self):
        class Opaque:
            def __str__(self):
                return "opaque"

        frame = encode_sse(ToolStart(tool="t", input={"obj": Opaque()}))
        assert '"obj":"opaque"' in frame


class TestSSEWriter:
    @pytest.mark.asyncio
    async def test_frames_in_write_order(self):
        writer = SSEWriter()
        await writer.write(Connected())
        await writer.write(Token(token="a"))
        await writer.write(Done())
        await writer.close()

        frames = [f async for f in writer.body()]

        assert frames == [encode_sse(Connected()), encode_sse(Token(token="a")), encode_sse(Done())]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        writer = SSEWriter()
        await writer.write(Done())
        await writer.close()
        await writer.close()

        frames = [f async for f in writer.body()]

        assert frames == [encode_sse(Done())]
        assert writer.closed

    @pytest.mark.asyncio
    async def test_write_after_close_raises(self):
        writer = SSEWriter()
        await writer.close()
        with pytest.raises(StreamClosedError):
            await writer.write(Token(token="late"))

    @pytest.mark.asyncio
    async def test_full_queue_suspends_writer(self):
        writer = SSEWriter(max_queued=1)
        await writer.write(Token(token="1"))

        pending = asyncio.create_task(writer.write(Token(token="2")))
        await asyncio.sleep(0)
        assert not pending.done()

        body = writer.body()
        assert await body.__anext__() == encode_sse(Token(token="1"))
        await pending
        assert await body.__anext__() == encode_sse(Token(token="2"))
        await body.aclose()

    @pytest.mark.asyncio
    async def test_abort_releases_blocked_writer(self):
        writer = SSEWriter(max_queued=1)
        await writer.write(Token(token="1"))
        pending = asyncio.create_task(writer.write(Token(token="2")))
        await asyncio.sleep(0)

        writer.abort()

        with pytest.raises(StreamClosedError):
            await pending
        with pytest.raises(StreamClosedError):
            await writer.write(Token(token="3"))

    @pytest.mark.asyncio
    async def test_consumer_leaving_early_aborts(self):
        writer = SSEWriter()
        await writer.write(Connected())
        body = writer.body()
        await body.__anext__()
        await body.aclose()

        assert writer.closed
        with pytest.raises(StreamClosedError):
            await writer.write(Token(token="x"))
        # closing after a disconnect is still harmless
        await writer.close()
