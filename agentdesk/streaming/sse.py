"""SSE writer — frames stream messages and hands them to the response body.

The writer and the HTTP response are joined by a bounded queue: the chat
session awaits ``write()`` for each message, and the ``StreamingResponse``
drains ``body()``. A full queue suspends the writer until the transport
catches up.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from agentdesk.errors import StreamClosedError
from agentdesk.schemas import StreamMessage

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "
SSE_LINE_DELIMITER = "\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_EOF = object()


def encode_sse(message: StreamMessage) -> str:
    """Serialize one message as an SSE ``data:`` frame."""
    data = json.dumps(message.model_dump(), separators=(",", ":"), default=str)
    return f"{SSE_DATA_PREFIX}{data}{SSE_LINE_DELIMITER}"


class SSEWriter:
    """Single-producer, single-consumer SSE channel for one response."""

    def __init__(self, max_queued: int = 1024) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queued)
        self._closed = False
        self._aborted = False

    @property
    def closed(self) -> bool:
        return self._closed or self._aborted

    async def write(self, message: StreamMessage) -> None:
        """Queue one message. Raises StreamClosedError once the stream is gone."""
        if self.closed:
            raise StreamClosedError("SSE stream is closed")
        await self._queue.put(encode_sse(message))
        if self._aborted:
            raise StreamClosedError("Client disconnected")

    async def close(self) -> None:
        """Signal end of stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if not self._aborted:
            await self._queue.put(_EOF)

    def abort(self) -> None:
        """Mark the transport as gone and release any blocked writer."""
        if self._aborted:
            return
        self._aborted = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def body(self) -> AsyncIterator[str]:
        """Response body iterator; ends when the writer is closed."""
        try:
            while True:
                frame = await self._queue.get()
                if frame is _EOF:
                    return
                yield frame
        finally:
            if not self._closed:
                logger.info("SSE consumer stopped before the stream was closed")
            self.abort()
