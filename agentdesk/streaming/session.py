"""Streaming session — one chat request from ``Connected`` to ``Done``/``Error``.

The session is agent-agnostic: the caller injects an ``AgentRunner`` that
starts the agent graph and returns its event iterator. Every exit path
ends with exactly one terminal message (when the client is still there)
and exactly one ``close()`` of the writer.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Mapping
from typing import Any, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from agentdesk.config import OVERLOAD_MESSAGE
from agentdesk.errors import StreamClosedError
from agentdesk.schemas import ChatRequestBody, Connected, Done, Error
from agentdesk.streaming.sse import SSEWriter
from agentdesk.streaming.translator import translate_event

logger = logging.getLogger(__name__)

OVERLOAD_SIGNAL = "overloaded"


class AgentRunner(Protocol):
    """Starts an agent graph run and returns its event iterator.

    May raise before returning if the run cannot be started.
    """

    def __call__(
        self,
        messages: list[BaseMessage],
        chat_id: str,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
    ) -> Awaitable[AsyncIterator[Mapping[str, Any]]]: ...


def to_langchain_messages(body: ChatRequestBody) -> list[BaseMessage]:
    """Prior turns plus the new user message, as LangChain messages."""
    history: list[BaseMessage] = [
        HumanMessage(content=m.content) if m.role == "user" else AIMessage(content=m.content)
        for m in body.messages
    ]
    history.append(HumanMessage(content=body.new_message))
    return history


def error_text(exc: BaseException, overload_message: str = OVERLOAD_MESSAGE) -> str:
    """Client-facing text for a relay failure.

    Provider overload errors get a friendly message; anything else is
    reported verbatim.
    """
    text = str(exc)
    if OVERLOAD_SIGNAL in text.lower():
        return overload_message
    return text or type(exc).__name__


class StreamingSession:
    """Relays one agent run to one SSE writer."""

    def __init__(
        self,
        runner: AgentRunner,
        writer: SSEWriter,
        *,
        overload_message: str = OVERLOAD_MESSAGE,
        persist_user_message: bool = False,
    ) -> None:
        # The dashboard stores the user's message before calling the API;
        # storing it here as well would duplicate it in the chat history.
        if persist_user_message:
            raise ValueError(
                "StreamingSession never persists chat messages; the caller "
                "must store the user message before starting the session"
            )
        self._runner = runner
        self._writer = writer
        self._overload_message = overload_message

    async def run(
        self,
        body: ChatRequestBody,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
    ) -> None:
        """Drive the session to completion. Never raises on stream errors."""
        try:
            await self._writer.write(Connected())
            events = await self._runner(
                to_langchain_messages(body),
                body.chat_id,
                user_id=user_id,
                organization_id=organization_id,
            )
            await self._relay(events)
            await self._writer.write(Done())
            logger.info(f"Chat {body.chat_id}: stream completed")
        except StreamClosedError:
            logger.info(f"Chat {body.chat_id}: client disconnected, stopping relay")
        except Exception as e:
            logger.error(f"Chat {body.chat_id}: error in event stream: {e}", exc_info=True)
            await self._send_error(error_text(e, self._overload_message))
        finally:
            await self._close()

    async def _relay(self, events: AsyncIterator[Mapping[str, Any]]) -> None:
        try:
            async for event in events:
                message = translate_event(event)
                if message is not None:
                    await self._writer.write(message)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    logger.warning(f"Error closing agent event stream: {e}")

    async def _send_error(self, text: str) -> None:
        try:
            await self._writer.write(Error(error=text))
        except Exception as e:
            logger.warning(f"Could not deliver error message to client: {e}")

    async def _close(self) -> None:
        try:
            await self._writer.close()
        except Exception as e:
            logger.error(f"Error closing writer: {e}")
