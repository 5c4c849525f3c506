"""Event translator — LangGraph ``astream_events`` (v2) → wire messages.

Only three event kinds matter to the browser: model tokens, tool starts and
tool ends. Everything else is dropped, so new event kinds added by the
runtime never break the stream.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from langchain_core.messages import BaseMessage

from agentdesk.schemas import Token, ToolEnd, ToolStart

UNKNOWN_TOOL = "unknown"

CHAT_MODEL_STREAM = "on_chat_model_stream"
TOOL_START = "on_tool_start"
TOOL_END = "on_tool_end"


def first_text_fragment(content: Any) -> str | None:
    """Return the first textual fragment of a message chunk's content.

    Plain strings are the fragment. Anthropic content is a list of blocks
    (``[{"type": "text", "text": "..."}]``); only the first block is read,
    and non-text blocks (tool_use, input_json_delta) yield nothing.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content:
        block = content[0]
        if isinstance(block, str):
            return block
        if isinstance(block, Mapping):
            text = block.get("text")
            return text if isinstance(text, str) else None
    return None


def _tool_end_payload(output: Any) -> tuple[str, Any]:
    """Split a tool completion payload into (tool name, output)."""
    if isinstance(output, BaseMessage):
        return output.name or UNKNOWN_TOOL, output.content
    if isinstance(output, Mapping):
        return output.get("name") or UNKNOWN_TOOL, output
    return UNKNOWN_TOOL, output


def translate_event(event: Mapping[str, Any]) -> Token | ToolStart | ToolEnd | None:
    """Map one agent event to at most one stream message."""
    kind = event.get("event")
    data = event.get("data") or {}

    if kind == CHAT_MODEL_STREAM:
        chunk = data.get("chunk")
        if chunk is None:
            return None
        text = first_text_fragment(getattr(chunk, "content", None))
        # Empty or non-text chunks are routine (tool-call deltas); skip them.
        return Token(token=text) if text else None

    if kind == TOOL_START:
        return ToolStart(tool=event.get("name") or UNKNOWN_TOOL, input=data.get("input"))

    if kind == TOOL_END:
        tool, output = _tool_end_payload(data.get("output"))
        return ToolEnd(tool=tool, output=output)

    return None
