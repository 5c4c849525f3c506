"""LangGraph node functions — the async function the agent node executes.

The agent node calls an Anthropic model with the agent's system prompt,
the caller's user context (when the run config carries one) and a trimmed
window of the conversation. Tool execution is left to LangGraph's ToolNode.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage, trim_messages
from langchain_core.runnables import RunnableConfig
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from agentdesk.context import render_user_context

if TYPE_CHECKING:
    from collections.abc import Callable

    from langchain_core.tools import BaseTool

    from agentdesk.agents.registry import ResolvedAgent

logger = logging.getLogger(__name__)

EPHEMERAL_CACHE = {"type": "ephemeral"}


class AgentState(TypedDict):
    """Graph state. ``add_messages`` appends node output to the history."""

    messages: Annotated[list[BaseMessage], add_messages]


# ---------------------------------------------------------------------------
# LLM factory
# ---------------------------------------------------------------------------


def _get_llm(model: str, tools: list | None = None) -> ChatAnthropic:
    """Create a streaming Anthropic LLM instance, optionally with tool bindings."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY environment variable is not set")
    llm = ChatAnthropic(
        model=model,
        max_tokens=8000,
        temperature=0.7,
        streaming=True,
        api_key=api_key,
    )
    if tools:
        llm = llm.bind_tools(tools)
    return llm


# ---------------------------------------------------------------------------
# Prompt helpers
# ---------------------------------------------------------------------------


def _with_cache_control(message: BaseMessage) -> BaseMessage:
    """Copy of ``message`` whose last content block is a prompt-cache breakpoint."""
    content = message.content
    if isinstance(content, str):
        if not content:
            return message
        blocks: list[Any] = [{"type": "text", "text": content, "cache_control": EPHEMERAL_CACHE}]
    elif isinstance(content, list) and content and isinstance(content[-1], dict):
        blocks = [*content[:-1], {**content[-1], "cache_control": EPHEMERAL_CACHE}]
    else:
        return message
    return message.model_copy(update={"content": blocks})


def add_cache_control(messages: list[BaseMessage]) -> list[BaseMessage]:
    """Mark the last message and the second-to-last human turn as cache breakpoints.

    The input list and its messages are left untouched.
    """
    if not messages:
        return messages

    cached = list(messages)
    cached[-1] = _with_cache_control(cached[-1])

    human_count = 0
    for i in range(len(messages) - 1, -1, -1):
        if isinstance(messages[i], HumanMessage):
            human_count += 1
            if human_count == 2:
                cached[i] = _with_cache_control(messages[i])
                break

    return cached


def build_system_prompt(agent: ResolvedAgent, config: RunnableConfig | None) -> str:
    """Agent prompt plus the caller's USER CONTEXT section, if any."""
    configurable = (config or {}).get("configurable", {})
    user_context = configurable.get("user_context")
    if user_context is None:
        return agent.prompt
    return f"{agent.prompt}\n\n{render_user_context(user_context)}"


def trim_history(messages: list[BaseMessage], window: int) -> list[BaseMessage]:
    """Keep the last ``window`` messages, starting on a human turn.

    A long tool loop can push the current human turn out of the window; the
    turn is then kept whole.
    """
    trimmed = trim_messages(
        messages,
        max_tokens=window,
        strategy="last",
        token_counter=len,
        include_system=True,
        allow_partial=False,
        start_on="human",
    )
    if trimmed:
        return trimmed
    for i in range(len(messages) - 1, -1, -1):
        if isinstance(messages[i], HumanMessage):
            return messages[i:]
    return messages


# ---------------------------------------------------------------------------
# Node factory
# ---------------------------------------------------------------------------


def make_agent_node(agent: ResolvedAgent, tools: list[BaseTool]) -> Callable:
    """Create the graph node that calls the LLM with the agent's system prompt.

    Errors propagate: the streaming session turns them into the terminal
    ``error`` message, including the friendly text for provider overloads.
    """

    async def agent_node(state: AgentState, config: RunnableConfig) -> dict:
        logger.info(f"Agent '{agent.type}' ({agent.name}) processing")
        llm = _get_llm(agent.model, tools=tools or None)

        system = SystemMessage(
            content=[
                {
                    "type": "text",
                    "text": build_system_prompt(agent, config),
                    "cache_control": EPHEMERAL_CACHE,
                }
            ]
        )
        history = add_cache_control(trim_history(list(state["messages"]), agent.history_window))

        response = await llm.ainvoke([system, *history], config)
        if getattr(response, "tool_calls", None):
            logger.info(
                f"Agent '{agent.type}' requested tools: "
                f"{[tc['name'] for tc in response.tool_calls]}"
            )
        else:
            logger.debug(f"Agent '{agent.type}' answered without tool calls")
        return {"messages": [response]}

    agent_node.__name__ = f"{agent.type}_agent"
    return agent_node
