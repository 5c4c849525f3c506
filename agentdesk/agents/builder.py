"""Graph builder — wires an agent and its tools into a LangGraph StateGraph.

Every dashboard agent has the same shape:

    START → [agent] ⇄ [tools]
               ↓
              END

The agent node loops through the tool node for as long as the model asks
for tool calls, then ends the turn.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langgraph.graph import END, START, StateGraph
from langgraph.prebuilt import ToolNode, tools_condition

from agentdesk.agents.nodes import AgentState, make_agent_node
from agentdesk.tools import resolve_tools

if TYPE_CHECKING:
    from langgraph.graph.state import CompiledStateGraph

    from agentdesk.agents.registry import ResolvedAgent

logger = logging.getLogger(__name__)


def build_graph(agent: ResolvedAgent) -> CompiledStateGraph:
    """Build and compile the LangGraph for one agent type."""
    tools = resolve_tools(agent.tools) if agent.tools else []

    graph = StateGraph(AgentState)
    graph.add_node("agent", make_agent_node(agent, tools))
    graph.add_edge(START, "agent")

    if tools:
        graph.add_node("tools", ToolNode(tools))
        graph.add_conditional_edges("agent", tools_condition, {"tools": "tools", END: END})
        graph.add_edge("tools", "agent")
    else:
        graph.add_edge("agent", END)

    logger.debug(f"Built graph for '{agent.type}' with tools={agent.tools}")
    return graph.compile()
