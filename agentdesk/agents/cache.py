"""Graph cache — one compiled graph per agent type.

Per-request data (user context, backing-store client) travels in the run
config, so a compiled graph can be shared by every request for the same
agent type. Entries are keyed by type and invalidated when the resolved
definition changes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict
from typing import TYPE_CHECKING

from agentdesk.agents.builder import build_graph

if TYPE_CHECKING:
    from langgraph.graph.state import CompiledStateGraph

    from agentdesk.agents.registry import ResolvedAgent

logger = logging.getLogger(__name__)

# Cache: {agent_type: (definition_hash, compiled_graph)}
_cache: dict[str, tuple[str, CompiledStateGraph]] = {}


def _hash_agent(agent: ResolvedAgent) -> str:
    """Hash the resolved agent definition for change detection."""
    agent_json = json.dumps(asdict(agent), sort_keys=True)
    return hashlib.sha256(agent_json.encode()).hexdigest()[:16]


def get_or_build(agent: ResolvedAgent) -> CompiledStateGraph:
    """Return the cached graph for this agent type, or build a new one."""
    agent_hash = _hash_agent(agent)

    if agent.type in _cache:
        cached_hash, cached_graph = _cache[agent.type]
        if cached_hash == agent_hash:
            logger.debug(f"Graph cache hit: {agent.type}")
            return cached_graph

    logger.info(f"Building graph for agent '{agent.type}' (tools={agent.tools})")
    graph = build_graph(agent)
    _cache[agent.type] = (agent_hash, graph)
    return graph


def invalidate(agent_type: str | None = None) -> None:
    """Clear the cache. If agent_type given, only clear that agent."""
    if agent_type:
        _cache.pop(agent_type, None)
        logger.info(f"Graph cache invalidated: {agent_type}")
    else:
        _cache.clear()
        logger.info("Graph cache invalidated: all agents")
