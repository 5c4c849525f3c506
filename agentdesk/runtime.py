"""Runtime — bridges a chat request to LangGraph execution.

``GraphAgentRunner`` is the ``AgentRunner`` the streaming session uses in
production: it loads the caller's user context, then starts the agent
graph's ``astream_events`` iterator for the chat.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING, Any

from agentdesk.agents import cache as graph_cache
from agentdesk.context import fetch_user_context, optimize_user_context

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from agentdesk.agents.registry import ResolvedAgent
    from agentdesk.store import BackingStoreClient

logger = logging.getLogger(__name__)

RECURSION_LIMIT = 50  # agent ⇄ tools round trips per turn, times two
CONTEXT_TOKEN_BUDGET = 4000


class GraphAgentRunner:
    """Starts one run of an agent's compiled graph.

    ``store`` is the request-scoped backing-store client. It is used here to
    fetch user context and is handed to tools through the run config.
    """

    def __init__(
        self,
        agent: ResolvedAgent,
        store: BackingStoreClient | None = None,
        context_token_budget: int = CONTEXT_TOKEN_BUDGET,
    ) -> None:
        self._agent = agent
        self._store = store
        self._context_token_budget = context_token_budget

    async def __call__(
        self,
        messages: list[BaseMessage],
        chat_id: str,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
    ) -> AsyncIterator[Mapping[str, Any]]:
        graph = graph_cache.get_or_build(self._agent)

        configurable: dict[str, Any] = {"thread_id": chat_id, "store": self._store}
        if user_id:
            configurable["user_id"] = user_id
        if organization_id:
            configurable["organization_id"] = organization_id

        if user_id and organization_id and self._store is not None:
            context = await fetch_user_context(self._store, user_id, organization_id)
            if context is not None:
                configurable["user_context"] = optimize_user_context(
                    context, self._context_token_budget
                )
        else:
            logger.info("No user/organization id provided, skipping user context fetch")

        logger.info(
            f"Starting agent '{self._agent.type}' for chat {chat_id} "
            f"({len(messages)} messages, context={'user_context' in configurable})"
        )
        return graph.astream_events(
            {"messages": messages},
            config={"configurable": configurable, "recursion_limit": RECURSION_LIMIT},
            version="v2",
        )
