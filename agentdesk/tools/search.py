"""Tavily web search tool.

Requires: TAVILY_API_KEY environment variable.
"""

from __future__ import annotations

import logging
import os

from langchain_core.tools import tool
from tavily import AsyncTavilyClient

from agentdesk.tools import register

logger = logging.getLogger(__name__)

_MAX_RESULTS = 5
_SNIPPET_CHARS = 300


@register
@tool
async def web_search(query: str, pastDays: int = 0) -> str:  # noqa: N803
    """Search the web for recent information.

    Args:
        query: The search query to look up.
        pastDays: Only return results from the last N days (0 = no limit).

    Returns:
        A formatted string with the top search results (title, URL, snippet).
    """
    api_key = os.environ.get("TAVILY_API_KEY", "")
    if not api_key:
        return "Error: TAVILY_API_KEY environment variable is not set."

    kwargs = {"max_results": _MAX_RESULTS, "search_depth": "basic"}
    if pastDays > 0:
        kwargs["days"] = pastDays
        kwargs["topic"] = "news"

    try:
        client = AsyncTavilyClient(api_key=api_key)
        response = await client.search(query=query, **kwargs)
    except Exception as e:
        logger.warning("web_search failed for %r: %s", query, e)
        return f"Search failed: {e}"

    results = response.get("results", [])
    if not results:
        return f"No results found for: {query}"

    lines = [f"Search results for: {query}\n"]
    for i, r in enumerate(results, 1):
        title = r.get("title", "Untitled")
        url = r.get("url", "")
        content = r.get("content", "").strip()
        snippet = content[:_SNIPPET_CHARS] + "..." if len(content) > _SNIPPET_CHARS else content
        lines.append(f"{i}. {title}\n   URL: {url}\n   {snippet}\n")

    return "\n".join(lines)
