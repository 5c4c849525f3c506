"""Tool registry — the tools agent types can be given, looked up by name.

Each tool module decorates its function with ``@register`` (outside
``@tool``). Agent types in ``agents/registry.py`` list tool names; config
validation checks them with ``list_tools`` and the graph builder turns them
into ``BaseTool`` objects with ``resolve_tools``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from langchain_core.tools import BaseTool

_registry: dict[str, BaseTool] = {}


def register(tool: BaseTool) -> BaseTool:
    """Register ``tool`` under its ``.name``.

    Names are what the model sees in tool calls and what the stream reports
    in ``tool_start``/``tool_end``, so two different tools may not share one.
    """
    existing = _registry.get(tool.name)
    if existing is not None and existing is not tool:
        raise ValueError(f"Tool name '{tool.name}' is already registered")
    _registry[tool.name] = tool
    return tool


def resolve_tools(names: list[str]) -> list[BaseTool]:
    """Return the tools for ``names`` in order, skipping repeats.

    Raises ValueError naming every unknown tool.
    """
    missing = [n for n in names if n not in _registry]
    if missing:
        raise ValueError(f"Unknown tool(s): {missing}. Available: {sorted(_registry)}")
    return [_registry[n] for n in dict.fromkeys(names)]


def list_tools() -> list[str]:
    return sorted(_registry)


# Populate the registry on first import of the package.
from agentdesk.tools import file_reader, info_extractor, search  # noqa: E402, F401
