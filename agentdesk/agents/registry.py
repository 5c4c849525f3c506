"""Agent type registry — hardcoded roster of dashboard agents.

The only place where persona names, models and tool assignments are
defined. Agent entries in config.yaml reference these types by slug and
supply the instance-level system prompt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentdesk.config import AgentConfig

DEFAULT_MODEL = "claude-sonnet-4-20250514"

_STANDARD_TOOLS = ["file_reader", "info_extractor", "web_search"]


@dataclass
class AgentTypeDefinition:
    name: str       # persona shown in the dashboard
    title: str
    model: str = DEFAULT_MODEL
    tools: list[str] = field(default_factory=lambda: list(_STANDARD_TOOLS))


AGENT_TYPE_REGISTRY: dict[str, AgentTypeDefinition] = {
    "code": AgentTypeDefinition(name="Felini", title="Email Manager"),
    "data": AgentTypeDefinition(name="Lika", title="SMM"),
    "math": AgentTypeDefinition(name="Tato", title="Advertiser"),
    "research": AgentTypeDefinition(name="Ars", title="HR & Educator"),
    "stream": AgentTypeDefinition(name="Musho", title="IT Operations"),
    "writing": AgentTypeDefinition(
        name="Kuku",
        title="Lawyer",
        tools=["file_reader", "web_search"],
    ),
    "sales": AgentTypeDefinition(name="Sergo", title="Sales Assistant"),
    "accountant": AgentTypeDefinition(
        name="Kamo",
        title="Accountant",
        tools=["file_reader"],
    ),
    "investor": AgentTypeDefinition(name="Rubo", title="Investor"),
    "business": AgentTypeDefinition(name="Hracho", title="Business Developer"),
    "productivity": AgentTypeDefinition(name="Zara", title="Productivity Assistant"),
}


@dataclass
class ResolvedAgent:
    type: str
    name: str
    title: str
    model: str
    tools: list[str]
    prompt: str             # the instance-level system prompt from config
    use_user_context: bool  # forward caller/org identity for context lookup
    history_window: int


def resolve_agent_type(type_name: str) -> AgentTypeDefinition:
    """Look up an agent type by slug. Raises ValueError if not found."""
    if type_name not in AGENT_TYPE_REGISTRY:
        raise ValueError(
            f"Unknown agent type '{type_name}'. "
            f"Available types: {list(AGENT_TYPE_REGISTRY.keys())}"
        )
    return AGENT_TYPE_REGISTRY[type_name]


def merge_agent(ref: AgentConfig) -> ResolvedAgent:
    """Merge a config agent entry with its type definition."""
    typedef = resolve_agent_type(ref.type)
    return ResolvedAgent(
        type=ref.type,
        name=typedef.name,
        title=typedef.title,
        model=ref.model or typedef.model,
        tools=list(typedef.tools),
        prompt=ref.prompt,
        use_user_context=ref.use_user_context,
        history_window=ref.history_window,
    )
