"""Configuration loader — reads config.yaml, validates with Pydantic.

Agent personas (model/tools) are hardcoded in agents/registry.py; the
config enables agent types and supplies their system prompts, plus the
identity provider, backing store and streaming settings. Secrets never
live in the file; they are read from environment variables.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

OVERLOAD_MESSAGE = (
    "The service is currently experiencing high demand. Please try again "
    "with a shorter message or wait a moment before trying again."
)


class AgentConfig(BaseModel):
    """One enabled agent — references a registry type and sets its prompt."""

    type: str
    prompt: str
    model: str | None = None        # overrides the registry model
    use_user_context: bool = True
    history_window: int = 10        # messages kept after trimming

    @field_validator("history_window")
    @classmethod
    def window_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_window must be at least 1")
        return v


class IdentityConfig(BaseModel):
    """Identity provider settings.

    Session tokens are verified against ``jwks_url`` (RS256). When the
    ``IDENTITY_JWT_SECRET`` environment variable is set, HS256 with that
    secret is used instead.
    """

    jwks_url: str | None = None
    issuer: str | None = None
    audience: str | None = None
    authorized_parties: list[str] = []
    algorithms: list[str] = ["RS256"]
    api_url: str = "https://api.clerk.com/v1"
    token_template: str = "convex"
    timeout: float = 10.0


class BackingStoreConfig(BaseModel):
    url: str
    timeout: float = 15.0


class StreamingConfig(BaseModel):
    queue_size: int = 1024          # messages buffered between session and transport
    overload_message: str = OVERLOAD_MESSAGE


class AppConfig(BaseModel):
    """Top-level application configuration."""

    agents: list[AgentConfig]
    backing_store: BackingStoreConfig
    identity: IdentityConfig = IdentityConfig()
    streaming: StreamingConfig = StreamingConfig()
    allowed_origins: list[str] = ["*"]

    @model_validator(mode="after")
    def validate_agents(self) -> AppConfig:
        from agentdesk.agents.registry import AGENT_TYPE_REGISTRY
        from agentdesk.tools import list_tools

        seen: set[str] = set()
        for agent in self.agents:
            if agent.type not in AGENT_TYPE_REGISTRY:
                raise ValueError(
                    f"Unknown agent type '{agent.type}'. "
                    f"Available: {sorted(AGENT_TYPE_REGISTRY.keys())}"
                )
            if agent.type in seen:
                raise ValueError(f"Agent type '{agent.type}' is configured twice")
            seen.add(agent.type)

            missing = [
                t for t in AGENT_TYPE_REGISTRY[agent.type].tools if t not in list_tools()
            ]
            if missing:
                raise ValueError(
                    f"Agent type '{agent.type}' uses unregistered tool(s): {missing}"
                )

        return self

    def get_agent(self, agent_type: str) -> AgentConfig | None:
        """Return an enabled agent by type slug, or None if not configured."""
        for agent in self.agents:
            if agent.type == agent_type:
                return agent
        return None


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: AppConfig | None = None
_config_path: str = DEFAULT_CONFIG_PATH


def load_config(path: str | None = None) -> AppConfig:
    """Read the config file from disk, validate, and cache.

    ``path`` defaults to ``$AGENTDESK_CONFIG``, then ``config.yaml``.
    """
    global _config, _config_path
    path = path or os.environ.get("AGENTDESK_CONFIG", DEFAULT_CONFIG_PATH)
    _config_path = path

    config_file = Path(path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file.resolve()}")

    raw = yaml.safe_load(config_file.read_text())
    _config = AppConfig(**raw)

    logger.info(f"Loaded config: agents={[a.type for a in _config.agents]}")
    return _config


def get_config() -> AppConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded — call load_config() first")
    return _config


def reload_config() -> AppConfig:
    """Re-read config from disk. Called by the /reload endpoint."""
    logger.info(f"Reloading config from {_config_path}")
    return load_config(_config_path)
