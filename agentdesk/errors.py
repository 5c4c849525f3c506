"""Exception types shared across the request pipeline."""


class AgentDeskError(Exception):
    """Base class for errors raised by agentdesk itself."""


class CredentialExchangeError(AgentDeskError):
    """The identity provider did not hand out a scoped backing-store credential."""


class BackingStoreError(AgentDeskError):
    """A query against the backing store failed or returned an error status."""


class StreamClosedError(AgentDeskError):
    """Write attempted on an SSE stream whose transport is already closed."""
