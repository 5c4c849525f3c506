"""AgentDesk — FastAPI app serving the dashboard's chat agents.

Loads config.yaml on startup. Exposes /api/chat/{agent_type} for SSE
streaming, plus operational endpoints for health, the agent roster and
hot-reload.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing, asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from agentdesk.agents.cache import invalidate as invalidate_cache
from agentdesk.agents.registry import ResolvedAgent, merge_agent
from agentdesk.auth import Identity, TokenExchanger, get_identity, get_token_exchanger
from agentdesk.config import get_config, load_config, reload_config
from agentdesk.errors import CredentialExchangeError
from agentdesk.runtime import GraphAgentRunner
from agentdesk.schemas import AgentSummary, ChatRequestBody
from agentdesk.store import BackingStoreClient
from agentdesk.streaming.session import AgentRunner, StreamingSession
from agentdesk.streaming.sse import SSE_HEADERS, SSEWriter

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

StoreFactory = Callable[[str], BackingStoreClient]
RunnerFactory = Callable[[ResolvedAgent, BackingStoreClient], AgentRunner]

SHUTDOWN_GRACE_SECONDS = 10.0

# Running chat sessions and their writers, held until each finishes.
_sessions: dict[asyncio.Task, SSEWriter] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load config on startup; let in-flight sessions finish on shutdown."""
    config = load_config()
    logger.info(
        f"AgentDesk started (origins={config.allowed_origins}, "
        f"agents={[a.type for a in config.agents]})"
    )
    yield
    await drain_sessions()
    logger.info("AgentDesk shutting down")


def _forget_session(task: asyncio.Task) -> None:
    _sessions.pop(task, None)


async def drain_sessions(timeout: float = SHUTDOWN_GRACE_SECONDS) -> None:
    """Wait for running chat sessions, then cancel those still going."""
    if not _sessions:
        return
    logger.info(f"Waiting for {len(_sessions)} chat session(s) to finish")
    _, pending = await asyncio.wait(set(_sessions), timeout=timeout)
    if pending:
        logger.warning(f"Cancelling {len(pending)} chat session(s) still running")
        for task in pending:
            _sessions[task].abort()
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="AgentDesk", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Collaborator dependencies (overridden in tests)
# ---------------------------------------------------------------------------


def get_store_factory() -> StoreFactory:
    """Build request-scoped backing-store clients from a fresh credential."""
    settings = get_config().backing_store

    def factory(token: str) -> BackingStoreClient:
        return BackingStoreClient(settings.url, token, timeout=settings.timeout)

    return factory


def get_runner_factory() -> RunnerFactory:
    return GraphAgentRunner


# ---------------------------------------------------------------------------
# Chat endpoint
# ---------------------------------------------------------------------------


class ChatStream:
    """Response body of one chat request.

    The session starts when the server first pulls the body, so a client
    that is gone before streaming begins never starts an agent run. If the
    body is never pulled, ``release`` (run as the response's background
    task) closes the request's store client.
    """

    def __init__(
        self,
        session: StreamingSession,
        writer: SSEWriter,
        body: ChatRequestBody,
        store: BackingStoreClient,
        user_id: str | None = None,
        organization_id: str | None = None,
    ) -> None:
        self._session = session
        self._writer = writer
        self._body = body
        self._store = store
        self._user_id = user_id
        self._organization_id = organization_id
        self.task: asyncio.Task | None = None

    async def _run(self) -> None:
        try:
            await self._session.run(
                self._body, user_id=self._user_id, organization_id=self._organization_id
            )
        finally:
            await self._store.aclose()

    async def frames(self) -> AsyncIterator[str]:
        self.task = asyncio.create_task(self._run())
        _sessions[self.task] = self._writer
        self.task.add_done_callback(_forget_session)
        async with aclosing(self._writer.body()) as body:
            async for frame in body:
                yield frame

    async def release(self) -> None:
        if self.task is not None:
            return
        logger.info(f"Chat {self._body.chat_id}: client left before streaming began")
        self._writer.abort()
        await self._store.aclose()


@app.post("/api/chat/{agent_type}")
async def chat(
    agent_type: str,
    body: ChatRequestBody,
    identity: Identity = Depends(get_identity),
    exchanger: TokenExchanger = Depends(get_token_exchanger),
    store_factory: StoreFactory = Depends(get_store_factory),
    runner_factory: RunnerFactory = Depends(get_runner_factory),
):
    """Stream an agent's answer to the new message as Server-Sent Events.

    Precondition: the dashboard has already stored ``newMessage`` in the
    chat; this endpoint never writes chat messages.

    Errors before the stream opens are HTTP statuses. Once the stream is
    open, failures arrive as a final ``error`` message inside it.
    """
    try:
        config = get_config()
        agent_config = config.get_agent(agent_type)
        if agent_config is None:
            raise HTTPException(status_code=404, detail=f"Agent '{agent_type}' not found")

        logger.info(
            f"Chat request: agent={agent_type} chat={body.chat_id} user={identity.user_id} "
            f"org={body.org_id} messages={len(body.messages)} "
            f"files={len(body.user_files or ())}"
        )

        try:
            token = await exchanger.scoped_token(identity)
        except CredentialExchangeError as e:
            logger.error(f"Failed to get backing store credential: {e}")
            return JSONResponse(
                {"error": "Failed to get authentication token"}, status_code=500
            )

        agent = merge_agent(agent_config)
        writer = SSEWriter(max_queued=config.streaming.queue_size)
        store = store_factory(token)
        try:
            session = StreamingSession(
                runner_factory(agent, store),
                writer,
                overload_message=config.streaming.overload_message,
            )
        except Exception:
            await store.aclose()
            raise
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in chat API: {e}", exc_info=True)
        return JSONResponse({"error": "Failed to process chat request"}, status_code=500)

    if agent.use_user_context:
        stream = ChatStream(session, writer, body, store, identity.user_id, body.org_id)
    else:
        stream = ChatStream(session, writer, body, store)

    return StreamingResponse(
        stream.frames(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(stream.release),
    )


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    """Liveness check."""
    config = get_config()
    return {"status": "healthy", "agents": len(config.agents)}


@app.get("/agents", response_model=list[AgentSummary])
async def list_agents():
    """Agents enabled in this deployment, for the dashboard's agent picker."""
    config = get_config()
    summaries = []
    for ref in config.agents:
        agent = merge_agent(ref)
        summaries.append(AgentSummary(type=agent.type, name=agent.name, title=agent.title))
    return summaries


@app.post("/reload")
async def reload(identity: Identity = Depends(get_identity)):
    """Hot-reload config.yaml without a restart and drop compiled graphs."""
    logger.info(f"Config reload requested by {identity.user_id}")
    try:
        new_config = reload_config()
        invalidate_cache()
        return {"status": "reloaded", "agents": len(new_config.agents)}
    except Exception as e:
        logger.error(f"Reload failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")
