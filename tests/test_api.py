"""HTTP-level tests for the chat endpoint and the operational endpoints."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from agentdesk import main
from agentdesk.auth import get_token_exchanger
from agentdesk.errors import CredentialExchangeError
from agentdesk.main import ChatStream, app, get_runner_factory, get_store_factory
from agentdesk.streaming.session import StreamingSession
from agentdesk.streaming.sse import SSE_HEADERS, SSEWriter

from tests.conftest import make_session_token
from tests.factories import (
    FakeStore,
    ScriptedRunner,
    make_body,
    parse_sse_body,
    token_event,
    tool_end_event,
    tool_start_event,
)

CHAT_BODY = {
    "messages": [{"role": "user", "content": "Hello"}, {"role": "assistant", "content": "Hi!"}],
    "newMessage": "Summarise our goals",
    "chatId": "chat_1",
    "orgId": "org_1",
}


class FakeExchanger:
    def __init__(self, error=None):
        self.error = error
        self.identities = []

    async def scoped_token(self, identity):
        self.identities.append(identity)
        if self.error:
            raise self.error
        return "scoped-token"


@pytest.fixture
def harness():
    """Client with the identity exchange, backing store and agent runner faked."""
    state = {
        "exchanger": FakeExchanger(),
        "runner": ScriptedRunner([token_event("Hello"), token_event(" there")]),
        "stores": [],
        "agents": [],
    }

    def store_factory(token):
        store = FakeStore()
        store.token = token
        state["stores"].append(store)
        return store

    def runner_factory(agent, store):
        state["agents"].append(agent)
        return state["runner"]

    app.dependency_overrides[get_token_exchanger] = lambda: state["exchanger"]
    app.dependency_overrides[get_store_factory] = lambda: store_factory
    app.dependency_overrides[get_runner_factory] = lambda: runner_factory
    with TestClient(app) as client:
        state["client"] = client
        yield state
    app.dependency_overrides.clear()


def auth(token=None):
    return {"Authorization": f"Bearer {token or make_session_token()}"}


class TestChatAuth:
    def test_missing_token_is_401(self, harness):
        resp = harness["client"].post("/api/chat/code", json=CHAT_BODY)

        assert resp.status_code == 401
        assert resp.json() == {"detail": "Unauthorized"}
        assert harness["runner"].calls == []

    def test_invalid_token_is_401(self, harness):
        resp = harness["client"].post(
            "/api/chat/code", json=CHAT_BODY, headers=auth("not-a-jwt")
        )
        assert resp.status_code == 401

    def test_expired_token_is_401(self, harness):
        token = make_session_token(expires_in=-60)
        resp = harness["client"].post("/api/chat/code", json=CHAT_BODY, headers=auth(token))
        assert resp.status_code == 401

    def test_wrong_signature_is_401(self, harness):
        token = make_session_token(secret="someone-elses-session-secret-0123456789")
        resp = harness["client"].post("/api/chat/code", json=CHAT_BODY, headers=auth(token))
        assert resp.status_code == 401
        assert harness["exchanger"].identities == []


class TestChatErrors:
    def test_unknown_agent_is_404(self, harness):
        resp = harness["client"].post("/api/chat/nonexistent", json=CHAT_BODY, headers=auth())
        assert resp.status_code == 404

    def test_registered_but_disabled_agent_is_404(self, harness):
        resp = harness["client"].post("/api/chat/research", json=CHAT_BODY, headers=auth())
        assert resp.status_code == 404

    def test_invalid_body_is_422(self, harness):
        body = {k: v for k, v in CHAT_BODY.items() if k != "chatId"}
        resp = harness["client"].post("/api/chat/code", json=body, headers=auth())
        assert resp.status_code == 422

    def test_bad_role_is_422(self, harness):
        body = {**CHAT_BODY, "messages": [{"role": "system", "content": "x"}]}
        resp = harness["client"].post("/api/chat/code", json=body, headers=auth())
        assert resp.status_code == 422

    def test_credential_failure_is_500(self, harness):
        harness["exchanger"].error = CredentialExchangeError("provider down")

        resp = harness["client"].post("/api/chat/code", json=CHAT_BODY, headers=auth())

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to get authentication token"}
        assert harness["stores"] == []
        assert harness["runner"].calls == []


class TestChatStream:
    def test_streams_sse(self, harness):
        resp = harness["client"].post("/api/chat/code", json=CHAT_BODY, headers=auth())

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        for name, value in SSE_HEADERS.items():
            assert resp.headers[name] == value
        assert parse_sse_body(resp.text) == [
            {"type": "connected"},
            {"type": "token", "token": "Hello"},
            {"type": "token", "token": " there"},
            {"type": "done"},
        ]

    def test_tool_events_and_error_terminal(self, harness):
        harness["runner"] = ScriptedRunner(
            [
                tool_start_event("web_search", {"query": "competitors"}),
                tool_end_event("web_search", "[]"),
            ],
            error=RuntimeError("Overloaded"),
        )

        resp = harness["client"].post("/api/chat/code", json=CHAT_BODY, headers=auth())

        assert resp.status_code == 200
        messages = parse_sse_body(resp.text)
        assert [m["type"] for m in messages] == ["connected", "tool_start", "tool_end", "error"]
        assert messages[-1]["error"].startswith("The service is currently experiencing high demand")

    def test_runner_receives_identity_and_history(self, harness):
        harness["client"].post("/api/chat/code", json=CHAT_BODY, headers=auth())

        call = harness["runner"].calls[0]
        assert call["chat_id"] == "chat_1"
        assert call["user_id"] == "user_123"
        assert call["organization_id"] == "org_1"
        assert [m.content for m in call["messages"]] == ["Hello", "Hi!", "Summarise our goals"]
        assert harness["exchanger"].identities[0].session_id == "sess_456"

    def test_agent_without_user_context(self, harness):
        harness["client"].post("/api/chat/productivity", json=CHAT_BODY, headers=auth())

        call = harness["runner"].calls[0]
        assert call["user_id"] is None
        assert call["organization_id"] is None
        assert harness["agents"][0].name == "Zara"

    def test_store_built_with_scoped_token_and_closed(self, harness):
        harness["client"].post("/api/chat/code", json=CHAT_BODY, headers=auth())

        store = harness["stores"][0]
        assert store.token == "scoped-token"
        assert store.closed


class TestOperational:
    def test_health(self, harness):
        resp = harness["client"].get("/health")
        assert resp.json() == {"status": "healthy", "agents": 3}

    def test_agents(self, harness):
        resp = harness["client"].get("/agents")

        assert resp.status_code == 200
        assert resp.json() == [
            {"type": "code", "name": "Felini", "title": "Email Manager"},
            {"type": "business", "name": "Hracho", "title": "Business Developer"},
            {"type": "productivity", "name": "Zara", "title": "Productivity Assistant"},
        ]

    def test_reload_requires_auth(self, harness):
        assert harness["client"].post("/reload").status_code == 401

    def test_reload(self, harness):
        resp = harness["client"].post("/reload", headers=auth())
        assert resp.json() == {"status": "reloaded", "agents": 3}


class TestChatSetupFailure:
    def test_runner_setup_failure_releases_store(self, harness):
        def broken_runner_factory(agent, store):
            raise RuntimeError("graph could not be built")

        app.dependency_overrides[get_runner_factory] = lambda: broken_runner_factory

        resp = harness["client"].post("/api/chat/code", json=CHAT_BODY, headers=auth())

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to process chat request"}
        assert harness["stores"][0].closed


class HangingRunner:
    async def __call__(self, messages, chat_id, *, user_id=None, organization_id=None):
        await asyncio.Event().wait()


def make_stream(runner, max_queued=2):
    writer = SSEWriter(max_queued=max_queued)
    store = FakeStore()
    stream = ChatStream(StreamingSession(runner, writer), writer, make_body(), store)
    return stream, writer, store


class TestChatStreamLifecycle:
    @pytest.mark.asyncio
    async def test_body_never_pulled(self):
        runner = ScriptedRunner([token_event(str(i)) for i in range(10)])
        stream, writer, store = make_stream(runner)

        stream.frames()
        await stream.release()

        assert stream.task is None
        assert runner.calls == []
        assert store.closed
        assert writer.closed
        assert not main._sessions

    @pytest.mark.asyncio
    async def test_client_leaves_mid_stream(self):
        runner = ScriptedRunner([token_event(str(i)) for i in range(100)])
        stream, writer, store = make_stream(runner)

        frames = stream.frames()
        assert await frames.__anext__() == 'data: {"type":"connected"}\n\n'
        await frames.aclose()
        await asyncio.wait_for(stream.task, timeout=1)
        await stream.release()

        assert runner.closed
        assert store.closed
        assert writer.closed

    @pytest.mark.asyncio
    async def test_full_stream(self):
        stream, _, store = make_stream(ScriptedRunner([token_event("Hi")]))

        frames = [frame async for frame in stream.frames()]
        await stream.task
        await stream.release()

        assert parse_sse_body("".join(frames)) == [
            {"type": "connected"},
            {"type": "token", "token": "Hi"},
            {"type": "done"},
        ]
        assert store.closed

    @pytest.mark.asyncio
    async def test_shutdown_cancels_overrunning_sessions(self):
        stream, writer, store = make_stream(HangingRunner())
        frames = stream.frames()
        await frames.__anext__()

        await main.drain_sessions(timeout=0.05)
        await asyncio.sleep(0)

        assert stream.task.cancelled()
        assert store.closed
        assert writer.closed
        assert not main._sessions
        await frames.aclose()
