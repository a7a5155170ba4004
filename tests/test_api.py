"""Tests for mabar.api — routes over ASGITransport with a fake backend."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from langchain_core.messages import AIMessage

from mabar.agent.coordinator import MatchmakingCoordinator
from mabar.agent.tools import make_tools
from mabar.api.app import create_app
from mabar.core.config.schema import Config
from mabar.memory.store import MemoryStore

_PATCH_LLM = "mabar.agent.logic.llm_provider.achat"

_ASK = AIMessage(
    content=json.dumps(
        {
            "intent": "general_inquiry",
            "needsMoreInfo": True,
            "nextQuestion": "Where would you like to play?",
        }
    )
)


def _build_app(config: Config, parse):
    application = create_app()
    # Override lifespan state manually
    db = MemoryStore(config.database.path)
    application.state.config = config
    application.state.db = db
    application.state.coordinator = MatchmakingCoordinator(
        config, db, registry=make_tools(config, parse)
    )
    return application


@pytest.fixture
def app(config, seeded_parse):
    return _build_app(config, seeded_parse)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


# --- Health / introspection ---


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["agent_ready"] is True
    assert data["parse_configured"] is True
    assert data["tools_count"] == 15


@pytest.mark.asyncio
async def test_tools(client):
    resp = await client.get("/tools")
    names = [t["name"] for t in resp.json()["tools"]]
    assert "getAvailableVenues" in names
    assert "joinSession" in names


@pytest.mark.asyncio
async def test_analyze(client):
    resp = await client.post("/analyze", json={"text": "court in kemang tomorrow evening"})
    assert resp.status_code == 200
    slots = resp.json()["slots"]
    assert slots["timeSlot"] == "tomorrow_evening"
    assert slots["searchIntent"] == "courts"


# --- Chat ---


@pytest.mark.asyncio
async def test_chat(client):
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_ASK):
        resp = await client.post("/chat", json={"message": "I want to play", "user_id": "u1"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["response"] == "Where would you like to play?"
    assert data["needs_more_info"] is True
    assert data["session_cards"] == []
    assert data["trace"] is None
    assert data["session_id"]


@pytest.mark.asyncio
async def test_chat_debug_returns_trace(client):
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_ASK):
        resp = await client.post("/chat", json={"message": "I want to play", "debug": True})

    steps = resp.json()["trace"]["steps"]
    assert steps[0]["service"] == "coordinator"
    assert any(s["service"] == "logic" for s in steps)


@pytest.mark.asyncio
async def test_chat_rejects_empty_message(client):
    resp = await client.post("/chat", json={"message": ""})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_chat_forwards_session_token(client, seeded_parse):
    seeded_parse.login("tok", "dewi")
    decision = AIMessage(
        content=json.dumps(
            {
                "intent": "join_session",
                "readyForToolbox": True,
                "toolboxAction": "joinSession",
                "toolboxParams": {"sessionId": "s-open"},
            }
        )
    )
    presented = AIMessage(content=json.dumps({"message": "You're in!", "cards": []}))
    with patch(_PATCH_LLM, new_callable=AsyncMock, side_effect=[decision, presented]):
        resp = await client.post(
            "/chat",
            json={"message": "join_session:s-open", "interaction_type": "card"},
            headers={"X-Parse-Session-Token": "tok"},
        )

    assert resp.json()["response"] == "You're in!"
    assert "dewi" in seeded_parse.objects["Session"]["s-open"]["currentPlayers"]


@pytest.mark.asyncio
async def test_concurrent_debug_chats_get_their_own_trace(client):
    async def _slow_for_alice(*args, **kwargs):
        if "alice wants a game" in json.dumps(kwargs.get("messages")):
            await asyncio.sleep(0.05)
        return _ASK

    with patch(_PATCH_LLM, new_callable=AsyncMock, side_effect=_slow_for_alice):
        alice, bob = await asyncio.gather(
            client.post(
                "/chat", json={"message": "alice wants a game", "user_id": "alice", "debug": True}
            ),
            client.post(
                "/chat", json={"message": "bob wants a game", "user_id": "bob", "debug": True}
            ),
        )

    for resp, text in ((alice, "alice wants a game"), (bob, "bob wants a game")):
        data = resp.json()
        assert data["trace"]["session_id"] == data["session_id"]
        assert data["trace"]["steps"][0]["data"]["message"] == text
    assert alice.json()["session_id"] != bob.json()["session_id"]


@pytest.mark.asyncio
async def test_token_callers_get_their_own_sessions(client, seeded_parse):
    seeded_parse.login("tok-alice", "alice")
    seeded_parse.login("tok-bob", "bob")

    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_ASK):
        alice = await client.post(
            "/chat", json={"message": "I want to play"}, headers={"X-Parse-Session-Token": "tok-alice"}
        )
        bob = await client.post(
            "/chat", json={"message": "me too"}, headers={"X-Parse-Session-Token": "tok-bob"}
        )

    assert alice.json()["session_id"] != bob.json()["session_id"]
    state = (await client.get(f"/session/{bob.json()['session_id']}/state")).json()
    assert [m["text"] for m in state["history"] if m["role"] == "user"] == ["me too"]

    # Sessions are filed under the Parse objectId
    sessions = (await client.get("/sessions/user-alice")).json()
    assert [s["session_id"] for s in sessions] == [alice.json()["session_id"]]


@pytest.mark.asyncio
async def test_anonymous_callers_never_share_a_session(client):
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_ASK):
        first = (await client.post("/chat", json={"message": "I want to play"})).json()
        second = (await client.post("/chat", json={"message": "I want to play"})).json()
        # Passing the session id back continues the same conversation
        again = (
            await client.post(
                "/chat", json={"message": "still there?", "session_id": first["session_id"]}
            )
        ).json()

    assert first["session_id"] != second["session_id"]
    assert again["session_id"] == first["session_id"]


# --- Session state ---


@pytest.mark.asyncio
async def test_session_state_history_and_reset(client):
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_ASK):
        resp = await client.post("/chat", json={"message": "I want to play", "user_id": "u1"})
    session_id = resp.json()["session_id"]

    state = (await client.get(f"/session/{session_id}/state")).json()
    assert [m["role"] for m in state["history"]] == ["user", "model"]

    history = (await client.get(f"/session/{session_id}/history")).json()
    assert [m["content"] for m in history["messages"]] == [
        "I want to play",
        "Where would you like to play?",
    ]

    resp = await client.post(f"/session/{session_id}/reset")
    assert resp.json() == {"status": "reset", "session_id": session_id}
    state = (await client.get(f"/session/{session_id}/state")).json()
    assert state["history"] == []
    assert state["accumulated"] == {}


@pytest.mark.asyncio
async def test_unknown_session_is_404(client):
    assert (await client.get("/session/nope/state")).status_code == 404
    assert (await client.get("/session/nope/history")).status_code == 404
    assert (await client.post("/session/nope/reset")).status_code == 404


@pytest.mark.asyncio
async def test_list_and_end_sessions(app, client):
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_ASK):
        resp = await client.post("/chat", json={"message": "I want to play", "user_id": "u1"})
    session_id = resp.json()["session_id"]

    sessions = (await client.get("/sessions/u1")).json()
    assert sessions[0]["session_id"] == session_id
    assert sessions[0]["message_count"] == 2
    assert sessions[0]["ended_at"] is None

    resp = await client.post(f"/session/{session_id}/end")
    assert resp.json() == {"status": "closed", "session_id": session_id}
    conversations = app.state.coordinator.conversations
    assert session_id not in conversations._states
    assert session_id not in conversations._locks
    assert (await client.post(f"/session/{session_id}/end")).status_code == 400
    assert (await client.get(f"/session/{session_id}/state")).json()["history"] == []

    # A closed session is not reused
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_ASK):
        resp = await client.post("/chat", json={"message": "hello again", "user_id": "u1"})
    assert resp.json()["session_id"] != session_id


@pytest.mark.asyncio
async def test_sessions_of_unknown_user_is_404(client):
    assert (await client.get("/sessions/nobody")).status_code == 404
    assert (await client.post("/session/nope/end")).status_code == 404


# --- Rate limiting ---


@pytest.mark.asyncio
async def test_rate_limit(tmp_path, seeded_parse):
    config = Config(
        parse={"app_id": "app", "rest_api_key": "key"},
        rate_limit={"enabled": True, "requests_per_minute": 2},
        database={"path": str(tmp_path / "rl.db")},
    )
    application = _build_app(config, seeded_parse)
    async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as c:
        codes = [(await c.post("/analyze", json={"text": "hi"})).status_code for _ in range(3)]
        # A logged-in caller has its own bucket
        with_token = await c.post(
            "/analyze", json={"text": "hi"}, headers={"X-Parse-Session-Token": "tok"}
        )
        # Health is exempt
        health = await c.get("/health")

    assert codes == [200, 200, 429]
    assert with_token.status_code == 200
    assert health.status_code == 200
