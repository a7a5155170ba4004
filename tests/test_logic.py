"""Tests for mabar.agent.logic — info gathering with a mocked LLM."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from langchain_core.messages import AIMessage

from mabar.agent.logic import LogicAgent
from mabar.agent.state import ConversationState
from mabar.agent.tools import make_tools
from mabar.memory.models import ToolboxResult

_PATCH_LLM = "mabar.agent.logic.llm_provider.achat"


def _llm(payload) -> AIMessage:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return AIMessage(content=content, response_metadata={"finish_reason": "stop"})


@pytest.fixture
def logic(config, seeded_parse):
    return LogicAgent(config, make_tools(config, seeded_parse))


@pytest.fixture
def state():
    return ConversationState(session_id="s1")


# ── gather_required_info ────────────────────────────────────


@pytest.mark.asyncio
async def test_ready_decision_merges_info(logic, state):
    decision = {
        "intent": "find_venue",
        "confidence": 0.85,
        "extractedInfo": {"location": "Kemang", "time": "evening"},
        "needsMoreInfo": False,
        "readyForToolbox": True,
        "toolboxAction": "findVenues",
        "toolboxParams": {"location": "Kemang"},
    }
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_llm(decision)) as mock_llm:
        result = await logic.gather_required_info(state, "courts in kemang this evening")

    assert result.ready_for_toolbox is True
    assert result.needs_more_info is False
    # Alias resolved to the canonical action
    assert result.toolbox_action == "getAvailableVenues"
    assert result.toolbox_params["location"] == "Kemang"
    assert state.accumulated["time"] == "evening"
    assert state.last_user_message() == "courts in kemang this evening"
    kwargs = mock_llm.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_asks_when_nothing_known(logic, state):
    decision = {
        "intent": "general_inquiry",
        "needsMoreInfo": True,
        "nextQuestion": "When would you like to play?",
        "readyForToolbox": False,
    }
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_llm(decision)):
        result = await logic.gather_required_info(state, "I want to play")

    assert result.needs_more_info is True
    assert result.ready_for_toolbox is False
    assert result.toolbox_action is None
    assert result.next_question == "When would you like to play?"


@pytest.mark.asyncio
async def test_sales_bias_proceeds_with_minimum_info(logic, state):
    """Any known slot is enough to show options instead of asking."""
    state.merge_info({"timeSlot": "tomorrow_evening"})
    decision = {
        "intent": "find_players",
        "needsMoreInfo": True,
        "nextQuestion": "What is your level?",
        "readyForToolbox": False,
    }
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_llm(decision)):
        result = await logic.gather_required_info(state, "find me partners tomorrow evening")

    assert result.ready_for_toolbox is True
    assert result.needs_more_info is False
    assert result.toolbox_action == "getAvailablePlayers"
    assert result.toolbox_params["timeSlot"] == "tomorrow_evening"


@pytest.mark.asyncio
async def test_need_more_info_action_means_ask(logic, state):
    decision = {
        "intent": "find_venue",
        "readyForToolbox": True,
        "toolboxAction": "needMoreInfo",
        "nextQuestion": "Which area?",
    }
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_llm(decision)):
        result = await logic.gather_required_info(state, "a court please")

    assert result.ready_for_toolbox is False
    assert result.needs_more_info is True
    assert result.next_question == "Which area?"


@pytest.mark.asyncio
async def test_unknown_action_falls_back_to_intent_default(logic, state):
    decision = {
        "intent": "join_session",
        "extractedInfo": {"skillLevel": "beginner"},
        "readyForToolbox": True,
        "toolboxAction": "teleportToCourt",
    }
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_llm(decision)):
        result = await logic.gather_required_info(state, "any beginner games?")

    assert result.toolbox_action == "findOpenSessions"


@pytest.mark.asyncio
async def test_prose_output_becomes_the_question(logic, state):
    with patch(
        _PATCH_LLM, new_callable=AsyncMock, return_value=_llm("Which area of Jakarta do you prefer?")
    ):
        result = await logic.gather_required_info(state, "play padel")

    assert result.needs_more_info is True
    assert result.ready_for_toolbox is False
    assert result.next_question == "Which area of Jakarta do you prefer?"


@pytest.mark.asyncio
async def test_provider_error_asks_generic_question(logic, state):
    error = AIMessage(content="Error calling LLM: boom", response_metadata={"finish_reason": "error"})
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=error):
        result = await logic.gather_required_info(state, "play padel")

    assert result.needs_more_info is True
    assert "Error" not in result.next_question


@pytest.mark.asyncio
async def test_analyze_user_intent_fallback(logic, state):
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_llm("???")):
        analysis = await logic.analyze_user_intent(state, "hmm")
    assert analysis.intent == "general_inquiry"
    assert analysis.confidence == 0.1
    assert analysis.missing_info == ["intent"]


@pytest.mark.asyncio
async def test_analyze_user_intent(logic, state):
    payload = {
        "intent": "create_session",
        "confidence": 0.8,
        "extractedInfo": {"venue": "Kemang Padel Club"},
        "missingInfo": ["time"],
    }
    with patch(_PATCH_LLM, new_callable=AsyncMock, return_value=_llm(payload)):
        analysis = await logic.analyze_user_intent(state, "set up a game at Kemang Padel Club")
    assert analysis.intent == "create_session"
    assert analysis.missing_info == ["time"]


# ── Heuristics ──────────────────────────────────────────────


def test_has_minimum_required_info():
    assert LogicAgent.has_minimum_required_info({"location": "Kemang"}) is True
    assert LogicAgent.has_minimum_required_info({"location": "", "searchIntent": "courts"}) is False
    assert LogicAgent.has_minimum_required_info({}) is False


def test_detect_new_intent(state):
    assert LogicAgent.detect_new_intent(state, "hello") is True

    state.add_message("user", "book a court in kemang")
    state.merge_info({"searchIntent": "courts"})
    assert LogicAgent.detect_new_intent(state, "book a court in kemang") is False
    assert LogicAgent.detect_new_intent(state, "what about 8 pm instead?") is False
    assert LogicAgent.detect_new_intent(state, "find me a partner") is True
    assert LogicAgent.detect_new_intent(state, "let's start over") is True
    assert LogicAgent.detect_new_intent(state, "tomorrow") is False


def test_calculate_confidence():
    assert LogicAgent.calculate_confidence(None) == 0.1
    assert LogicAgent.calculate_confidence(ToolboxResult(error="x")) == 0.1
    assert LogicAgent.calculate_confidence(ToolboxResult()) == 0.2
    assert LogicAgent.calculate_confidence(ToolboxResult(venues=[{}] * 3)) == 0.9
    assert LogicAgent.calculate_confidence(ToolboxResult(venues=[{}] * 12)) == 0.7


@pytest.mark.asyncio
async def test_execute_toolbox_action_delegates_to_registry(logic):
    response = await logic.execute_toolbox_action("getAvailableVenues", {"location": "Senayan"})
    assert response.results.total_results == 1
    assert response.results.venues[0]["name"] == "Senayan Padel Arena"
