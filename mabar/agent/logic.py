"""LogicAgent — first LLM stage: understand intent, gather slots, pick a toolbox action."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from loguru import logger

from mabar.agent.analyzer import detect_search_intent
from mabar.agent.parsing import LLMOutputError, decode
from mabar.core.providers import litellm as llm_provider
from mabar.memory.models import (
    InfoGatheringResult,
    IntentAnalysis,
    LogicDecision,
    ToolboxResponse,
    ToolboxResult,
)

if TYPE_CHECKING:
    from mabar.agent.state import ConversationState
    from mabar.agent.tools import ToolRegistry
    from mabar.core.config.schema import Config

_LOGIC_PROMPT = """\
You are the logic specialist of {name}, a padel matchmaking assistant in {city}.

## Your Job
1. Understand what the user wants (find a venue, find players, join a session,
   create a session, or a general question).
2. Extract session details: date, time, location, skill level, budget, players.
3. Accumulate details across turns, using the accumulated info below.
4. Decide whether you know enough to run a toolbox action.
5. Otherwise ask ONE short follow-up question.

## Minimum Information
- find_venue: date/time + location
- find_players: skill level + date/time
- join_session: date/time + location OR skill level
- create_session: venue + date/time

Prefer showing options over asking questions: as soon as anything useful is
known, set readyForToolbox=true and pick an action.

## Toolbox Actions
{catalog}

## Output Format (JSON only, no markdown)
{{
  "intent": "find_venue|find_players|join_session|create_session|general_inquiry",
  "confidence": 0.8,
  "extractedInfo": {{"date": "tomorrow", "location": "kedoya"}},
  "accumulatedInfo": {{}},
  "missingInfo": ["time"],
  "isComplete": false,
  "needsMoreInfo": true,
  "nextQuestion": "What time would you like to play?",
  "readyForToolbox": false,
  "toolboxAction": null,
  "toolboxParams": {{}}
}}
"""

_GATHER_TEMPLATE = """\
Continue information gathering for padel matchmaking:

CURRENT MESSAGE: "{message}"
ACCUMULATED INFO: {accumulated}
CONVERSATION HISTORY: {history}

Decide whether you need more info or are ready for a toolbox action. Respond with JSON."""

_INTENT_TEMPLATE = """\
Analyze this user message for padel matchmaking intent:

USER MESSAGE: "{message}"
CONVERSATION HISTORY: {history}
ACCUMULATED INFO: {accumulated}

Respond with JSON analysis."""

_DEFAULT_QUESTION = "Could you tell me more about what you're looking for?"

_INTENT_ACTIONS = {
    "find_venue": "getAvailableVenues",
    "find_players": "getAvailablePlayers",
    "join_session": "findOpenSessions",
    "create_session": "createNewSession",
    "general_inquiry": "findMatch",
}

# Any one of these known → enough to search
_MINIMUM_INFO_KEYS = (
    "date", "time", "timeSlot", "location", "area", "venue", "venueId",
    "skillLevel", "players", "playerCount", "budget", "priceRange",
)

_START_OVER = re.compile(
    r"\b(start over|start again|new search|reset|forget (that|it|everything)|"
    r"something else|never ?mind|mulai lagi|ulang|cari yang lain)\b"
)
_REFINEMENT = re.compile(
    r"\b(what about|how about|actually|instead|also|change|rather|"
    r"make it|what if|bagaimana kalau|gimana kalau|ganti)\b"
)


class LogicAgent:
    """Intent understanding and slot gathering with one LLM call per turn.

    Parameters
    ----------
    config : Config
        Application config (model, temperature, city).
    registry : ToolRegistry
        Toolbox the chosen actions are executed against.
    """

    def __init__(self, config: Config, registry: ToolRegistry) -> None:
        self.config = config
        self.registry = registry
        self.model = config.assistant.model
        self.temperature = config.assistant.temperature
        self._system = _LOGIC_PROMPT.format(
            name=config.assistant.name,
            city=config.assistant.city,
            catalog=registry.catalog_text(),
        )

    # ════════════════════════════════════════════════════════════
    # INFO GATHERING
    # ════════════════════════════════════════════════════════════

    async def gather_required_info(
        self, state: ConversationState, message: str
    ) -> InfoGatheringResult:
        """Record the user turn and decide: ask a question or run a toolbox action.

        Never raises. Unusable model output yields ``needs_more_info=True``.
        """
        state.add_message("user", message)
        prompt = _GATHER_TEMPLATE.format(
            message=message,
            accumulated=json.dumps(state.accumulated, indent=2, default=str),
            history=json.dumps(state.recent(4), indent=2),
        )
        try:
            decision = await self._decide(prompt, LogicDecision)
        except LLMOutputError as e:
            logger.warning(f"Logic output unusable ({e}), asking for more info")
            return InfoGatheringResult(
                needs_more_info=True,
                next_question=_prose_question(e.raw),
                accumulated_info=dict(state.accumulated),
                ready_for_toolbox=False,
            )

        state.merge_info(decision.accumulated_info)
        state.merge_info(decision.extracted_info)

        needs_more = decision.needs_more_info
        ready = decision.ready_for_toolbox
        action = self.registry.resolve(decision.toolbox_action)
        if action == "needMoreInfo":
            action, ready, needs_more = None, False, True

        # Sales bias: show options instead of asking when anything is known
        if not ready and self.has_minimum_required_info(state.accumulated):
            logger.debug(f"Minimum info present, proceeding instead of asking: {state.accumulated}")
            ready, needs_more = True, False

        if ready and action is None:
            action = _INTENT_ACTIONS.get(decision.intent, "findMatch")
        if ready:
            needs_more = False

        result = InfoGatheringResult(
            needs_more_info=needs_more,
            next_question=decision.next_question or "How can I help you with padel?",
            accumulated_info=dict(state.accumulated),
            ready_for_toolbox=ready,
            toolbox_action=action if ready else None,
            toolbox_params={**state.accumulated, **decision.toolbox_params} if ready else {},
            intent=decision.intent,
            confidence=decision.confidence,
        )
        logger.debug(
            f"Logic decision: intent={result.intent}, ready={result.ready_for_toolbox}, "
            f"action={result.toolbox_action}"
        )
        return result

    async def analyze_user_intent(self, state: ConversationState, message: str) -> IntentAnalysis:
        prompt = _INTENT_TEMPLATE.format(
            message=message,
            history=json.dumps(state.recent(3), indent=2),
            accumulated=json.dumps(state.accumulated, indent=2, default=str),
        )
        try:
            decision = await self._decide(prompt, LogicDecision)
        except LLMOutputError as e:
            logger.warning(f"Intent analysis failed: {e}")
            return IntentAnalysis(
                intent="general_inquiry",
                confidence=0.1,
                missing_info=["intent"],
            )
        return IntentAnalysis(
            intent=decision.intent,
            confidence=decision.confidence,
            extracted_info=decision.extracted_info,
            missing_info=decision.missing_info,
            is_complete=decision.is_complete,
        )

    async def _decide(self, prompt: str, schema: type[LogicDecision]) -> LogicDecision:
        messages = [
            {"role": "system", "content": self._system},
            {"role": "user", "content": prompt},
        ]
        logger.debug(f"Logic LLM call: model={self.model}")
        response = await llm_provider.achat(
            messages=messages,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.config.assistant.max_tokens,
            api_base=self.config.get_api_base(self.model),
            response_format={"type": "json_object"},
        )
        if llm_provider.is_error(response):
            raise LLMOutputError("provider error")
        content = response.content or ""
        logger.debug(f"Logic LLM raw: {content[:200]}")
        return decode(content, schema)

    # ════════════════════════════════════════════════════════════
    # HEURISTICS
    # ════════════════════════════════════════════════════════════

    @staticmethod
    def has_minimum_required_info(info: dict[str, Any]) -> bool:
        return any(info.get(key) not in (None, "", [], {}) for key in _MINIMUM_INFO_KEYS)

    @staticmethod
    def detect_new_intent(state: ConversationState, message: str) -> bool:
        """Whether ``message`` starts a new request rather than refining the current one.

        Must run before the message is added to ``state``.
        """
        if not state.history:
            return True
        if message == state.last_user_message():
            return False

        normalized = message.lower()
        if _START_OVER.search(normalized):
            return True
        if _REFINEMENT.search(normalized):
            return False

        new_intent = detect_search_intent(message)
        current = state.search_intent or state.accumulated.get("searchIntent")
        return new_intent != "unclear" and current is not None and new_intent != current

    # ════════════════════════════════════════════════════════════
    # TOOLBOX
    # ════════════════════════════════════════════════════════════

    async def execute_toolbox_action(
        self,
        action: str | None,
        params: dict[str, Any] | None = None,
        session_token: str | None = None,
    ) -> ToolboxResponse:
        return await self.registry.execute(action, params, session_token=session_token)

    @staticmethod
    def calculate_confidence(results: ToolboxResult | None) -> float:
        if results is None or results.error:
            return 0.1
        total = results.total_results
        if total == 0:
            return 0.2
        if total <= 10:
            return 0.9
        return 0.7

    @staticmethod
    def has_valid_results(results: ToolboxResult | None) -> bool:
        return results is not None and results.has_results


def _prose_question(raw: str) -> str:
    """Plain-prose model output doubles as the follow-up question."""
    text = (raw or "").strip()
    if not text or "{" in text or len(text) > 300:
        return _DEFAULT_QUESTION
    return text
