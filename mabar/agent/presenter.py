"""PresenterAgent — second LLM stage: turn toolbox results into a reply + session cards."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, Field

from mabar.agent.cards import (
    booking_card,
    deduplicate_cards,
    no_availability_card,
    normalize_cards,
    players_card,
    session_card,
    venue_card,
)
from mabar.agent.negotiation import PresentationPolicy
from mabar.agent.parsing import LLMOutputError, decode
from mabar.core.providers import litellm as llm_provider
from mabar.memory.models import AIResponse, PresenterOutput, SessionCard, ToolboxResult

if TYPE_CHECKING:
    from mabar.core.config.schema import Config

_INSTRUCTION = (
    "You are MaBar AI Assistant. Transform raw data into friendly responses. "
    "Respond only with JSON."
)

_PERSONA_PROMPT = """\
I am MaBar's tour guide and sales closer. I turn raw padel search results into
a short, friendly reply and a few cards the user can act on right away.

How I present:
- Most important first: venue, time, price, open slots.
- At most {max_cards} cards. Best matches first, never the same venue twice.
- When nothing matches, I never just say "no results": I offer alternatives
  (another time, a nearby area, creating a new session).
- Tone follows skill level: beginner = encouraging, intermediate = balanced,
  advanced = direct.
- Always end with a clear next step (join, book, or refine).

Card types I use:
- "existing-session": data {{sessionId, venue, address, date, time, skillLevel, players, openSlots, cost}}
- "create-new": data {{venueId, venue, address, cost, rating, facilities, time, date}}
- "no-availability": data {{message, alternatives}}
- "user-booking": data {{bookingId, venue, court, date, time, status, cost}}
- "join-confirmation": data {{sessionId, time, date, status, court, openSlots}}

I answer with JSON only:
{{
  "format": "cards|text|mixed",
  "message": "Conversational summary with a clear next step",
  "cards": [{{"type": "create-new", "data": {{}}}}],
  "reasoning": "why this presentation",
  "alternatives": ["..."]
}}
"""

_PRESENT_TEMPLATE = """\
**User's Original Request:** "{request}"

**User Skill Level:** {skill} (adapt tone accordingly)

**Toolbox Action Performed:** {action}

**Toolbox Summary:** {summary}

**Raw Database Results:**
{raw}

**Search Criteria Used:**
{criteria}

**Presentation Format:** {fmt}
(cards = lead with cards, text = conversational reply without cards,
mixed = short reply plus cards)

Transform this into a friendly reply with the right session cards."""

_GREETINGS = {
    "beginner": "Hey! I'm here to help you find great padel games. What are you up for?",
    "intermediate": "Hi there! Looking for courts or players today?",
    "advanced": "Hello! What can I find for you?",
}
_DEFAULT_GREETING = "Hi! What brings you here today?"


class PresenterRequest(BaseModel):
    """Everything the presenter sees for one turn."""

    user_request: str
    toolbox_action: str
    results: ToolboxResult = Field(default_factory=ToolboxResult)
    toolbox_text: str = ""
    search_criteria: dict[str, Any] = Field(default_factory=dict)
    format: str = "mixed"


class PresenterAgent:
    """Presentation with one LLM call and a deterministic fallback.

    Parameters
    ----------
    config : Config
        Application config (presenter model, card limit, round budget).
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.model = config.presenter_model
        self.temperature = config.assistant.presenter_temperature
        self.max_cards = config.assistant.max_cards
        self.policy = PresentationPolicy(config.assistant.max_negotiation_rounds)
        self._persona = _PERSONA_PROMPT.format(max_cards=self.max_cards)

    # ════════════════════════════════════════════════════════════
    # LLM PRESENTATION
    # ════════════════════════════════════════════════════════════

    async def present_results(self, request: PresenterRequest) -> AIResponse:
        """Presenter LLM call; raises ``LLMOutputError`` when the output is unusable."""
        raw = request.results.model_dump(exclude={"total_results"})
        prompt = _PRESENT_TEMPLATE.format(
            request=request.user_request,
            skill=request.search_criteria.get("skillLevel") or "not specified",
            action=request.toolbox_action,
            summary=request.toolbox_text or "none",
            raw=json.dumps(raw, indent=2, default=str),
            criteria=json.dumps(request.search_criteria, indent=2, default=str)
            if request.search_criteria
            else "Not specified",
            fmt=request.format,
        )
        messages = [
            {"role": "user", "content": _INSTRUCTION},
            {"role": "assistant", "content": self._persona},
            {"role": "user", "content": prompt},
        ]
        logger.debug(f"Presenter LLM call: model={self.model}, format={request.format}")
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
        logger.debug(f"Presenter LLM raw: {content[:200]}")
        output = decode(content, PresenterOutput)

        cards = self._finalize_cards(normalize_cards(output.cards), request.results, request.format)
        if not request.results.has_results and output.alternatives:
            for card in cards:
                if card.type == "no-availability" and not card.data.get("alternatives"):
                    card.data["alternatives"] = output.alternatives
        return AIResponse(text=output.message, session_cards=cards)

    async def format_response(
        self,
        results: ToolboxResult,
        user_context: dict[str, Any],
        fmt: str,
        request: PresenterRequest,
    ) -> AIResponse:
        """LLM presentation with ``format_simple_response`` as the fallback."""
        request = request.model_copy(
            update={"results": results, "search_criteria": user_context, "format": fmt}
        )
        try:
            return await self.present_results(request)
        except LLMOutputError as e:
            logger.warning(f"Presenter output unusable ({e}), using simple response")
            return self.format_simple_response(results, fmt, reasoning=str(e))

    def discuss_with_logic(self, results: ToolboxResult, analysis: dict[str, Any]) -> dict[str, Any]:
        """Agree on a presentation format for ``results``.

        Returns
        -------
        dict
            ``format`` (cards|text|mixed), ``reasoning`` and the full ``decision``.
        """
        decision = self.policy.decide(results, analysis)
        logger.debug(
            f"Presentation decision: {decision.format} ({decision.reasoning}, "
            f"{decision.rounds} round(s), {decision.complexity.value})"
        )
        return {"format": decision.format, "reasoning": decision.reasoning, "decision": decision}

    # ════════════════════════════════════════════════════════════
    # DETERMINISTIC FALLBACKS
    # ════════════════════════════════════════════════════════════

    def format_simple_response(
        self, results: ToolboxResult | None, fmt: str = "cards", reasoning: str = ""
    ) -> AIResponse:
        """Build a reply without the LLM. Empty results still get a card."""
        results = results or ToolboxResult()
        if not results.has_results:
            message = (
                "Sorry, I couldn't reach the booking system just now."
                if results.error
                else "I couldn't find an exact match, but here are some options."
            )
            return AIResponse(
                text=f"{message} Want me to try different criteria?",
                session_cards=[no_availability_card(message, error=results.error)],
            )

        cards: list[SessionCard] = [session_card(s) for s in results.sessions]
        if results.players:
            cards.append(players_card(results.players))
        cards.extend(venue_card(v) for v in results.venues[: self.max_cards])
        cards.extend(booking_card(b) for b in results.bookings)
        cards = self._finalize_cards(cards, results, fmt)

        parts = []
        if results.sessions:
            parts.append(f"{len(results.sessions)} open session(s)")
        if results.venues:
            parts.append(f"{len(results.venues)} venue(s)")
        if results.players:
            parts.append(f"{len(results.players)} player(s)")
        if results.bookings:
            parts.append(f"{len(results.bookings)} booking(s)")
        text = f"I found {', '.join(parts)} for you."
        if fmt == "text":
            names = [v.get("name") for v in results.venues[: self.max_cards] if v.get("name")]
            if names:
                text += f" Top picks: {', '.join(names)}."
        if reasoning:
            logger.debug(f"Simple response ({fmt}): {reasoning}")
        return AIResponse(text=text, session_cards=cards)

    @staticmethod
    def greeting(skill_level: str | None = None) -> str:
        return _GREETINGS.get((skill_level or "").lower(), _DEFAULT_GREETING)

    def _finalize_cards(
        self, cards: list[SessionCard], results: ToolboxResult, fmt: str
    ) -> list[SessionCard]:
        """Dedup, cap, apply the format, and never leave an empty result without a card."""
        if fmt == "text" and results.has_results:
            return []
        cards = deduplicate_cards(cards)[: self.max_cards]
        if not results.has_results and not any(c.type == "no-availability" for c in cards):
            cards = [no_availability_card(error=results.error)] + cards[: self.max_cards - 1]
        return cards
