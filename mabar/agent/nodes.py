"""Graph nodes — analyze_input, reason, ask, execute_toolbox, negotiate, present."""

from __future__ import annotations

from typing import Any

from loguru import logger

from mabar.agent.analyzer import analyze_input as run_analyzer
from mabar.agent.analyzer import to_slots
from mabar.agent.logic import LogicAgent
from mabar.agent.presenter import PresenterAgent, PresenterRequest
from mabar.agent.state import TurnState
from mabar.memory.models import AIResponse


def make_nodes(logic: LogicAgent, presenter: PresenterAgent):
    """
    Create node functions closed over the two agents.

    Returns dict of {node_name: callable} for graph registration.
    """

    async def analyze_input(state: TurnState) -> dict[str, Any]:
        """Regex pre-filter; confident slots go straight into accumulated info."""
        analysis = run_analyzer(state["message"])
        slots = to_slots(analysis)
        state["conversation"].merge_info(slots)
        trace = state.get("trace")
        if trace:
            trace.record("coordinator", "input_analysis", {"slots": slots})
        return {"analysis": analysis.model_dump()}

    async def reason(state: TurnState) -> dict[str, Any]:
        """Logic LLM: ask a question or pick a toolbox action."""
        trace = state.get("trace")
        if trace:
            trace.start("logic")
        decision = await logic.gather_required_info(state["conversation"], state["message"])
        if trace:
            trace.record(
                "logic",
                "info_gathering",
                {
                    "intent": decision.intent,
                    "ready": decision.ready_for_toolbox,
                    "action": decision.toolbox_action,
                    "accumulated": decision.accumulated_info,
                },
                mark="logic",
            )
        return {"decision": decision}

    async def ask(state: TurnState) -> dict[str, Any]:
        """Follow-up question, no cards."""
        decision = state["decision"]
        analysis = state.get("analysis") or {}
        known = state["conversation"].accumulated
        text = decision.next_question
        # Tone follows a stated skill level, never the analyzer default
        if analysis.get("is_greeting") and set(known) <= {"skillLevel"}:
            text = presenter.greeting(known.get("skillLevel"))
        return {"response": AIResponse(text=text, needs_more_info=True)}

    async def execute_toolbox(state: TurnState) -> dict[str, Any]:
        decision = state["decision"]
        trace = state.get("trace")
        if trace:
            trace.record(
                "toolbox", "request", {"action": decision.toolbox_action,
                                       "params": decision.toolbox_params},
            )
            trace.start("toolbox")
        toolbox = await logic.execute_toolbox_action(
            decision.toolbox_action,
            decision.toolbox_params,
            session_token=state.get("session_token"),
        )
        if trace:
            trace.record(
                "toolbox",
                "response",
                {
                    "total_results": toolbox.results.total_results,
                    "error": toolbox.results.error,
                    "cards": len(toolbox.session_cards),
                },
                mark="toolbox",
            )
        return {"toolbox": toolbox}

    async def negotiate(state: TurnState) -> dict[str, Any]:
        """Agree on a presentation format. Pass-through replies skip the policy."""
        toolbox = state["toolbox"]
        results = toolbox.results
        if _is_direct(toolbox):
            presentation = {"format": "text", "reasoning": "direct toolbox reply", "direct": True}
        else:
            conversation = state["conversation"]
            discussion = presenter.discuss_with_logic(
                results,
                {
                    "confidence": logic.calculate_confidence(results),
                    "has_results": logic.has_valid_results(results),
                    "user_context": conversation.accumulated,
                    "conversation_turns": len(conversation.history),
                },
            )
            decision = discussion.pop("decision")
            presentation = {**discussion, "direct": False, "negotiation": decision.to_dict()}
        trace = state.get("trace")
        if trace:
            trace.record("negotiation", "decision", {
                "format": presentation["format"], "reasoning": presentation["reasoning"],
            })
        return {"presentation": presentation}

    async def present(state: TurnState) -> dict[str, Any]:
        """Presenter LLM (or the toolbox's own reply for pass-through results)."""
        toolbox = state["toolbox"]
        presentation = state["presentation"]
        if presentation.get("direct"):
            response = AIResponse(
                text=toolbox.text,
                session_cards=toolbox.session_cards,
                needs_more_info=toolbox.needs_more_info,
            )
        else:
            trace = state.get("trace")
            if trace:
                trace.start("presenter")
            request = PresenterRequest(
                user_request=state["message"],
                toolbox_action=state["decision"].toolbox_action or "",
                toolbox_text=toolbox.text,
            )
            response = await presenter.format_response(
                toolbox.results,
                state["conversation"].accumulated,
                presentation["format"],
                request,
            )
            if trace:
                trace.record(
                    "presenter", "presentation", {"cards": len(response.session_cards)},
                    mark="presenter",
                )
        return {"response": response}

    return {
        "analyze_input": analyze_input,
        "reason": reason,
        "ask": ask,
        "execute_toolbox": execute_toolbox,
        "negotiate": negotiate,
        "present": present,
    }


def should_execute(state: TurnState) -> str:
    """Conditional edge: after reason, run the toolbox or ask a question."""
    decision = state["decision"]
    if decision.ready_for_toolbox and decision.toolbox_action:
        return "execute_toolbox"
    logger.debug("Not ready for toolbox, asking for more info")
    return "ask"


def _is_direct(toolbox) -> bool:
    """Replies that need no presentation: questions, login prompts, plain text."""
    results = toolbox.results
    if toolbox.needs_more_info or results.requires_auth:
        return True
    return not toolbox.session_cards and not results.total_results and not results.error
