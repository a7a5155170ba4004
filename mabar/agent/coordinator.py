"""MatchmakingCoordinator — orchestrator between SQLite, conversation state and LangGraph."""

from __future__ import annotations

import uuid

import httpx
from loguru import logger

from mabar.agent.graph import create_graph
from mabar.agent.logic import LogicAgent
from mabar.agent.presenter import PresenterAgent
from mabar.agent.state import ConversationManager
from mabar.agent.tools import ToolRegistry, make_tools
from mabar.agent.trace import FlowTrace
from mabar.core.config.schema import Config
from mabar.core.parse.client import ParseError
from mabar.core.providers.litellm import setup_provider
from mabar.memory.models import AIResponse
from mabar.memory.store import MemoryStore

APOLOGY = "I encountered an issue. Could you try rephrasing your request?"


class MatchmakingCoordinator:
    """
    Request-scoped orchestrator.

    Flow:
        1. Find/create session (SQLite)
        2. Rewrite card interactions into plain requests
        3. Under the session lock: load conversation, reset on a new intent
        4. graph.ainvoke(state) — analyzer → logic → toolbox → policy → presenter
        5. Save reply to history, snapshot and message log
    """

    def __init__(
        self,
        config: Config,
        db: MemoryStore,
        registry: ToolRegistry | None = None,
    ):
        self.config = config
        self.db = db
        self.registry = registry if registry is not None else make_tools(config)
        self.conversations = ConversationManager(
            db,
            config.assistant.history_limit,
            idle_timeout=config.assistant.idle_timeout_minutes * 60,
        )
        self.logic = LogicAgent(config, self.registry)
        self.presenter = PresenterAgent(config)
        setup_provider(config)
        self._graph = create_graph(self.logic, self.presenter)

    async def process(
        self,
        user_id: str,
        message: str,
        session_id: str | None = None,
        interaction_type: str = "text",
        session_token: str | None = None,
    ) -> tuple[AIResponse, str]:
        """Process a user message and return (response, session_id).

        Parameters
        ----------
        user_id : str
            User identifier.
        message : str
            User text, or ``"action:data"`` for card interactions.
        session_id : str, optional
            Existing chat session. If None, the user's active one is reused
            or a new one is created.
        interaction_type : str
            ``"text"`` or ``"card"``.
        session_token : str, optional
            Parse session token of the logged-in user.

        Returns
        -------
        tuple[AIResponse, str]
            (response, session_id). Never raises for agent failures.
        """
        response, session_id, _ = await self.process_traced(
            user_id, message, session_id, interaction_type, session_token
        )
        return response, session_id

    async def process_traced(
        self,
        user_id: str,
        message: str,
        session_id: str | None = None,
        interaction_type: str = "text",
        session_token: str | None = None,
    ) -> tuple[AIResponse, str, FlowTrace]:
        """Same as ``process``, plus the ``FlowTrace`` of this turn only."""
        session_id = self._resolve_session(user_id, session_id)
        if interaction_type == "card":
            message = rewrite_card_interaction(message)

        trace = FlowTrace(session_id)
        trace.record("coordinator", "user_input", {"message": message, "type": interaction_type})

        async with self.conversations.lock(session_id):
            conversation = self.conversations.load(session_id)
            if conversation.history and self.logic.detect_new_intent(conversation, message):
                logger.info(f"New intent detected in {session_id}, starting fresh")
                self.conversations.reset_conversation(session_id)
                conversation = self.conversations.load(session_id)

            try:
                state = await self._graph.ainvoke(
                    {
                        "user_id": user_id,
                        "session_id": session_id,
                        "session_token": session_token,
                        "message": message,
                        "conversation": conversation,
                        "trace": trace,
                    }
                )
                response: AIResponse = state["response"]
            except Exception as e:
                logger.exception(f"Turn failed for session {session_id}: {e}")
                response = AIResponse(text=APOLOGY)

            # gather_required_info records the user turn; make sure it is there
            if conversation.last_user_message() != message:
                conversation.add_message("user", message)
            conversation.add_message("model", response.text)
            self.conversations.save(conversation)

        self.db.add_message(session_id, "user", message)
        self.db.add_message(
            session_id,
            "assistant",
            response.text,
            cards=[c.model_dump() for c in response.session_cards],
        )
        trace.record("coordinator", "final_response", {
            "text": response.text[:120], "cards": len(response.session_cards),
        })
        logger.debug(f"Turn done in {trace.total_ms}ms for {session_id}")
        return response, session_id, trace

    async def resolve_user(
        self,
        user_id: str | None = None,
        session_id: str | None = None,
        session_token: str | None = None,
    ) -> str:
        """Who is talking.

        An explicit ``user_id`` wins; else the Parse user behind
        ``session_token``; else the owner of ``session_id``. A caller with
        none of these gets a fresh anonymous id, so it never shares a
        session with anyone else.
        """
        if user_id:
            return user_id
        if session_token and self.registry.parse is not None:
            try:
                user = await self.registry.parse.current_user(session_token)
            except (ParseError, httpx.HTTPError) as e:
                logger.warning(f"Could not resolve Parse user: {e}")
                user = None
            if user and user.get("objectId"):
                return user["objectId"]
        if session_id:
            existing = self.db.get_session(session_id)
            if existing:
                return existing["user_id"]
        return f"anon-{uuid.uuid4().hex[:12]}"

    def _resolve_session(self, user_id: str, session_id: str | None) -> str:
        self.db.get_or_create_user(user_id)
        if session_id is None:
            active = self.db.get_active_session(user_id)
            return active["session_id"] if active else self.db.create_session(user_id)
        existing = self.db.get_session(session_id)
        if not existing:
            self.db.create_session(user_id, session_id=session_id)
        elif existing.get("ended_at") is not None:
            logger.info(f"Session {session_id} is closed, creating new session")
            self.conversations.close(session_id)
            return self.db.create_session(user_id)
        return session_id

    def end_session(self, session_id: str, reason: str = "manual") -> None:
        """Close the store session and drop its conversation."""
        self.db.end_session(session_id, close_reason=reason)
        self.conversations.reset_conversation(session_id)
        self.conversations.close(session_id)

    def reset_conversation(self, session_id: str) -> None:
        self.conversations.reset_conversation(session_id)

    def get_conversation_state(self, session_id: str) -> dict:
        return self.conversations.get_conversation_state(session_id)


def rewrite_card_interaction(message: str) -> str:
    """``"join_session:abc123"`` → ``"User wants to join session for abc123"``."""
    action, _, data = message.partition(":")
    if not data:
        return message
    return f"User wants to {action.strip().replace('_', ' ')} for {data.strip()}"
