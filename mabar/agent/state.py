"""Conversation state — per-session history + accumulated info, and the graph turn state."""

from __future__ import annotations

import asyncio
import time
from typing import Any, TypedDict

from loguru import logger
from pydantic import BaseModel, Field

from mabar.agent.trace import FlowTrace
from mabar.memory.models import (
    AIResponse,
    ConversationMessage,
    InfoGatheringResult,
    ToolboxResponse,
)
from mabar.memory.store import MemoryStore


class ConversationState(BaseModel):
    """Everything the agents remember about one conversation."""

    session_id: str
    history: list[ConversationMessage] = Field(default_factory=list)
    accumulated: dict[str, Any] = Field(default_factory=dict)
    search_intent: str | None = None
    updated_at: float = Field(default_factory=time.time)
    history_limit: int = Field(default=20, exclude=True)

    def add_message(self, role: str, text: str) -> None:
        """Append a turn, keeping only the newest ``history_limit`` entries."""
        self.history.append(ConversationMessage(role=role, text=text, timestamp=time.time()))
        if len(self.history) > self.history_limit:
            self.history = self.history[-self.history_limit :]
        self.updated_at = time.time()

    def merge_info(self, info: dict[str, Any] | None) -> None:
        """Shallow merge; ``None`` values never overwrite what is known."""
        if not info:
            return
        for key, value in info.items():
            if value is None:
                continue
            self.accumulated[key] = value
        if self.accumulated.get("searchIntent"):
            self.search_intent = self.accumulated["searchIntent"]
        self.updated_at = time.time()

    def last_user_message(self) -> str | None:
        for msg in reversed(self.history):
            if msg.role == "user":
                return msg.text
        return None

    def recent(self, n: int = 4) -> list[dict[str, str]]:
        return [{"role": m.role, "content": m.text} for m in self.history[-n:]]

    def reset(self) -> None:
        self.history = []
        self.accumulated = {}
        self.search_intent = None
        self.updated_at = time.time()

    def snapshot(self) -> dict[str, Any]:
        return {
            "history": [m.model_dump() for m in self.history],
            "accumulated": dict(self.accumulated),
            "timestamp": self.updated_at,
        }


class ConversationManager:
    """Loads/saves ``ConversationState`` per session and serializes turns.

    Parameters
    ----------
    store : MemoryStore
        Snapshot persistence (``conversation_state`` table).
    history_limit : int
        Max history entries kept per conversation.
    idle_timeout : float
        Seconds after which an untouched conversation leaves memory. Its
        snapshot stays in the store and is restored on the next turn.
    """

    def __init__(
        self, store: MemoryStore, history_limit: int = 20, idle_timeout: float = 3600.0
    ) -> None:
        self.store = store
        self.history_limit = history_limit
        self.idle_timeout = idle_timeout
        self._states: dict[str, ConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock; turns of one session never interleave."""
        if session_id not in self._locks:
            self.evict_idle()
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    def load(self, session_id: str) -> ConversationState:
        """In-memory state, else the persisted snapshot, else a fresh state."""
        if session_id in self._states:
            return self._states[session_id]

        state = ConversationState(session_id=session_id, history_limit=self.history_limit)
        data = self.store.load_state(session_id)
        if data:
            state.history = [ConversationMessage.model_validate(m) for m in data.get("history", [])]
            state.history = state.history[-self.history_limit :]
            state.merge_info(data.get("accumulated") or {})
            state.updated_at = data.get("timestamp") or state.updated_at
            logger.debug(
                f"Conversation restored: {session_id} "
                f"({len(state.history)} messages, {len(state.accumulated)} facts)"
            )
        self._states[session_id] = state
        return state

    def save(self, state: ConversationState) -> None:
        self._states[state.session_id] = state
        self.store.save_state(state.session_id, state.snapshot())

    def reset_conversation(self, session_id: str) -> None:
        """Clear memory and the persisted snapshot."""
        state = self._states.get(session_id)
        if state is not None:
            state.reset()
        self.store.delete_state(session_id)
        logger.info(f"Conversation reset: {session_id}")

    def close(self, session_id: str) -> None:
        """Drop the in-memory state and lock of a session."""
        self._states.pop(session_id, None)
        self._locks.pop(session_id, None)

    def evict_idle(self, now: float | None = None) -> int:
        """Close conversations idle for longer than ``idle_timeout``; busy ones stay."""
        now = now if now is not None else time.time()
        stale = [
            sid
            for sid in set(self._states) | set(self._locks)
            if not (sid in self._locks and self._locks[sid].locked())
            and (sid not in self._states or now - self._states[sid].updated_at > self.idle_timeout)
        ]
        for sid in stale:
            self.close(sid)
        if stale:
            logger.debug(f"Evicted {len(stale)} idle conversation(s)")
        return len(stale)

    def get_conversation_state(self, session_id: str) -> dict[str, Any]:
        state = self.load(session_id)
        return {
            "history": [m.model_dump() for m in state.history],
            "accumulated": dict(state.accumulated),
        }


class TurnState(TypedDict, total=False):
    """LangGraph state for one conversational turn."""

    user_id: str
    session_id: str
    session_token: str | None
    message: str
    conversation: ConversationState
    analysis: dict[str, Any]
    decision: InfoGatheringResult
    toolbox: ToolboxResponse
    presentation: dict[str, Any]
    response: AIResponse
    trace: FlowTrace
