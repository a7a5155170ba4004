"""Core API routes — chat, conversation state, analyzer, health."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger

from mabar import __version__
from mabar.agent.analyzer import analyze_input, to_slots
from mabar.agent.coordinator import MatchmakingCoordinator
from mabar.api.deps import get_coordinator, get_db, get_session_token
from mabar.memory.models import (
    AnalyzeRequest,
    ChatRequest,
    ChatResponse,
    ConversationStateResponse,
    HealthResponse,
    SessionInfo,
)
from mabar.memory.store import MemoryStore

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    coordinator: MatchmakingCoordinator = Depends(get_coordinator),
    session_token: str | None = Depends(get_session_token),
):
    """Send a message (or a card interaction) and get the assistant reply."""
    try:
        user_id = await coordinator.resolve_user(body.user_id, body.session_id, session_token)
        response, session_id, flow = await coordinator.process_traced(
            user_id=user_id,
            message=body.message,
            session_id=body.session_id,
            interaction_type=body.interaction_type,
            session_token=session_token,
        )
    except Exception as e:
        logger.error(f"Chat error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return ChatResponse(
        response=response.text,
        session_id=session_id,
        session_cards=response.session_cards,
        needs_more_info=response.needs_more_info,
        conversation_complete=response.conversation_complete,
        trace=flow.to_dict() if body.debug else None,
    )


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Health check."""
    config = getattr(request.app.state, "config", None)
    coordinator = getattr(request.app.state, "coordinator", None)
    return HealthResponse(
        status="ok",
        agent_ready=coordinator is not None,
        version=__version__,
        parse_configured=bool(config and config.parse_enabled),
        tools_count=len(coordinator.registry) if coordinator else 0,
    )


@router.get("/tools")
async def list_tools(coordinator: MatchmakingCoordinator = Depends(get_coordinator)):
    """Toolbox catalog."""
    return {"tools": coordinator.registry.get_catalog()}


@router.get("/sessions/{user_id}", response_model=list[SessionInfo])
async def list_sessions(
    user_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    db: MemoryStore = Depends(get_db),
):
    """List a user's chat sessions, newest first."""
    if not db.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return [SessionInfo(**r) for r in db.get_user_sessions(user_id, limit=limit)]


@router.get("/session/{session_id}/state", response_model=ConversationStateResponse)
async def session_state(
    session_id: str,
    coordinator: MatchmakingCoordinator = Depends(get_coordinator),
    db: MemoryStore = Depends(get_db),
):
    """Conversation history and accumulated info."""
    if not db.get_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    state = coordinator.get_conversation_state(session_id)
    return ConversationStateResponse(session_id=session_id, **state)


@router.get("/session/{session_id}/history")
async def session_history(session_id: str, db: MemoryStore = Depends(get_db)):
    """Get all messages in a session."""
    if not db.get_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session_id": session_id, "messages": db.get_session_messages(session_id)}


@router.post("/session/{session_id}/reset")
async def reset_session(
    session_id: str,
    coordinator: MatchmakingCoordinator = Depends(get_coordinator),
    db: MemoryStore = Depends(get_db),
):
    """Forget history and accumulated info of a conversation."""
    if not db.get_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    coordinator.reset_conversation(session_id)
    return {"status": "reset", "session_id": session_id}


@router.post("/session/{session_id}/end")
async def end_session(
    session_id: str,
    coordinator: MatchmakingCoordinator = Depends(get_coordinator),
    db: MemoryStore = Depends(get_db),
):
    """Close a chat session. The next message from the user starts a new one."""
    session = db.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    if session.get("ended_at"):
        raise HTTPException(status_code=400, detail="Session already closed")
    coordinator.end_session(session_id)
    return {"status": "closed", "session_id": session_id}


@router.post("/analyze")
async def analyze(body: AnalyzeRequest):
    """Run the regex input analyzer only (no LLM, no backend)."""
    analysis = analyze_input(body.text)
    return {"analysis": analysis.model_dump(), "slots": to_slots(analysis)}
