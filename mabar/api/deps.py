"""FastAPI dependency injection — pull singletons from app.state."""

from __future__ import annotations

from fastapi import Header, Request

from mabar.agent.coordinator import MatchmakingCoordinator
from mabar.core.config.schema import Config
from mabar.memory.store import MemoryStore


def get_config(request: Request) -> Config:
    """Get Config singleton from app state."""
    return request.app.state.config


def get_db(request: Request) -> MemoryStore:
    """Get MemoryStore singleton from app state."""
    return request.app.state.db


def get_coordinator(request: Request) -> MatchmakingCoordinator:
    """Get MatchmakingCoordinator singleton from app state."""
    return request.app.state.coordinator


async def get_session_token(
    x_parse_session_token: str | None = Header(None),
) -> str | None:
    """Parse session token of the logged-in user, forwarded by the frontend."""
    return x_parse_session_token or None
