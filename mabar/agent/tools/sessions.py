"""Session tools — find, create and join open games."""

from __future__ import annotations

from langchain_core.tools import tool

from mabar.agent.analyzer import get_time_range, resolve_date
from mabar.agent.cards import join_confirmation_card, session_card, venue_card
from mabar.agent.tools.base import (
    ask_response,
    auth_required_response,
    empty_response,
    normalize_slot,
    slot_window,
)
from mabar.core.parse.repository import MatchmakingRepository
from mabar.memory.models import ToolboxResponse, ToolboxResult


def make_session_tools(repo: MatchmakingRepository, max_cards: int = 3) -> list:
    """Create session tools closed over the repository."""

    @tool("findOpenSessions")
    async def find_open_sessions(
        skill_level: str = "",
        time: str = "",
        date: str = "",
        venue_id: str = "",
        location: str = "",
    ) -> ToolboxResponse:
        """Find open sessions with free slots, filtered by skill level, time slot, date or venue."""
        slot = normalize_slot(time)
        day = resolve_date(date)
        sessions = await repo.query_open_sessions(
            skill_level=skill_level or None,
            time_slot=slot or None,
            session_date=day.isoformat() if day else None,
            venue_id=venue_id or None,
        )
        if location and sessions:
            wanted = location.lower()
            nearby = [s for s in sessions if wanted in (s.get("venueName") or "").lower()]
            sessions = nearby or sessions
        if not sessions:
            return empty_response(
                "There are no open sessions for that yet.",
                ["Create a new session", "Try a different time", "Look for players instead"],
            )
        return ToolboxResponse(
            text=f"I found {len(sessions)} open session{'s' if len(sessions) > 1 else ''} you can join.",
            session_cards=[session_card(s) for s in sessions[:max_cards]],
            results=ToolboxResult(sessions=sessions),
        )

    @tool("createNewSession")
    async def create_new_session(
        venue_id: str = "",
        venue_name: str = "",
        date: str = "",
        time: str = "",
        skill_level: str = "",
        location: str = "",
        price_range: dict[str, int] | None = None,
        session_token: str = "",
    ) -> ToolboxResponse:
        """Create a new open session at a venue; without a venue, date and time it proposes venues."""
        user = await repo.parse.current_user(session_token)
        if user is None:
            return auth_required_response("createNewSession")

        venue = None
        if venue_id:
            venue = await repo.get_venue(venue_id)
        elif venue_name:
            venue = await repo.find_venue_by_name(venue_name)
        day = resolve_date(date)
        slot = normalize_slot(time)

        if venue is None or day is None or not slot:
            venues = await repo.query_venues(location=location or None, price_range=price_range)
            if not venues:
                return empty_response("I couldn't find a venue to host your session.")
            display = get_time_range(slot).display if slot else None
            return ToolboxResponse(
                text="Pick a venue and I'll set up the session for you.",
                session_cards=[
                    venue_card(v, time=display, date=day.isoformat() if day else None)
                    for v in venues[:max_cards]
                ],
                results=ToolboxResult(venues=venues),
            )

        existing = await repo.find_open_session(venue["id"], day.isoformat(), slot)
        if existing is not None:
            return ToolboxResponse(
                text=(
                    f"There's already an open session at {venue['name']} for that slot "
                    f"with {existing['openSlots']} spot(s) left. Want to join it?"
                ),
                session_cards=[session_card(existing, venue)],
                results=ToolboxResult(sessions=[existing]),
            )

        start, end = slot_window(day, slot)
        session = await repo.create_session(
            organizer=user,
            venue=venue,
            session_date=day,
            time_slot=slot,
            start=start,
            end=end,
            skill_level=skill_level or "intermediate",
            session_token=session_token,
        )
        return ToolboxResponse(
            text=(
                f"Your session at {venue['name']} on {day.isoformat()} "
                f"({get_time_range(slot).display}) is open. I'll fill the other spots."
            ),
            session_cards=[session_card(session, venue)],
            results=ToolboxResult(sessions=[session]),
        )

    @tool("joinSession")
    async def join_session(session_id: str = "", session_token: str = "") -> ToolboxResponse:
        """Join an open session by id; the game is booked on a free court once it is full."""
        user = await repo.parse.current_user(session_token)
        if user is None:
            return auth_required_response("joinSession")
        if not session_id:
            return ask_response("Which session would you like to join?")

        username = user.get("username") or user["objectId"]
        outcome = await repo.join_session(session_id, username, session_token=session_token)

        if outcome.status == "joined":
            session = outcome.session or {}
            if outcome.court:
                text = f"You're in! The game is full and {outcome.court} is booked."
            elif session.get("status") == "full":
                text = "You're in! The game is full; the venue will confirm your court."
            else:
                text = f"You're in! {session.get('openSlots', 0)} spot(s) left."
            return ToolboxResponse(
                text=text,
                session_cards=[join_confirmation_card(session, outcome.court)],
                results=ToolboxResult(
                    sessions=[session],
                    bookings=[outcome.booking] if outcome.booking else [],
                ),
            )
        if outcome.status == "already_joined":
            return ToolboxResponse(
                text="You're already in this session.",
                session_cards=[join_confirmation_card(outcome.session or {})],
                results=ToolboxResult(sessions=[outcome.session] if outcome.session else []),
            )
        if outcome.status == "not_found":
            return empty_response("I couldn't find that session.")
        return empty_response(
            "Sorry, that session just filled up or is no longer open.",
            ["Find another open session", "Create a new session"],
        )

    return [find_open_sessions, create_new_session, join_session]
