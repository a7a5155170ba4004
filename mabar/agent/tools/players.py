"""Player tools — partner search, comprehensive match, personalized picks."""

from __future__ import annotations

from typing import Any

from langchain_core.tools import tool
from loguru import logger

from mabar.agent.analyzer import resolve_date
from mabar.agent.cards import players_card, session_card, venue_card
from mabar.agent.tools.base import auth_required_response, empty_response, normalize_slot
from mabar.core.parse.repository import MatchmakingRepository
from mabar.memory.models import SessionCard, ToolboxResponse, ToolboxResult


def make_player_tools(repo: MatchmakingRepository, max_cards: int = 3) -> list:
    """Create player/matching tools closed over the repository."""

    async def _comprehensive(
        location: str,
        skill_level: str,
        time: str,
        date: str,
        price_range: dict[str, int] | None,
    ) -> ToolboxResponse:
        slot = normalize_slot(time)
        day = resolve_date(date)
        venues = await repo.query_venues(location=location or None, price_range=price_range)
        players = await repo.query_players(
            skill_level=skill_level or None, location=location or None, time=time or slot or None
        )
        sessions = await repo.query_open_sessions(
            skill_level=skill_level or None,
            time_slot=slot or None,
            session_date=day.isoformat() if day else None,
        )
        result = ToolboxResult(venues=venues, players=players, sessions=sessions)
        if not result.total_results:
            return empty_response("Nothing matches that yet, but we can set up a game.")

        # Joinable sessions first, then new-session proposals
        cards: list[SessionCard] = [session_card(s) for s in sessions]
        if not sessions and players:
            cards.append(players_card(players, time=time or None))
        cards.extend(venue_card(v) for v in venues)
        return ToolboxResponse(
            text=(
                f"Here's what I found: {len(sessions)} open session(s), "
                f"{len(venues)} venue(s) and {len(players)} player(s)."
            ),
            session_cards=cards[:max_cards],
            results=result,
        )

    @tool("getAvailablePlayers")
    async def get_available_players(
        skill_level: str = "", location: str = "", time: str = ""
    ) -> ToolboxResponse:
        """Find players by skill level, preferred area and usual playing time."""
        players = await repo.query_players(
            skill_level=skill_level or None, location=location or None, time=time or None
        )
        if not players:
            return empty_response(
                "No players match that right now.",
                ["Try a different skill level", "Create a session so others can join"],
            )
        return ToolboxResponse(
            text=f"Great! I found {len(players)} available player{'s' if len(players) > 1 else ''}.",
            session_cards=[players_card(players, time=time or None)],
            results=ToolboxResult(players=players),
        )

    @tool("findMatch")
    async def find_match(
        location: str = "",
        skill_level: str = "",
        time: str = "",
        date: str = "",
        price_range: dict[str, int] | None = None,
    ) -> ToolboxResponse:
        """Search venues, players and open sessions at once for the best overall match."""
        return await _comprehensive(location, skill_level, time, date, price_range)

    @tool("getPersonalizedRecommendations")
    async def get_personalized_recommendations(
        location: str = "",
        skill_level: str = "",
        time: str = "",
        date: str = "",
        price_range: dict[str, int] | None = None,
        session_token: str = "",
    ) -> ToolboxResponse:
        """Recommend sessions, venues and players using the logged-in user's profile preferences."""
        user = await repo.parse.current_user(session_token)
        if user is None:
            return auth_required_response("getPersonalizedRecommendations")

        profile = await repo.get_player_profile(user["objectId"])
        if profile is None:
            logger.info(f"No player profile for {user.get('username')}, using findMatch")
            return await _comprehensive(location, skill_level, time, date, price_range)

        filters: dict[str, Any] = {
            "skill_level": (profile.get("skillLevel") or skill_level or "").lower(),
            "location": (profile.get("preferredAreas") or [location])[0] or location,
            "price_range": profile.get("budgetRange") or price_range,
        }
        logger.debug(f"Personalized filters: {filters}")
        return await _comprehensive(
            filters["location"], filters["skill_level"], time, date, filters["price_range"]
        )

    return [get_available_players, find_match, get_personalized_recommendations]
