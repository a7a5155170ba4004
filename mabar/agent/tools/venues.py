"""Venue tools — search, details, court availability."""

from __future__ import annotations

from langchain_core.tools import tool

from mabar.agent.analyzer import get_time_range, resolve_date
from mabar.agent.cards import venue_card
from mabar.agent.tools.base import (
    ask_response,
    empty_response,
    normalize_slot,
    slot_window,
)
from mabar.core.parse.repository import MatchmakingRepository
from mabar.memory.models import ToolboxResponse, ToolboxResult


def make_venue_tools(repo: MatchmakingRepository, max_cards: int = 3) -> list:
    """Create venue tools closed over the repository."""

    @tool("getAvailableVenues")
    async def get_available_venues(
        location: str = "",
        price_range: dict[str, int] | None = None,
        facilities: list[str] | None = None,
        min_rating: float | None = None,
        min_courts: int | None = None,
        time: str = "",
        date: str = "",
    ) -> ToolboxResponse:
        """Find active padel venues by area, hourly price range, facilities, rating or court count."""
        venues = await repo.query_venues(
            location=location or None,
            price_range=price_range,
            facilities=facilities,
            min_rating=min_rating,
            min_courts=min_courts,
        )
        if not venues:
            where = f" in {location}" if location else ""
            return empty_response(f"I couldn't find any venues{where} matching that.")

        slot = normalize_slot(time)
        display = get_time_range(slot).display if slot else None
        day = resolve_date(date)
        return ToolboxResponse(
            text=f"I found {len(venues)} venue{'s' if len(venues) > 1 else ''} for you.",
            session_cards=[
                venue_card(v, time=display, date=day.isoformat() if day else None)
                for v in venues[:max_cards]
            ],
            results=ToolboxResult(venues=venues),
        )

    @tool("getVenueDetails")
    async def get_venue_details(venue_id: str = "", venue_name: str = "") -> ToolboxResponse:
        """Get details (address, pricing, facilities, courts) of one venue by id or name."""
        if not venue_id and not venue_name:
            return ask_response("Which venue would you like to know more about?")
        venue = (
            await repo.get_venue(venue_id) if venue_id else await repo.find_venue_by_name(venue_name)
        )
        if venue is None:
            return empty_response(f"I couldn't find a venue called {venue_name or venue_id}.")

        facilities = ", ".join(venue["facilities"]) or "no listed facilities"
        return ToolboxResponse(
            text=(
                f"{venue['name']} has {venue['courtCount']} courts, "
                f"rated {venue['rating']}, with {facilities}."
            ),
            session_cards=[venue_card(venue)],
            results=ToolboxResult(venues=[venue]),
        )

    @tool("checkVenueAvailability")
    async def check_venue_availability(
        venue_id: str = "", date: str = "", time: str = ""
    ) -> ToolboxResponse:
        """Check how many courts of a venue are free on a date and time slot."""
        day = resolve_date(date)
        slot = normalize_slot(time)
        if not venue_id or day is None or not slot:
            return ask_response(
                "To check availability I need the venue, the date and the time you want to play."
            )
        venue = await repo.get_venue(venue_id)
        if venue is None:
            return empty_response("I couldn't find that venue.")

        start, end = slot_window(day, slot)
        taken = set(await repo.booked_courts(venue_id, start, end))
        day_bookings = await repo.bookings_for_day(venue_id, day)
        free = max(0, venue["courtCount"] - len(taken))
        display = get_time_range(slot).display

        if free == 0:
            return empty_response(
                f"{venue['name']} is fully booked on {day.isoformat()} at {display}.",
                ["Try another time that day", "Try a nearby venue"],
            )
        return ToolboxResponse(
            text=(
                f"{venue['name']} has {free} of {venue['courtCount']} courts free on "
                f"{day.isoformat()} at {display} ({len(day_bookings)} booking(s) that day)."
            ),
            session_cards=[venue_card(venue, time=display, date=day.isoformat())],
            results=ToolboxResult(venues=[{**venue, "freeCourts": free}]),
        )

    return [get_available_venues, get_venue_details, check_venue_availability]
