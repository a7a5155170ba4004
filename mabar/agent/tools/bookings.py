"""Booking tools — the logged-in user's bookings."""

from __future__ import annotations

from langchain_core.tools import tool

from mabar.agent.cards import booking_card
from mabar.agent.tools.base import ask_response, auth_required_response, empty_response
from mabar.core.parse.repository import MatchmakingRepository
from mabar.memory.models import ToolboxResponse, ToolboxResult

_NOT_IN_CHAT = (
    "Changing or cancelling a booking isn't available through chat yet. "
    "Please use the Bookings page in the app."
)


def make_booking_tools(repo: MatchmakingRepository, max_cards: int = 3) -> list:
    """Create booking tools closed over the repository."""

    async def _list(session_token: str, upcoming: bool, action: str) -> ToolboxResponse:
        user = await repo.parse.current_user(session_token)
        if user is None:
            return auth_required_response(action)
        username = user.get("username") or user["objectId"]
        bookings = await repo.user_bookings(username, upcoming=upcoming)
        if not bookings:
            what = "upcoming bookings" if upcoming else "past games"
            return empty_response(
                f"You don't have any {what}.",
                ["Find a game to join", "Create a new session"],
            )
        label = "upcoming booking" if upcoming else "past booking"
        return ToolboxResponse(
            text=f"You have {len(bookings)} {label}{'s' if len(bookings) > 1 else ''}.",
            session_cards=[booking_card(b) for b in bookings[:max_cards]],
            results=ToolboxResult(bookings=bookings),
        )

    @tool("getUserBookings")
    async def get_user_bookings(session_token: str = "") -> ToolboxResponse:
        """List the logged-in user's upcoming confirmed bookings."""
        return await _list(session_token, upcoming=True, action="getUserBookings")

    @tool("getBookingHistory")
    async def get_booking_history(session_token: str = "") -> ToolboxResponse:
        """List the logged-in user's past bookings, most recent first."""
        return await _list(session_token, upcoming=False, action="getBookingHistory")

    @tool("checkBookingStatus")
    async def check_booking_status(booking_id: str = "") -> ToolboxResponse:
        """Check the status of one booking by id."""
        if not booking_id:
            return ask_response("Which booking should I check?")
        booking = await repo.get_booking(booking_id)
        if booking is None:
            return empty_response("I couldn't find that booking.")
        return ToolboxResponse(
            text=f"Your booking at {booking.get('venueName') or 'the venue'} is {booking.get('status')}.",
            session_cards=[booking_card(booking)],
            results=ToolboxResult(bookings=[booking]),
        )

    @tool("modifyBooking")
    async def modify_booking(booking_id: str = "") -> ToolboxResponse:
        """Change a booking (not supported in chat)."""
        return ToolboxResponse(text=_NOT_IN_CHAT)

    @tool("cancelBooking")
    async def cancel_booking(booking_id: str = "") -> ToolboxResponse:
        """Cancel a booking (not supported in chat)."""
        return ToolboxResponse(text=_NOT_IN_CHAT)

    return [
        get_user_bookings,
        get_booking_history,
        check_booking_status,
        modify_booking,
        cancel_booking,
    ]
