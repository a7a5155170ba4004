"""Shared helpers for toolbox actions — canned responses, slot/time handling."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from mabar.agent.analyzer import TIME_SLOTS, analyze_time, get_time_range
from mabar.agent.cards import no_availability_card
from mabar.core.parse.repository import WIB
from mabar.memory.models import ToolboxResponse, ToolboxResult

_DEFAULT_START = "19:00"


def empty_response(text: str, alternatives: list[str] | None = None) -> ToolboxResponse:
    """Nothing matched — still hand back a card with alternatives."""
    return ToolboxResponse(
        text=text,
        session_cards=[no_availability_card(text, alternatives)],
        results=ToolboxResult(),
    )


def error_response(action: str, error: str) -> ToolboxResponse:
    """Backend failure turned into a user-facing service-error card."""
    text = "I couldn't reach the booking system just now. Please try again in a moment."
    return ToolboxResponse(
        text=text,
        session_cards=[
            no_availability_card(
                "Service temporarily unavailable",
                ["Try again in a minute", "Ask me about something else"],
                error=f"{action}: {error}",
            )
        ],
        results=ToolboxResult(error=error),
    )


def auth_required_response(action: str) -> ToolboxResponse:
    what = {
        "createNewSession": "create a session",
        "joinSession": "join a session",
        "getUserBookings": "see your bookings",
        "getBookingHistory": "see your booking history",
        "getPersonalizedRecommendations": "get personalized recommendations",
    }.get(action, "do that")
    return ToolboxResponse(
        text=f"Please log in to {what}.",
        results=ToolboxResult(requires_auth=True, error="Authentication required"),
    )


def ask_response(question: str) -> ToolboxResponse:
    return ToolboxResponse(text=question, needs_more_info=True)


def normalize_slot(time: str | None) -> str:
    """Map free text ("7pm", "evening") or a slot key onto a known slot key."""
    if not time:
        return ""
    if time in TIME_SLOTS:
        return time
    return analyze_time(time).time_slot


def slot_window(day: date, time_slot: str) -> tuple[datetime, datetime]:
    """Start/end of a slot on ``day`` (WIB). Flexible slots get a 2h evening game."""
    tr = get_time_range(time_slot)
    start_txt = tr.range.split("-")[0] if "-" in tr.range else _DEFAULT_START
    hours = 2
    if tr.duration.endswith("h"):
        hours = int(tr.duration[:-1])
    if tr.duration == "flexible":
        start_txt = _DEFAULT_START
    hh, mm = (int(x) for x in start_txt.split(":"))
    start = datetime(day.year, day.month, day.day, hh, mm, tzinfo=WIB)
    return start, start + timedelta(hours=hours)
