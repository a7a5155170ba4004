"""Session cards — builders, normalization of model-supplied cards, dedup."""

from __future__ import annotations

from typing import Any

from loguru import logger

from mabar.memory.models import CARD_TYPES, SessionCard

_TYPE_ALIASES: dict[str, str] = {
    "personalized-recommendation": "create-new",
    "recommendation": "create-new",
    "venue": "create-new",
    "new-session": "create-new",
    "session": "existing-session",
    "open-session": "existing-session",
    "players": "existing-session",
    "booking": "user-booking",
    "join": "join-confirmation",
    "confirmation": "join-confirmation",
    "empty": "no-availability",
    "no-results": "no-availability",
}

DEFAULT_ALTERNATIVES = [
    "Try a different time slot",
    "Look in a nearby area",
    "Create a new session and invite players",
]


# ════════════════════════════════════════════════════════════
# BUILDERS
# ════════════════════════════════════════════════════════════


def format_rupiah(amount: Any) -> str:
    try:
        return f"Rp {int(amount):,}".replace(",", ".")
    except (TypeError, ValueError):
        return "Price available on booking"


def format_address(address: Any) -> str:
    if isinstance(address, dict):
        parts = [address.get("area"), address.get("city")]
        return ", ".join(p for p in parts if p) or "Jakarta"
    return str(address) if address else "Jakarta"


def venue_card(venue: dict[str, Any], time: str | None = None, date: str | None = None) -> SessionCard:
    pricing = venue.get("pricing") or {}
    data: dict[str, Any] = {
        "venueId": venue.get("id"),
        "venue": venue.get("name") or "Padel Court",
        "address": format_address(venue.get("address")),
        "cost": f"{format_rupiah(pricing.get('hourlyRate'))}/hour"
        if pricing.get("hourlyRate")
        else "Price available on booking",
        "rating": venue.get("rating"),
        "facilities": venue.get("facilities") or [],
    }
    if time:
        data["time"] = time
    if date:
        data["date"] = date
    return SessionCard(type="create-new", data=data)


def session_card(session: dict[str, Any], venue: dict[str, Any] | None = None) -> SessionCard:
    players = session.get("currentPlayers") or []
    max_players = session.get("maxPlayers") or 4
    return SessionCard(
        type="existing-session",
        data={
            "sessionId": session.get("id"),
            "venue": (venue or {}).get("name") or session.get("venueName") or "Padel Court",
            "address": format_address((venue or {}).get("address")),
            "date": session.get("date"),
            "time": session.get("timeSlot"),
            "skillLevel": session.get("skillLevel"),
            "players": [{"name": p} for p in players][:4],
            "openSlots": session.get("openSlots", max(0, max_players - len(players))),
            "cost": f"{format_rupiah(session.get('pricePerPlayer'))}/player",
        },
    )


def players_card(players: list[dict[str, Any]], time: str | None = None) -> SessionCard:
    """Group available players into one joinable card (max 4)."""
    shown = players[:4]
    return SessionCard(
        type="existing-session",
        data={
            "venue": "Available Players",
            "time": time or "Flexible",
            "players": [
                {"name": p.get("name") or "Player", "skill": p.get("skillLevel")} for p in shown
            ],
            "openSlots": max(0, 4 - len(shown)),
        },
    )


def booking_card(booking: dict[str, Any]) -> SessionCard:
    return SessionCard(
        type="user-booking",
        data={
            "bookingId": booking.get("id"),
            "venue": booking.get("venueName") or booking.get("title") or "Padel Court",
            "court": booking.get("court"),
            "date": booking.get("startTime"),
            "time": booking.get("timeSlot") or booking.get("startTime"),
            "status": booking.get("status"),
            "cost": format_rupiah(booking.get("price")),
        },
    )


def join_confirmation_card(session: dict[str, Any], court: str | None = None) -> SessionCard:
    return SessionCard(
        type="join-confirmation",
        data={
            "sessionId": session.get("id"),
            "time": session.get("timeSlot"),
            "date": session.get("date"),
            "status": session.get("status"),
            "court": court or session.get("court"),
            "openSlots": session.get("openSlots"),
        },
    )


def no_availability_card(
    message: str = "No results found",
    alternatives: list[str] | None = None,
    error: str | None = None,
) -> SessionCard:
    data: dict[str, Any] = {
        "message": message,
        "alternatives": alternatives or list(DEFAULT_ALTERNATIVES),
    }
    if error:
        data["error"] = error
    return SessionCard(type="no-availability", data=data)


# ════════════════════════════════════════════════════════════
# NORMALIZATION + DEDUP
# ════════════════════════════════════════════════════════════


def normalize_cards(raw_cards: list[Any]) -> list[SessionCard]:
    """Coerce model-supplied cards into the closed ``SessionCard`` variant set.

    Non-dict entries are dropped. Unknown types become ``create-new`` when
    the payload names a venue, otherwise they are dropped.
    """
    cards: list[SessionCard] = []
    for raw in raw_cards:
        if isinstance(raw, SessionCard):
            cards.append(raw)
            continue
        if not isinstance(raw, dict):
            continue
        kind = str(raw.get("type", "")).strip().lower()
        data = raw.get("data")
        if not isinstance(data, dict):
            data = {k: v for k, v in raw.items() if k != "type"}

        kind = _TYPE_ALIASES.get(kind, kind)
        if kind not in CARD_TYPES:
            if not data.get("venue"):
                logger.debug(f"Dropping card of unknown type {raw.get('type')!r}")
                continue
            kind = "create-new"
        cards.append(SessionCard(type=kind, data=data))
    return cards


def _norm(value: Any) -> str:
    return " ".join(str(value if value is not None else "").lower().split())


def card_key(card: SessionCard) -> tuple[str, str, str]:
    """Composite identity: venue, address, cost (case/whitespace-insensitive)."""
    return (
        _norm(card.data.get("venue")),
        _norm(card.data.get("address")),
        _norm(card.data.get("cost")),
    )


def deduplicate_cards(cards: list[SessionCard]) -> list[SessionCard]:
    """Collapse cards with equal ``card_key``; first occurrence wins.

    Cards without a venue carry no identity and are always kept.
    """
    seen: set[tuple[str, str, str]] = set()
    unique: list[SessionCard] = []
    for card in cards:
        key = card_key(card)
        if key[0]:
            if key in seen:
                continue
            seen.add(key)
        unique.append(card)
    if len(unique) < len(cards):
        logger.debug(f"Deduplicated cards: {len(cards)} → {len(unique)}")
    return unique
