"""MatchmakingRepository — typed queries over the Parse classes.

Classes: Venue, PlayerProfile, Session, Booking. Every method maps Parse
objects into plain dicts with stable keys; no Parse-specific shapes leak
to callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from loguru import logger

from mabar.core.parse.client import ParseClient
from mabar.core.parse.query import ParseQuery, add_unique, increment, remove

# Venues operate on Western Indonesia Time
WIB = timezone(timedelta(hours=7), "WIB")

DEFAULT_HOURLY_RATE = 175_000
DEFAULT_COURT_COUNT = 4

# Player profile "playingTimes" buckets
_PLAYING_TIMES = {
    "morning": "Morning (6 AM-12 PM)",
    "afternoon": "Afternoon (12-6 PM)",
    "evening": "Evening (6-10 PM)",
    "night": "Night (10 PM-12 AM)",
}


@dataclass
class JoinOutcome:
    """Result of a join attempt."""

    status: str  # joined | full | already_joined | not_found | closed
    session: dict[str, Any] | None = None
    booking: dict[str, Any] | None = None
    court: str | None = None


class MatchmakingRepository:
    """Venue / player / session / booking queries used by the toolbox."""

    def __init__(self, parse: ParseClient, city: str = "Jakarta") -> None:
        self.parse = parse
        self.city = city

    # ════════════════════════════════════════════════════════════
    # VENUES
    # ════════════════════════════════════════════════════════════

    async def query_venues(
        self,
        location: str | None = None,
        price_range: dict[str, Any] | None = None,
        facilities: list[str] | None = None,
        min_rating: float | None = None,
        min_courts: int | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Active venues, cheapest first.

        ``location`` matches area, city or name; the bare city name (or the
        analyzer's ``jakarta_area``) means no location filter.
        """
        query = ParseQuery("Venue").equal_to("isActive", True)
        if location and not self._is_whole_city(location):
            query.or_(
                ParseQuery("Venue").matches("address.area", location),
                ParseQuery("Venue").matches("address.city", location),
                ParseQuery("Venue").matches("name", location),
            )
        if price_range:
            if price_range.get("min"):
                query.greater_than_or_equal_to("pricing.hourlyRate", price_range["min"])
            if price_range.get("max"):
                query.less_than_or_equal_to("pricing.hourlyRate", price_range["max"])
        if facilities:
            query.contains_all("facilities", facilities)
        if min_rating:
            query.greater_than_or_equal_to("rating", min_rating)
        if min_courts:
            query.greater_than_or_equal_to("courtCount", min_courts)
        query.ascending("pricing.hourlyRate").limit(limit)

        return [self._map_venue(v) for v in await self.parse.find(query)]

    async def get_venue(self, venue_id: str) -> dict[str, Any] | None:
        obj = await self.parse.get("Venue", venue_id)
        return self._map_venue(obj) if obj else None

    async def find_venue_by_name(self, name: str) -> dict[str, Any] | None:
        query = ParseQuery("Venue").equal_to("isActive", True).matches("name", name)
        obj = await self.parse.first(query)
        return self._map_venue(obj) if obj else None

    async def bookings_for_day(self, venue_id: str, day: date) -> list[dict[str, Any]]:
        """Confirmed bookings of a venue starting on ``day`` (a WIB calendar day)."""
        start = datetime(day.year, day.month, day.day, tzinfo=WIB)
        query = (
            ParseQuery("Booking")
            .equal_to("venueId", venue_id)
            .equal_to("status", "confirmed")
            .greater_than_or_equal_to("startTime", start)
            .less_than("startTime", start + timedelta(days=1))
        )
        return [self._map_booking(b) for b in await self.parse.find(query)]

    # ════════════════════════════════════════════════════════════
    # PLAYERS
    # ════════════════════════════════════════════════════════════

    async def query_players(
        self,
        skill_level: str | None = None,
        location: str | None = None,
        time: str | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        query = ParseQuery("PlayerProfile")
        if skill_level:
            query.matches("preferences.skillLevel", skill_level)
        if location and not self._is_whole_city(location):
            query.contains_all("preferences.preferredAreas", [location])
        bucket = self._playing_time_bucket(time)
        if bucket:
            query.contains_all("preferences.playingTimes", [bucket])
        query.limit(limit)
        return [self._map_player(p) for p in await self.parse.find(query)]

    async def get_player_profile(self, user_id: str) -> dict[str, Any] | None:
        query = ParseQuery("PlayerProfile").equal_to("userId", user_id)
        obj = await self.parse.first(query)
        return self._map_player(obj) if obj else None

    # ════════════════════════════════════════════════════════════
    # SESSIONS
    # ════════════════════════════════════════════════════════════

    async def cleanup_expired_sessions(
        self, venue_id: str | None = None, time_slot: str | None = None
    ) -> int:
        """Mark open sessions whose ``expiresAt`` has passed as expired."""
        query = (
            ParseQuery("Session")
            .equal_to("status", "open")
            .less_than("expiresAt", datetime.now(timezone.utc))
        )
        if venue_id:
            query.equal_to("venueId", venue_id)
        if time_slot:
            query.equal_to("timeSlot", time_slot)
        expired = await self.parse.find(query)
        for s in expired:
            await self.parse.update("Session", s["objectId"], {"status": "expired"})
        if expired:
            logger.info(f"Expired {len(expired)} stale session(s)")
        return len(expired)

    async def query_open_sessions(
        self,
        skill_level: str | None = None,
        time_slot: str | None = None,
        session_date: str | None = None,
        venue_id: str | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        await self.cleanup_expired_sessions(venue_id, time_slot)

        query = ParseQuery("Session").equal_to("status", "open").greater_than("openSlots", 0)
        if venue_id:
            query.equal_to("venueId", venue_id)
        if skill_level:
            query.equal_to("skillLevel", skill_level)
        if time_slot:
            query.equal_to("timeSlot", time_slot)
        if session_date:
            query.equal_to("date", session_date)
        query.ascending("startTime").limit(limit)
        return [self._map_session(s) for s in await self.parse.find(query)]

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        obj = await self.parse.get("Session", session_id)
        return self._map_session(obj) if obj else None

    async def find_open_session(
        self, venue_id: str, session_date: str, time_slot: str
    ) -> dict[str, Any] | None:
        query = (
            ParseQuery("Session")
            .equal_to("venueId", venue_id)
            .equal_to("date", session_date)
            .equal_to("timeSlot", time_slot)
            .equal_to("status", "open")
        )
        obj = await self.parse.first(query)
        return self._map_session(obj) if obj else None

    async def create_session(
        self,
        organizer: dict[str, Any],
        venue: dict[str, Any],
        session_date: date,
        time_slot: str,
        start: datetime,
        end: datetime,
        skill_level: str = "intermediate",
        max_players: int = 4,
        session_token: str | None = None,
    ) -> dict[str, Any]:
        """Create an open session with the organizer as first player.

        Price per player is the venue's rate for the slot split over
        ``max_players``.
        """
        hours = max(1.0, (end - start).total_seconds() / 3600)
        rate = (venue.get("pricing") or {}).get("hourlyRate") or DEFAULT_HOURLY_RATE
        players = [organizer.get("username") or organizer.get("objectId")]
        data = {
            "organizerId": organizer.get("objectId"),
            "venueId": venue["id"],
            "venueName": venue.get("name"),
            "court": None,
            "timeSlot": time_slot,
            "date": session_date.isoformat(),
            "startTime": start,
            "endTime": end,
            "currentPlayers": players,
            "maxPlayers": max_players,
            "openSlots": max_players - len(players),
            "skillLevel": skill_level,
            "gameType": "doubles",
            "status": "open",
            "pricePerPlayer": int(rate * hours / max_players),
            "expiresAt": start,
        }
        created = await self.parse.create("Session", data, session_token=session_token)
        return self._map_session(created)

    async def join_session(
        self, session_id: str, username: str, session_token: str | None = None
    ) -> JoinOutcome:
        """Add ``username`` to a session, converting it to a booking when full.

        The slot is claimed with atomic ``AddUnique``/``Increment`` and then
        re-read. When racing joins overshoot the capacity, the joiners
        appended past ``maxPlayers`` roll back and get ``full``; the one that
        took the last slot keeps it and books a court.
        """
        session = await self.get_session(session_id)
        if session is None:
            return JoinOutcome(status="not_found")
        if session["status"] != "open":
            return JoinOutcome(status="closed", session=session)
        if username in session["currentPlayers"]:
            return JoinOutcome(status="already_joined", session=session)
        if session["openSlots"] <= 0:
            return JoinOutcome(status="full", session=session)

        await self.parse.update(
            "Session",
            session_id,
            {"currentPlayers": add_unique(username), "openSlots": increment(-1)},
            session_token=session_token,
        )
        after = await self.get_session(session_id)
        if after is None:
            return JoinOutcome(status="not_found")

        players = after["currentPlayers"]
        if after["openSlots"] < 0 or len(players) > after["maxPlayers"]:
            # AddUnique appends in arrival order; only the late joiners give way
            if username not in players[: after["maxPlayers"]]:
                logger.warning(f"Join race on session {session_id}, rolling back {username}")
                await self.parse.update(
                    "Session",
                    session_id,
                    {"currentPlayers": remove(username), "openSlots": increment(1)},
                    session_token=session_token,
                )
                return JoinOutcome(status="full", session=await self.get_session(session_id))
            logger.info(f"Join race on session {session_id}, {username} keeps the seat")
            after["currentPlayers"] = players[: after["maxPlayers"]]
            after["openSlots"] = 0

        if after["openSlots"] == 0:
            booking, court = await self._convert_to_booking(after, session_token)
            after["status"] = "full"
            after["court"] = court
            return JoinOutcome(status="joined", session=after, booking=booking, court=court)

        return JoinOutcome(status="joined", session=after)

    async def _convert_to_booking(
        self, session: dict[str, Any], session_token: str | None = None
    ) -> tuple[dict[str, Any] | None, str | None]:
        start, end = session.get("startTime"), session.get("endTime")
        court = await self.find_available_court(session["venueId"], start, end)
        booking = None
        if court:
            booking = await self.create_booking(
                {
                    "venueId": session["venueId"],
                    "venueName": session.get("venueName"),
                    "title": f"{session['currentPlayers'][0]}'s Game",
                    "startTime": _parse_dt(start),
                    "endTime": _parse_dt(end),
                    "timeSlot": session.get("timeSlot"),
                    "court": court,
                    "players": session["currentPlayers"],
                    "price": (session.get("pricePerPlayer") or 0) * session["maxPlayers"],
                    "status": "confirmed",
                    "paymentStatus": "pending",
                    "sessionId": session["id"],
                },
                session_token=session_token,
            )
        else:
            logger.warning(f"No free court for full session {session['id']}")
        if booking is None:
            court = None
        await self.parse.update(
            "Session", session["id"], {"status": "full", "court": court},
            session_token=session_token,
        )
        return booking, court

    # ════════════════════════════════════════════════════════════
    # BOOKINGS
    # ════════════════════════════════════════════════════════════

    async def booked_courts(self, venue_id: str, start: Any, end: Any) -> list[str]:
        """Courts with a non-cancelled booking overlapping [start, end)."""
        query = (
            ParseQuery("Booking")
            .equal_to("venueId", venue_id)
            .not_equal_to("status", "cancelled")
            .less_than("startTime", _parse_dt(end))
            .greater_than("endTime", _parse_dt(start))
        )
        return [b["court"] for b in await self.parse.find(query) if b.get("court")]

    async def find_available_court(self, venue_id: str, start: Any, end: Any) -> str | None:
        venue = await self.get_venue(venue_id)
        court_count = (venue or {}).get("courtCount") or DEFAULT_COURT_COUNT
        taken = set(await self.booked_courts(venue_id, start, end))
        for i in range(1, court_count + 1):
            name = f"Court {i}"
            if name not in taken:
                return name
        return None

    async def create_booking(
        self, data: dict[str, Any], session_token: str | None = None
    ) -> dict[str, Any] | None:
        """Create a booking unless the court is already taken for that window."""
        taken = await self.booked_courts(data["venueId"], data["startTime"], data["endTime"])
        if data.get("court") in taken:
            logger.warning(f"Booking conflict: {data['venueId']} {data.get('court')}")
            return None
        created = await self.parse.create("Booking", data, session_token=session_token)
        return self._map_booking(created)

    async def user_bookings(
        self, username: str, upcoming: bool = True, limit: int = 10
    ) -> list[dict[str, Any]]:
        now = datetime.now(timezone.utc)
        query = ParseQuery("Booking").contains_all("players", [username])
        if upcoming:
            query.equal_to("status", "confirmed").greater_than("startTime", now)
            query.ascending("startTime")
        else:
            query.less_than("startTime", now).descending("startTime")
        query.limit(limit)
        return [self._map_booking(b) for b in await self.parse.find(query)]

    async def get_booking(self, booking_id: str) -> dict[str, Any] | None:
        obj = await self.parse.get("Booking", booking_id)
        return self._map_booking(obj) if obj else None

    # ── Mapping ─────────────────────────────────────────────

    def _is_whole_city(self, location: str) -> bool:
        return location.strip().lower() in {self.city.lower(), "jakarta_area", "anywhere", ""}

    @staticmethod
    def _playing_time_bucket(time: str | None) -> str | None:
        if not time:
            return None
        lowered = time.lower()
        for key, bucket in _PLAYING_TIMES.items():
            if key in lowered:
                return bucket
        return None

    @staticmethod
    def _map_venue(obj: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": obj.get("objectId"),
            "name": obj.get("name") or "Padel Court",
            "pricing": obj.get("pricing") or {"hourlyRate": DEFAULT_HOURLY_RATE},
            "address": obj.get("address") or {"city": "Jakarta", "area": "Central"},
            "facilities": obj.get("facilities") or [],
            "rating": obj.get("rating") or 4.0,
            "courtCount": obj.get("courtCount") or DEFAULT_COURT_COUNT,
            "description": obj.get("description") or "",
        }

    @staticmethod
    def _map_player(obj: dict[str, Any]) -> dict[str, Any]:
        info = obj.get("personalInfo") or {}
        prefs = obj.get("preferences") or {}
        return {
            "id": obj.get("objectId"),
            "userId": obj.get("userId"),
            "name": info.get("name") or "Player",
            "skillLevel": prefs.get("skillLevel") or "Intermediate",
            "preferredAreas": prefs.get("preferredAreas") or [],
            "playingTimes": prefs.get("playingTimes") or [],
            "budgetRange": prefs.get("budgetRange"),
        }

    @staticmethod
    def _map_session(obj: dict[str, Any]) -> dict[str, Any]:
        players = obj.get("currentPlayers") or []
        max_players = obj.get("maxPlayers") or 4
        open_slots = obj.get("openSlots")
        return {
            "id": obj.get("objectId"),
            "organizerId": obj.get("organizerId"),
            "venueId": obj.get("venueId"),
            "venueName": obj.get("venueName"),
            "court": obj.get("court"),
            "timeSlot": obj.get("timeSlot"),
            "date": obj.get("date"),
            "startTime": _iso(obj.get("startTime")),
            "endTime": _iso(obj.get("endTime")),
            "currentPlayers": players,
            "maxPlayers": max_players,
            "openSlots": open_slots if open_slots is not None else max_players - len(players),
            "skillLevel": obj.get("skillLevel"),
            "gameType": obj.get("gameType"),
            "status": obj.get("status") or "open",
            "pricePerPlayer": obj.get("pricePerPlayer"),
            "expiresAt": _iso(obj.get("expiresAt")),
        }

    @staticmethod
    def _map_booking(obj: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": obj.get("objectId"),
            "venueId": obj.get("venueId"),
            "venueName": obj.get("venueName"),
            "title": obj.get("title"),
            "court": obj.get("court"),
            "startTime": _iso(obj.get("startTime")),
            "endTime": _iso(obj.get("endTime")),
            "timeSlot": obj.get("timeSlot"),
            "players": obj.get("players") or [],
            "price": obj.get("price"),
            "status": obj.get("status"),
            "paymentStatus": obj.get("paymentStatus"),
        }


def _parse_dt(value: Any) -> Any:
    """ISO string → aware datetime; anything else passes through."""
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value
