"""Input analyzer — regex heuristics over raw user text.

Every function here is pure and total: unmatched input yields a
low-confidence default, never an exception. Confidence tiers:

    0.9  complex phrase ("weekend morning", "after work")
    0.8  specific clock range ("7 pm")
    0.7  generic period ("evening", "sore")
    0.1  no match
"""

from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any, Literal

from pydantic import BaseModel, Field

SearchIntent = Literal["players", "courts", "both", "unclear"]
Urgency = Literal["immediate", "flexible", "scheduled"]

# ════════════════════════════════════════════════════════════
# PATTERN TABLES (checked in insertion order, first match wins)
# ════════════════════════════════════════════════════════════

_COMPLEX_TIME: dict[str, re.Pattern[str]] = {
    "weekend_morning": re.compile(
        r"\b(weekend\s*morning|saturday\s*morning|sunday\s*morning|weekend.*morning|morning.*weekend)\b"
    ),
    "weekend_afternoon": re.compile(
        r"\b(weekend\s*afternoon|saturday\s*afternoon|sunday\s*afternoon|weekend.*afternoon|afternoon.*weekend)\b"
    ),
    "weekend_evening": re.compile(
        r"\b(weekend\s*evening|saturday\s*evening|sunday\s*evening|weekend.*evening|evening.*weekend)\b"
    ),
    "weekend_anytime": re.compile(
        r"\b(weekend|this\s*weekend|saturday|sunday)(?!\s*(morning|afternoon|evening))\b"
    ),
    "weekday_anytime": re.compile(
        r"\b(weekday|weekdays|monday|tuesday|wednesday|thursday|friday)(?!\s*(morning|afternoon|evening))\b"
    ),
    "tomorrow_morning": re.compile(r"\b(tomorrow\s*morning|morning.*tomorrow|besok\s*pagi)\b"),
    "tomorrow_afternoon": re.compile(r"\b(tomorrow\s*afternoon|afternoon.*tomorrow|besok\s*siang)\b"),
    "tomorrow_evening": re.compile(r"\b(tomorrow\s*evening|evening.*tomorrow|besok\s*(sore|malam))\b"),
    "tonight_early": re.compile(r"\b(tonight.*early|early.*tonight|tonight.*6|tonight.*7)\b"),
    "tonight_prime": re.compile(r"\b(tonight|this\s*evening|nanti\s*malam)\b"),
    "after_work": re.compile(r"\b(after\s*work|setelah\s*kerja|pulang\s*kerja)\b"),
    "lunch_time": re.compile(r"\b(lunch\s*time|lunchtime|makan\s*siang|siang\s*hari)\b"),
}

_SMART_TIME: dict[str, re.Pattern[str]] = {
    "morning_early": re.compile(r"\b(early\s*morning|6\s*am|7\s*am|8\s*am)\b"),
    "morning_late": re.compile(r"\b(late\s*morning|9\s*am|10\s*am|11\s*am)\b"),
    "afternoon_early": re.compile(r"\b(12\s*pm|1\s*pm|2\s*pm)\b"),
    "afternoon_late": re.compile(r"\b(3\s*pm|4\s*pm|5\s*pm)\b"),
    "evening_early": re.compile(r"\b(6\s*pm|7\s*pm)\b"),
    "evening_prime": re.compile(r"\b(8\s*pm|9\s*pm)\b"),
    "night": re.compile(r"\b(10\s*pm|11\s*pm|late)\b"),
}

_GENERAL_TIME: dict[str, re.Pattern[str]] = {
    "morning_general": re.compile(r"\b(morning|pagi)\b"),
    "afternoon_general": re.compile(r"\b(afternoon|siang)\b"),
    "evening_general": re.compile(r"\b(evening|sore|malam)\b"),
}

_TIME_TIERS: list[tuple[dict[str, re.Pattern[str]], float]] = [
    (_COMPLEX_TIME, 0.9),
    (_SMART_TIME, 0.8),
    (_GENERAL_TIME, 0.7),
]

# slot → (display, range, duration)
_TIME_RANGES: dict[str, tuple[str, str, str]] = {
    "weekend_morning": ("9-11 AM", "09:00-11:00", "2h"),
    "weekend_afternoon": ("2-4 PM", "14:00-16:00", "2h"),
    "weekend_evening": ("7-9 PM", "19:00-21:00", "2h"),
    "weekend_anytime": ("Anytime (Sat-Sun)", "08:00-22:00", "flexible"),
    "weekday_anytime": ("Anytime (Mon-Fri)", "06:00-23:00", "flexible"),
    "tomorrow_morning": ("9-11 AM", "09:00-11:00", "2h"),
    "tomorrow_afternoon": ("2-4 PM", "14:00-16:00", "2h"),
    "tomorrow_evening": ("7-9 PM", "19:00-21:00", "2h"),
    "tonight_early": ("6-7 PM", "18:00-19:00", "1h"),
    "tonight_prime": ("8-9 PM", "20:00-21:00", "1h"),
    "after_work": ("6-7 PM", "18:00-19:00", "1h"),
    "lunch_time": ("12-1 PM", "12:00-13:00", "1h"),
    "morning_early": ("7-9 AM", "07:00-09:00", "2h"),
    "morning_late": ("9-11 AM", "09:00-11:00", "2h"),
    "afternoon_early": ("12-2 PM", "12:00-14:00", "2h"),
    "afternoon_late": ("3-5 PM", "15:00-17:00", "2h"),
    "evening_early": ("6-7 PM", "18:00-19:00", "1h"),
    "evening_prime": ("8-9 PM", "20:00-21:00", "1h"),
    "night": ("9-11 PM", "21:00-23:00", "2h"),
    "morning_general": ("9-11 AM", "09:00-11:00", "2h"),
    "afternoon_general": ("2-4 PM", "14:00-16:00", "2h"),
    "evening_general": ("7-9 PM", "19:00-21:00", "2h"),
}

TIME_SLOTS: frozenset[str] = frozenset(_TIME_RANGES)

_AREAS: dict[str, re.Pattern[str]] = {
    "Jakarta Barat": re.compile(r"\b(jakarta barat|west jakarta|kebon jeruk|kedoya|grogol|cengkareng)\b"),
    "Jakarta Selatan": re.compile(
        r"\b(jakarta selatan|south jakarta|kemang|senayan|pondok indah|kebayoran)\b"
    ),
    "Jakarta Pusat": re.compile(r"\b(jakarta pusat|central jakarta|menteng|tanah abang|gambir)\b"),
    "Jakarta Timur": re.compile(r"\b(jakarta timur|east jakarta|kelapa gading|rawamangun|cakung)\b"),
    "Jakarta Utara": re.compile(r"\b(jakarta utara|north jakarta|ancol|sunter|pluit)\b"),
    "Senayan": re.compile(r"\b(gelora|sudirman)\b"),
    "Kemang": re.compile(r"\b(radio dalam|ampera)\b"),
    "Kelapa Gading": re.compile(r"\b(gading|mall of indonesia)\b"),
    "Pondok Indah": re.compile(r"\b(pim|lebak bulus)\b"),
}

_SKILLS: dict[str, re.Pattern[str]] = {
    "beginner": re.compile(r"\b(beginner|pemula|newbie|new|basic|learning|starter)\b"),
    "intermediate": re.compile(r"\b(intermediate|menengah|medium|average|decent|okay|ok)\b"),
    "advanced": re.compile(r"\b(advanced|expert|pro|professional|mahir|skilled|experienced)\b"),
}

_PLAYER_WORDS = re.compile(
    r"\b(players?|partners?|teammates?|friends?|people|person|join|match me|find me a|lawan|teman)\b"
)
_COURT_WORDS = re.compile(
    r"\b(courts?|venues?|book|reserve|available|facility|place to play|lapangan)\b"
)

_PLAYER_COUNTS: list[tuple[re.Pattern[str], int]] = [
    (re.compile(r"\b(one|1)\s+(player|person|partner)\b"), 1),
    (re.compile(r"\b(two|2)\s+(players|people|partners)\b"), 2),
    (re.compile(r"\b(three|3)\s+(players|people|partners)\b"), 3),
    (re.compile(r"\b(four|4)\s+(players|people|partners)\b"), 4),
    (re.compile(r"\bfull\s+(game|match|court)\b"), 4),
    (re.compile(r"\bdoubles?\b"), 4),
]

_BUDGET = re.compile(r"\b(cheap|budget|affordable|murah|hemat|economical)\b")
_PREMIUM = re.compile(r"\b(premium|expensive|luxury|high-end|best|top)\b")
_AMOUNT = re.compile(r"\b(\d+)\s*(k|rb|ribu)\b|\brp\.?\s*(\d[\d.,]*)")

_GREETING = re.compile(r"\b(hi|hello|hey|halo|hai)\b", re.IGNORECASE)
_HELP = re.compile(r"\b(help|bantuan|what can you do)\b", re.IGNORECASE)


# ════════════════════════════════════════════════════════════
# RESULT MODELS
# ════════════════════════════════════════════════════════════


class TimeSlotAnalysis(BaseModel):
    time_slot: str = ""
    confidence: float = 0.1
    clarification: str | None = None


class TimeRange(BaseModel):
    display: str
    range: str
    duration: str


class LocationAnalysis(BaseModel):
    location: str = "jakarta_area"
    confidence: float = 0.5
    clarification: str | None = None


class SkillLevelAnalysis(BaseModel):
    skill_level: str = "intermediate"
    confidence: float = 0.3


class PriceAnalysis(BaseModel):
    sensitivity: Literal["budget", "premium", "any"] = "any"
    price_range: dict[str, int] | None = None


class InputAnalysis(BaseModel):
    """All heuristics combined for one message."""

    time: TimeSlotAnalysis
    time_range: TimeRange | None = None
    location: LocationAnalysis
    skill_level: SkillLevelAnalysis
    intent: SearchIntent = "unclear"
    player_count: int | None = None
    urgency: Urgency = "scheduled"
    pricing: PriceAnalysis = Field(default_factory=PriceAnalysis)
    original_input: str = ""
    input_length: int = 0
    is_greeting: bool = False
    is_help: bool = False


# ════════════════════════════════════════════════════════════
# ANALYZERS
# ════════════════════════════════════════════════════════════


def analyze_time(text: str) -> TimeSlotAnalysis:
    normalized = text.lower()
    for table, confidence in _TIME_TIERS:
        for slot, pattern in table.items():
            if pattern.search(normalized):
                return TimeSlotAnalysis(time_slot=slot, confidence=confidence)
    return TimeSlotAnalysis(time_slot="", confidence=0.1)


def get_time_range(time_slot: str) -> TimeRange:
    display, rng, duration = _TIME_RANGES.get(time_slot, ("Flexible", "flexible", "2h"))
    return TimeRange(display=display, range=rng, duration=duration)


def analyze_location(text: str) -> LocationAnalysis:
    normalized = text.lower()
    for area, pattern in _AREAS.items():
        if pattern.search(normalized):
            return LocationAnalysis(location=area, confidence=0.9)

    if re.search(r"\b(jakarta|jkt)\b", normalized):
        return LocationAnalysis(
            location="jakarta_area",
            confidence=0.7,
            clarification=(
                "Which area of Jakarta do you prefer? "
                "(e.g., Senayan, Kemang, Kelapa Gading)"
            ),
        )

    if re.search(r"\b(anywhere|any|wherever|doesn't matter)\b", normalized):
        return LocationAnalysis(location="jakarta_area", confidence=0.8)

    return LocationAnalysis(
        location="jakarta_area",
        confidence=0.5,
        clarification="Which area would you prefer?",
    )


def analyze_skill_level(text: str) -> SkillLevelAnalysis:
    normalized = text.lower()
    for skill, pattern in _SKILLS.items():
        if pattern.search(normalized):
            return SkillLevelAnalysis(skill_level=skill, confidence=0.9)
    return SkillLevelAnalysis(skill_level="intermediate", confidence=0.3)


def detect_search_intent(text: str) -> SearchIntent:
    normalized = text.lower()
    players = bool(_PLAYER_WORDS.search(normalized))
    courts = bool(_COURT_WORDS.search(normalized))
    if players and courts:
        return "both"
    if players:
        return "players"
    if courts:
        return "courts"
    return "unclear"


def extract_player_count(text: str) -> int | None:
    normalized = text.lower()
    for pattern, count in _PLAYER_COUNTS:
        if pattern.search(normalized):
            return count
    return None


def detect_urgency(text: str) -> Urgency:
    normalized = text.lower()
    if re.search(r"\b(now|asap|immediately|urgent|right now|today|sekarang)\b", normalized):
        return "immediate"
    if re.search(r"\b(whenever|flexible|any time|anytime|doesn't matter when)\b", normalized):
        return "flexible"
    return "scheduled"


def analyze_price_sensitivity(text: str) -> PriceAnalysis:
    """Budget/premium keywords, else an explicit Rupiah amount (±20%)."""
    normalized = text.lower()
    if _BUDGET.search(normalized):
        return PriceAnalysis(sensitivity="budget", price_range={"min": 0, "max": 150_000})
    if _PREMIUM.search(normalized):
        return PriceAnalysis(
            sensitivity="premium", price_range={"min": 200_000, "max": 500_000}
        )

    match = _AMOUNT.search(normalized)
    if match:
        if match.group(1):
            amount = int(match.group(1)) * 1000
        else:
            amount = int(re.sub(r"[.,]", "", match.group(3)))
        return PriceAnalysis(
            sensitivity="any",
            price_range={"min": int(amount * 0.8), "max": int(amount * 1.2)},
        )
    return PriceAnalysis(sensitivity="any")


def analyze_input(text: str) -> InputAnalysis:
    """Run every heuristic over ``text``."""
    time = analyze_time(text)
    return InputAnalysis(
        time=time,
        time_range=get_time_range(time.time_slot) if time.time_slot else None,
        location=analyze_location(text),
        skill_level=analyze_skill_level(text),
        intent=detect_search_intent(text),
        player_count=extract_player_count(text),
        urgency=detect_urgency(text),
        pricing=analyze_price_sensitivity(text),
        original_input=text,
        input_length=len(text.strip()),
        is_greeting=bool(_GREETING.search(text)),
        is_help=bool(_HELP.search(text)),
    )


def to_slots(analysis: InputAnalysis) -> dict[str, Any]:
    """Keep only the confident guesses, keyed like accumulated info."""
    slots: dict[str, Any] = {}
    if analysis.time.time_slot and analysis.time.confidence > 0.6:
        slots["timeSlot"] = analysis.time.time_slot
        if analysis.time_range:
            slots["timeRange"] = analysis.time_range.range
    if analysis.location.confidence > 0.5 and analysis.location.location != "jakarta_area":
        slots["location"] = analysis.location.location
    if analysis.skill_level.confidence > 0.7:
        slots["skillLevel"] = analysis.skill_level.skill_level
    if analysis.player_count:
        slots["playerCount"] = analysis.player_count
    if analysis.pricing.price_range:
        slots["priceRange"] = analysis.pricing.price_range
    if analysis.intent != "unclear":
        slots["searchIntent"] = analysis.intent
    return slots


_WEEKDAYS = {
    "monday": 0, "senin": 0,
    "tuesday": 1, "selasa": 1,
    "wednesday": 2, "rabu": 2,
    "thursday": 3, "kamis": 3,
    "friday": 4, "jumat": 4,
    "saturday": 5, "sabtu": 5,
    "sunday": 6, "minggu": 6,
}


def resolve_date(text: str | None, today: date | None = None) -> date | None:
    """Turn "2025-03-01", "today", "tomorrow", "besok", "weekend" or a weekday
    name into a calendar date (next occurrence). ``None`` when unrecognised."""
    if not text:
        return None
    today = today or date.today()
    normalized = str(text).strip().lower()

    try:
        return date.fromisoformat(normalized[:10])
    except ValueError:
        pass

    if re.search(r"\b(today|hari ini|tonight)\b", normalized):
        return today
    if re.search(r"\b(tomorrow|besok)\b", normalized):
        return today + timedelta(days=1)
    if re.search(r"\b(weekend|akhir pekan)\b", normalized):
        return today + timedelta(days=(5 - today.weekday()) % 7)
    for name, weekday in _WEEKDAYS.items():
        if re.search(rf"\b{name}\b", normalized):
            return today + timedelta(days=(weekday - today.weekday()) % 7)
    return None
