"""Tests for mabar.agent.analyzer — regex heuristics."""

from datetime import date

import pytest

from mabar.agent.analyzer import (
    _COMPLEX_TIME,
    TIME_SLOTS,
    analyze_input,
    analyze_location,
    analyze_price_sensitivity,
    analyze_skill_level,
    analyze_time,
    detect_search_intent,
    detect_urgency,
    extract_player_count,
    get_time_range,
    resolve_date,
    to_slots,
)


# ── Time ────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "text, slot, confidence",
    [
        ("Can we play this weekend morning?", "weekend_morning", 0.9),
        ("tomorrow evening works", "tomorrow_evening", 0.9),
        ("besok pagi", "tomorrow_morning", 0.9),
        ("after work please", "after_work", 0.9),
        ("around 7 pm", "evening_early", 0.8),
        ("9 am is good", "morning_late", 0.8),
        ("in the evening", "evening_general", 0.7),
        ("main sore", "evening_general", 0.7),
    ],
)
def test_analyze_time_tiers(text, slot, confidence):
    result = analyze_time(text)
    assert result.time_slot == slot
    assert result.confidence == confidence


_COMPLEX_PHRASES = {
    "weekend_morning": "saturday morning at kemang",
    "weekend_afternoon": "sunday afternoon game",
    "weekend_evening": "weekend evening please",
    "weekend_anytime": "free this weekend",
    "weekday_anytime": "can we play on friday",
    "tomorrow_morning": "tomorrow morning",
    "tomorrow_afternoon": "besok siang",
    "tomorrow_evening": "besok malam",
    "tonight_early": "tonight around 7",
    "tonight_prime": "nanti malam",
    "after_work": "pulang kerja",
    "lunch_time": "makan siang break",
}


def test_every_complex_slot_has_a_phrase():
    assert set(_COMPLEX_PHRASES) == set(_COMPLEX_TIME)


@pytest.mark.parametrize("slot, text", sorted(_COMPLEX_PHRASES.items()))
def test_complex_phrases_are_confident(slot, text):
    result = analyze_time(text)
    assert result.time_slot == slot
    assert result.time_slot in TIME_SLOTS
    assert result.confidence >= 0.9


def test_analyze_time_no_match():
    result = analyze_time("I want to play padel")
    assert result.time_slot == ""
    assert result.confidence == 0.1


def test_complex_phrase_beats_generic_period():
    """'weekend evening' must not fall through to evening_general."""
    assert analyze_time("weekend evening").time_slot == "weekend_evening"


def test_time_range_known_and_unknown():
    tr = get_time_range("evening_early")
    assert tr.display == "6-7 PM"
    assert tr.range == "18:00-19:00"
    assert tr.duration == "1h"

    flexible = get_time_range("no_such_slot")
    assert flexible.display == "Flexible"
    assert flexible.duration == "2h"


# ── Location ────────────────────────────────────────────────


def test_location_specific_area():
    result = analyze_location("courts near Kemang")
    assert result.location == "Jakarta Selatan"
    assert result.confidence == 0.9
    assert result.clarification is None


def test_location_city_only_asks_for_area():
    result = analyze_location("somewhere in jakarta")
    assert result.location == "jakarta_area"
    assert result.confidence == 0.7
    assert "Which area of Jakarta" in result.clarification


def test_location_anywhere():
    assert analyze_location("anywhere is fine").confidence == 0.8


def test_location_default():
    result = analyze_location("let's play")
    assert result.location == "jakarta_area"
    assert result.confidence == 0.5
    assert result.clarification


# ── Skill / intent / count / urgency ────────────────────────


def test_skill_level_detected_and_default():
    assert analyze_skill_level("I'm a beginner").skill_level == "beginner"
    assert analyze_skill_level("pretty experienced").skill_level == "advanced"
    default = analyze_skill_level("hello")
    assert default.skill_level == "intermediate"
    assert default.confidence == 0.3


def test_search_intent():
    assert detect_search_intent("find me a partner") == "players"
    assert detect_search_intent("book a court") == "courts"
    assert detect_search_intent("players and a court") == "both"
    assert detect_search_intent("hello there") == "unclear"


def test_player_count():
    assert extract_player_count("looking for 2 players") == 2
    assert extract_player_count("doubles match") == 4
    assert extract_player_count("just me") is None


def test_urgency():
    assert detect_urgency("can I play right now") == "immediate"
    assert detect_urgency("anytime is fine") == "flexible"
    assert detect_urgency("next week") == "scheduled"


# ── Price ───────────────────────────────────────────────────


def test_price_budget_and_premium():
    budget = analyze_price_sensitivity("something cheap")
    assert budget.sensitivity == "budget"
    assert budget.price_range == {"min": 0, "max": 150_000}

    premium = analyze_price_sensitivity("the best court")
    assert premium.sensitivity == "premium"
    assert premium.price_range == {"min": 200_000, "max": 500_000}


def test_price_amount_gets_twenty_percent_band():
    result = analyze_price_sensitivity("around 200k per hour")
    assert result.price_range == {"min": 160_000, "max": 240_000}

    rupiah = analyze_price_sensitivity("max Rp 150.000")
    assert rupiah.price_range == {"min": 120_000, "max": 180_000}


def test_price_bare_number_is_not_a_budget():
    """'4 players' or '7 pm' must not be read as a price."""
    assert analyze_price_sensitivity("4 players at 7 pm").price_range is None


# ── Combined ────────────────────────────────────────────────


def test_analyze_input_and_slots():
    analysis = analyze_input("Hi! Beginner here, court in Senayan tomorrow evening")
    assert analysis.is_greeting is True
    assert analysis.time.time_slot == "tomorrow_evening"
    assert analysis.time_range.range == "19:00-21:00"

    slots = to_slots(analysis)
    assert slots["timeSlot"] == "tomorrow_evening"
    assert slots["location"] == "Jakarta Selatan"
    assert slots["skillLevel"] == "beginner"
    assert slots["searchIntent"] == "courts"


def test_slots_skip_low_confidence_guesses():
    slots = to_slots(analyze_input("let's play"))
    assert "location" not in slots
    assert "skillLevel" not in slots
    assert "timeSlot" not in slots


def test_analyzer_never_raises_on_odd_input():
    for text in ["", "   ", "🎾🎾", "x" * 5000]:
        analysis = analyze_input(text)
        assert analysis.input_length == len(text.strip())


# ── Dates ───────────────────────────────────────────────────


def test_resolve_date():
    today = date(2025, 3, 5)  # Wednesday
    assert resolve_date("2025-03-10", today) == date(2025, 3, 10)
    assert resolve_date("today", today) == today
    assert resolve_date("besok", today) == date(2025, 3, 6)
    assert resolve_date("this weekend", today) == date(2025, 3, 8)
    assert resolve_date("friday", today) == date(2025, 3, 7)
    assert resolve_date("someday", today) is None
    assert resolve_date(None, today) is None
