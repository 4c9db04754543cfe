from __future__ import annotations

from datetime import time

import pytest

from app.application.utils.date_parser import parse_time_of_day
from app.application.utils.slot_generator import generate_slots


def test_full_day_hourly_slots():
    """09:00-17:00 with a 60 minute service packs eight back-to-back slots."""
    slots = generate_slots("09:00", "17:00", 60)

    assert slots == ["09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]


def test_trailing_partial_slot_is_dropped():
    """A slot that would run past the window end is not offered."""
    assert generate_slots("09:00", "11:30", 60) == ["09:00", "10:00"]
    assert generate_slots("09:00", "10:59", 60) == ["09:00"]


def test_slot_ending_exactly_at_close_is_kept():
    assert generate_slots("09:00", "10:30", 45) == ["09:00", "09:45"]


def test_accepts_seconds_and_time_objects():
    assert generate_slots("09:00:00", "10:00:00", 30) == ["09:00", "09:30"]
    assert generate_slots(time(13, 15), time(14, 15), 20) == ["13:15", "13:35", "13:55"]


def test_empty_or_inverted_window_yields_nothing():
    assert generate_slots("09:00", "09:00", 30) == []
    assert generate_slots("17:00", "09:00", 30) == []
    assert generate_slots("09:00", "09:20", 30) == []


def test_output_is_strictly_ascending_and_deterministic():
    first = generate_slots("08:10", "19:55", 35)
    second = generate_slots("08:10", "19:55", 35)

    assert first == second
    assert first == sorted(first)
    assert len(set(first)) == len(first)


def test_non_positive_duration_is_rejected():
    with pytest.raises(ValueError):
        generate_slots("09:00", "17:00", 0)
    with pytest.raises(ValueError):
        generate_slots("09:00", "17:00", -15)


def test_invalid_time_string_is_rejected():
    with pytest.raises(ValueError):
        generate_slots("9am", "17:00", 30)
    with pytest.raises(ValueError):
        generate_slots("09:00", "24:30", 30)


def test_window_can_run_to_midnight():
    """An end of "24:00" closes the window at the end of the day."""
    assert generate_slots("22:00", "24:00", 60) == ["22:00", "23:00"]
    assert generate_slots("23:00", "24:00:00", 30) == ["23:00", "23:30"]


def test_end_of_day_is_not_a_bookable_time():
    with pytest.raises(ValueError):
        parse_time_of_day("24:00")
