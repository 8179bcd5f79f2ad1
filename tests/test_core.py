from datetime import date, datetime, time

import pytest

from app.core import (
    overlaps,
    parse_hhmm,
    format_hhmm,
    is_on_grid,
    generate_slots,
    free_slots,
    end_time_for,
)

DAY = date(2030, 1, 7)


def at(hhmm):
    return datetime.combine(DAY, parse_hhmm(hhmm))


def test_overlaps_is_half_open():
    assert overlaps(at("09:00"), at("09:30"), at("09:15"), at("09:45"))
    assert not overlaps(at("09:00"), at("09:30"), at("09:30"), at("10:00"))
    assert not overlaps(at("10:00"), at("10:30"), at("09:30"), at("10:00"))
    assert overlaps(at("09:00"), at("11:00"), at("09:30"), at("10:00"))


def test_parse_and_format_hhmm():
    assert parse_hhmm("08:30") == time(8, 30)
    assert format_hhmm(time(8, 30)) == "08:30"
    assert format_hhmm(at("17:00")) == "17:00"
    with pytest.raises(ValueError):
        parse_hhmm("25:00")


def test_is_on_grid():
    assert is_on_grid(time(9, 0), 30)
    assert is_on_grid(time(9, 30), 30)
    assert not is_on_grid(time(9, 15), 30)
    assert is_on_grid(time(9, 15), 15)


def test_generate_slots_spacing():
    slots = generate_slots(DAY, time(9, 0), time(11, 0), 30)
    assert [format_hhmm(s) for s in slots] == ["09:00", "09:30", "10:00", "10:30"]


def test_generate_slots_respects_duration_at_close():
    slots = generate_slots(DAY, time(9, 0), time(11, 0), 30, duration_minutes=60)
    assert [format_hhmm(s) for s in slots] == ["09:00", "09:30", "10:00"]


def test_generate_slots_aligns_off_grid_opening():
    slots = generate_slots(DAY, time(9, 15), time(11, 0), 30)
    assert [format_hhmm(s) for s in slots] == ["09:30", "10:00", "10:30"]

    slots = generate_slots(DAY, time(9, 0, 30), time(10, 0), 30)
    assert [format_hhmm(s) for s in slots] == ["09:30"]


def test_generate_slots_empty_cases():
    assert generate_slots(DAY, time(9, 0), time(9, 20), 30) == []
    assert generate_slots(DAY, time(9, 0), time(11, 0), 0) == []
    assert generate_slots(DAY, time(12, 0), time(9, 0), 30) == []


def test_free_slots_removes_overlaps_and_past():
    candidates = generate_slots(DAY, time(9, 0), time(12, 0), 30)
    busy = [(at("10:00"), at("10:45"))]

    free = free_slots(candidates, 30, busy, not_before=at("09:30"))

    assert [format_hhmm(s) for s in free] == ["09:30", "11:00", "11:30"]


def test_free_slots_longer_service_blocked_by_later_booking():
    candidates = generate_slots(DAY, time(9, 0), time(12, 0), 30, duration_minutes=60)
    busy = [(at("10:00"), at("10:30"))]

    free = free_slots(candidates, 60, busy)

    assert [format_hhmm(s) for s in free] == ["09:00", "10:30", "11:00"]


def test_end_time_for():
    assert end_time_for(at("09:00"), 45) == at("09:45")
