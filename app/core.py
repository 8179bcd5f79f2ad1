# app/core.py
"""
Time-slot arithmetic shared by the availability queries and booking checks.

All datetimes are naive and expressed in the shop's local time
(``config.TIMEZONE``).
"""

from datetime import datetime, date, time, timedelta
from typing import Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from app.config import TIMEZONE

Interval = Tuple[datetime, datetime]


def now_local() -> datetime:
    return datetime.now(ZoneInfo(TIMEZONE)).replace(tzinfo=None)


def overlaps(start_a, end_a, start_b, end_b) -> bool:
    return start_a < end_b and start_b < end_a


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM" (24h) into a time, raising ValueError on bad input."""
    return datetime.strptime(value, "%H:%M").time()


def format_hhmm(value) -> str:
    return value.strftime("%H:%M")


def is_on_grid(value: time, step_minutes: int) -> bool:
    minutes = value.hour * 60 + value.minute
    return value.second == 0 and minutes % step_minutes == 0


def generate_slots(
    day: date,
    open_time: time,
    close_time: time,
    step_minutes: int,
    duration_minutes: Optional[int] = None,
) -> List[datetime]:
    """
    Candidate start times between open and close on a fixed grid.

    The grid counts from midnight, so an opening time such as 09:15 gives
    09:30 as the first slot on a 30-minute grid. A start is kept only if the
    whole ``duration_minutes`` interval ends at or before closing time.
    Duration defaults to one step.
    """
    if step_minutes <= 0:
        return []
    if duration_minutes is None:
        duration_minutes = step_minutes

    start = datetime.combine(day, open_time)
    offset = (open_time.hour * 60 + open_time.minute) % step_minutes
    if offset or open_time.second or open_time.microsecond:
        start = start.replace(second=0, microsecond=0) + timedelta(minutes=step_minutes - offset)
    end = datetime.combine(day, close_time)
    step = timedelta(minutes=step_minutes)
    length = timedelta(minutes=duration_minutes)

    slots = []
    current = start
    while current + length <= end:
        slots.append(current)
        current += step
    return slots


def free_slots(
    candidates: Iterable[datetime],
    duration_minutes: int,
    busy: Iterable[Interval],
    not_before: Optional[datetime] = None,
) -> List[datetime]:
    busy = list(busy)
    length = timedelta(minutes=duration_minutes)

    available = []
    for slot_start in candidates:
        if not_before is not None and slot_start < not_before:
            continue
        slot_end = slot_start + length
        if any(overlaps(slot_start, slot_end, b_start, b_end) for b_start, b_end in busy):
            continue
        available.append(slot_start)
    return available


def end_time_for(start: datetime, duration_minutes: int) -> datetime:
    return start + timedelta(minutes=duration_minutes)
